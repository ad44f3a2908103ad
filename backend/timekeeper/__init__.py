from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One engine per app; routes and CLI commands reach it through app.extensions
    from timekeeper.services.timers import build_engine
    flask_app.extensions['timer_engine'] = build_engine(flask_app)

    from timekeeper.main import main
    flask_app.register_blueprint(main)

    from timekeeper.api.timers import timers
    flask_app.register_blueprint(timers, url_prefix='/api/timers')

    from timekeeper.api.users import users
    flask_app.register_blueprint(users, url_prefix='/api/users')

    from timekeeper.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from timekeeper.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('xp-reconcile')
    def xp_reconcile_command():
        """Publishes STARTED/COMPLETED rewards missing from the XP history."""
        from timekeeper.services.timers.rewards import reconcile_rewards
        with flask_app.app_context():
            published = reconcile_rewards(flask_app.extensions['timer_engine'].rewards)
            print(f'Published {published} missing reward(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(xp_reconcile_command)

    return flask_app
