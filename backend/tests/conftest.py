import os
import sys
import pytest

# Ensure the backend root (containing the `timekeeper` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from timekeeper import create_app, db, socketio
from timekeeper.services.timers.clock import ManualClock


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    XP_TIMER_STARTED = 5
    XP_TIMER_COMPLETED = 10
    TIMER_LIST_MAX_LIMIT = 100
    TIMER_EMIT_UPDATES = 1


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import timekeeper.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock(flask_app):
    manual = ManualClock()
    flask_app.extensions['timer_engine'].clock = manual
    return manual


@pytest.fixture()
def engine(flask_app, clock):
    return flask_app.extensions['timer_engine']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def users(flask_app):
    from timekeeper.models import User
    created = []
    for name in ('alice', 'bob'):
        user = User(username=name)
        user.set_password('password')
        db.session.add(user)
        created.append(user)
    db.session.commit()
    return [u.id for u in created]


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
