from timekeeper import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import math
import uuid


def _utcnow():
    return datetime.now(timezone.utc)


def _new_timer_id():
    return uuid.uuid4().hex


def level_for_xp(total_xp):
    """Level 1 starts at 0 XP, level 2 at 100, level 3 at 400, level 4 at 900..."""
    return int(math.floor(math.sqrt(max(0, total_xp) / 100))) + 1


def xp_for_level(level):
    return (level - 1) ** 2 * 100


ACTIVE_STATUSES = ('RUNNING', 'PAUSED')


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    total_xp = db.Column(db.Integer, default=0, nullable=False)
    timers = db.relationship('Timer', back_populates='user', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def level(self):
        return level_for_xp(self.total_xp or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'total_xp': self.total_xp or 0,
            'level': self.level,
        }


class Timer(db.Model):
    __tablename__ = 'timer'
    id = db.Column(db.String(32), primary_key=True, default=_new_timer_id)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default='RUNNING')  # RUNNING, PAUSED, COMPLETED, CANCELED
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    # Start of the current run segment (start or last resume)
    segment_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paused_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recorded_elapsed_ms = db.Column(db.BigInteger, nullable=False, default=0)
    total_paused_ms = db.Column(db.BigInteger, nullable=False, default=0)
    project_id = db.Column(db.String(64), nullable=True, index=True)
    task_id = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.Text, nullable=True)
    billable = db.Column(db.Boolean, nullable=False, default=False)
    # Bumped on every write; conditional updates compare against it
    revision = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    user = db.relationship('User', back_populates='timers')

    __table_args__ = (
        # At most one RUNNING/PAUSED timer per user, enforced by the database
        db.Index(
            'uq_timer_one_active_per_user',
            'user_id',
            unique=True,
            sqlite_where=db.text("status IN ('RUNNING', 'PAUSED')"),
            postgresql_where=db.text("status IN ('RUNNING', 'PAUSED')"),
        ),
    )


class TimeEntry(db.Model):
    __tablename__ = 'time_entry'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    timer_id = db.Column(db.String(32), db.ForeignKey('timer.id'), nullable=False, unique=True)
    project_id = db.Column(db.String(64), nullable=True)
    task_id = db.Column(db.String(64), nullable=True)
    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    billable = db.Column(db.Boolean, nullable=False, default=False)
    minutes = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'timer_id': self.timer_id,
            'project_id': self.project_id,
            'task_id': self.task_id,
            'date': self.date.isoformat(),
            'description': self.description,
            'billable': self.billable,
            'minutes': self.minutes,
        }


class XPHistory(db.Model):
    __tablename__ = 'xp_history'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)  # TIMER_STARTED, TIMER_COMPLETED
    xp_earned = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    timer_id = db.Column(db.String(32), db.ForeignKey('timer.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint('timer_id', 'action', name='uq_xp_history_timer_action'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'action': self.action,
            'xp_earned': self.xp_earned,
            'description': self.description,
            'timer_id': self.timer_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
