import logging
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from timekeeper.models import Timer, User, XPHistory, level_for_xp


class RewardEvent(str, Enum):
    STARTED = 'STARTED'
    COMPLETED = 'COMPLETED'


XP_ACTIONS = {
    RewardEvent.STARTED: 'TIMER_STARTED',
    RewardEvent.COMPLETED: 'TIMER_COMPLETED',
}


class RewardPublisher:
    """Sink the engine notifies after a STARTED or COMPLETED transition commits.

    Implementations may raise; the engine logs and carries on.
    """

    def publish(self, user_id, event, payload):
        raise NotImplementedError


class XPRewardPublisher(RewardPublisher):
    """Turns timer events into XP: one history row per (timer, action) plus a
    running total on the user."""

    def __init__(self, db, amounts, socketio=None, logger=None, emit_updates=True):
        self.db = db
        self.amounts = {RewardEvent(k): int(v) for k, v in amounts.items()}
        self.socketio = socketio
        self.logger = logger or logging.getLogger(__name__)
        self.emit_updates = emit_updates

    def publish(self, user_id, event, payload):
        event = RewardEvent(event)
        action = XP_ACTIONS[event]
        timer_id = payload.get('timer_id')
        amount = self.amounts.get(event, 0)
        if amount <= 0:
            self.logger.info(f"[xp-skip] user={user_id} action={action} amount={amount} not positive")
            return None

        if timer_id and XPHistory.query.filter_by(timer_id=timer_id, action=action).first():
            self.logger.info(f"[xp-skip] user={user_id} timer={timer_id} action={action} already awarded")
            return None

        if self.db.session.get(User, user_id) is None:
            raise LookupError(f'User {user_id} not found')

        entry = XPHistory(
            user_id=user_id,
            action=action,
            xp_earned=amount,
            description=_describe(event, payload),
            timer_id=timer_id,
        )
        try:
            self.db.session.add(entry)
            self.db.session.execute(
                update(User).where(User.id == user_id).values(total_xp=User.total_xp + amount)
            )
            self.db.session.commit()
        except IntegrityError:
            # A concurrent publish for the same (timer, action) won
            self.db.session.rollback()
            self.logger.info(f"[xp-skip] user={user_id} timer={timer_id} action={action} lost race")
            return None
        except Exception:
            self.db.session.rollback()
            raise

        user = self.db.session.get(User, user_id, populate_existing=True)
        self.logger.info(f"[xp-award] user={user_id} timer={timer_id} action={action} xp={amount} total={user.total_xp}")
        if self.socketio is not None and self.emit_updates:
            self.socketio.emit('xp_awarded', {
                'action': action,
                'xp_earned': amount,
                'total_xp': user.total_xp,
                'level': level_for_xp(user.total_xp),
            }, to=f"user:{user_id}", namespace='/ws')
        return entry


def _describe(event, payload):
    if event is RewardEvent.COMPLETED:
        return f"Completed timer: {payload.get('note') or 'Untitled'}"
    return 'Started timer'


def reconcile_rewards(publisher) -> int:
    """Publish STARTED/COMPLETED rewards that never made it into the XP history.

    Rewards are best-effort at transition time; this is the catch-up pass.
    Returns the number of publishes attempted successfully.
    """
    db = publisher.db
    published = 0
    for event, statuses in (
        (RewardEvent.STARTED, None),
        (RewardEvent.COMPLETED, ('COMPLETED',)),
    ):
        awarded = (
            select(XPHistory.timer_id)
            .where(XPHistory.action == XP_ACTIONS[event], XPHistory.timer_id.isnot(None))
        )
        query = Timer.query.filter(~Timer.id.in_(awarded))
        if statuses:
            query = query.filter(Timer.status.in_(statuses))
        for timer in query.order_by(Timer.started_at).all():
            payload = {'timer_id': timer.id, 'elapsed_ms': int(timer.recorded_elapsed_ms or 0), 'note': timer.note}
            try:
                if publisher.publish(timer.user_id, event, payload) is not None:
                    published += 1
            except Exception:
                db.session.rollback()
                publisher.logger.exception(f"[xp-reconcile] timer={timer.id} event={event.value} failed")
    return published
