"""Timer domain services: lifecycle engine, elapsed-time math, storage, rewards.

HTTP routes, socket handlers and CLI commands call into the engine built
here; none of them touch timer rows directly.
"""

from .engine import TimerLifecycleEngine
from .rewards import RewardEvent, XPRewardPublisher
from .store import SqlAlchemyTimerStore
from .clock import SystemClock


def build_engine(app) -> TimerLifecycleEngine:
    from timekeeper import db, socketio

    rewards = XPRewardPublisher(
        db,
        {
            RewardEvent.STARTED: app.config.get('XP_TIMER_STARTED', 5),
            RewardEvent.COMPLETED: app.config.get('XP_TIMER_COMPLETED', 10),
        },
        socketio=socketio,
        logger=app.logger,
        emit_updates=bool(app.config.get('TIMER_EMIT_UPDATES', 1)),
    )
    return TimerLifecycleEngine(SqlAlchemyTimerStore(db), rewards, SystemClock(), app.logger)
