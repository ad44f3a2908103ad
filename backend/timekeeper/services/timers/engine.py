import logging
import uuid

from .clock import SystemClock
from .elapsed import paused_ms, segment_ms
from .errors import ConflictActiveTimer, InvalidTransition, NotFound
from .rewards import RewardEvent
from .state import TimerSnapshot, TimerStatus


EDITABLE_FIELDS = ('note', 'billable', 'project_id', 'task_id')
ACTIVE = (TimerStatus.RUNNING, TimerStatus.PAUSED)


class TimerLifecycleEngine:
    """State machine for a user's work timer.

    RUNNING <-> PAUSED any number of times, then COMPLETED or CANCELED.
    Work time is accumulated one run segment at a time: each pause or
    completion adds ``now - segment_started_at`` to ``recorded_elapsed_ms``,
    so paused time never counts and earlier segments are never re-derived.

    The engine holds no locks. Consistency under concurrent requests comes
    from the store's atomic create-if-none-active and compare-and-swap
    transitions. complete, cancel and edits accept either active status, so
    they still apply after a concurrent pause or resume; an operation that
    is no longer legal surfaces as ``ConflictActiveTimer`` or
    ``InvalidTransition``.
    """

    def __init__(self, store, rewards=None, clock=None, logger=None):
        self.store = store
        self.rewards = rewards
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

    # ---- Transitions ----

    def start(self, user_id, project_id=None, task_id=None, note=None, billable=False):
        now = self.clock.now()
        initial = TimerSnapshot(
            id=uuid.uuid4().hex,
            user_id=user_id,
            status=TimerStatus.RUNNING,
            started_at=now,
            segment_started_at=now,
            project_id=project_id,
            task_id=task_id,
            note=note,
            billable=bool(billable),
        )
        # No read-before-write: the store rejects a second active timer atomically
        timer = self.store.create_if_none_active(initial)
        self.logger.info(f"[timer-start] user={user_id} timer={timer.id}")
        self._publish(timer, RewardEvent.STARTED, {'timer_id': timer.id})
        return timer

    def pause(self, user_id, timer_id):
        self._owned(user_id, timer_id)
        now = self.clock.now()

        def mutation(current):
            return current.evolve(
                status=TimerStatus.PAUSED,
                paused_at=now,
                segment_started_at=None,
                recorded_elapsed_ms=current.recorded_elapsed_ms + segment_ms(current.segment_started_at, now),
            )

        timer = self.store.transition(timer_id, TimerStatus.RUNNING, mutation, operation='pause')
        self.logger.info(f"[timer-pause] user={user_id} timer={timer_id} recorded={timer.recorded_elapsed_ms}ms")
        return timer

    def resume(self, user_id, timer_id):
        current = self._owned(user_id, timer_id)
        if current.status is not TimerStatus.PAUSED:
            raise InvalidTransition(timer_id, current.status, 'resume')
        active = self.store.find_active_for_user(user_id)
        if active is not None and active.id != timer_id:
            raise ConflictActiveTimer(active.id)
        now = self.clock.now()

        def mutation(current):
            return current.evolve(
                status=TimerStatus.RUNNING,
                paused_at=None,
                segment_started_at=now,
                total_paused_ms=paused_ms(current, now),
            )

        timer = self.store.transition(timer_id, TimerStatus.PAUSED, mutation, operation='resume')
        self.logger.info(f"[timer-resume] user={user_id} timer={timer_id} paused_total={timer.total_paused_ms}ms")
        return timer

    def complete(self, user_id, timer_id, note=None, entry_date=None):
        current = self._owned(user_id, timer_id)
        if current.status.is_terminal:
            raise InvalidTransition(timer_id, current.status, 'complete')
        now = self.clock.now()

        def mutation(current):
            recorded = current.recorded_elapsed_ms
            if current.is_running:
                recorded += segment_ms(current.segment_started_at, now)
            return current.evolve(
                status=TimerStatus.COMPLETED,
                ended_at=now,
                paused_at=None,
                segment_started_at=None,
                recorded_elapsed_ms=recorded,
                note=note if note is not None else current.note,
            )

        timer = self.store.transition(
            timer_id, ACTIVE, mutation, operation='complete', entry_date=entry_date,
        )
        self.logger.info(f"[timer-complete] user={user_id} timer={timer_id} elapsed={timer.recorded_elapsed_ms}ms")
        self._publish(timer, RewardEvent.COMPLETED, {
            'timer_id': timer.id,
            'elapsed_ms': timer.recorded_elapsed_ms,
            'note': timer.note,
        })
        return timer

    def cancel(self, user_id, timer_id):
        current = self._owned(user_id, timer_id)
        if current.status.is_terminal:
            raise InvalidTransition(timer_id, current.status, 'cancel')
        now = self.clock.now()

        def mutation(current):
            # recorded_elapsed_ms stays at whatever the last pause accounted
            return current.evolve(
                status=TimerStatus.CANCELED,
                ended_at=now,
                paused_at=None,
                segment_started_at=None,
            )

        timer = self.store.transition(timer_id, ACTIVE, mutation, operation='cancel')
        self.logger.info(f"[timer-cancel] user={user_id} timer={timer_id}")
        return timer

    def update_details(self, user_id, timer_id, **changes):
        """Edit descriptive fields of an active timer. Durations are untouched."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise TypeError(f"Cannot edit timer field(s): {', '.join(sorted(unknown))}")
        current = self._owned(user_id, timer_id)
        if current.status.is_terminal:
            raise InvalidTransition(timer_id, current.status, 'edit')
        if 'billable' in changes:
            changes['billable'] = bool(changes['billable'])

        timer = self.store.transition(
            timer_id, ACTIVE, lambda c: c.evolve(**changes), operation='edit',
        )
        self.logger.info(f"[timer-edit] user={user_id} timer={timer_id} fields={sorted(changes)}")
        return timer

    # ---- Reads ----

    def get(self, user_id, timer_id):
        return self._owned(user_id, timer_id)

    def active_timer(self, user_id):
        return self.store.find_active_for_user(user_id)

    def list_timers(self, user_id, **filters):
        return self.store.list_for_user(user_id, **filters)

    def stats(self, user_id):
        return self.store.stats_for_user(user_id, self.clock.now())

    def time_entries(self, user_id, limit=50, offset=0):
        return self.store.list_time_entries(user_id, limit=limit, offset=offset)

    def serialize(self, timer):
        return timer.to_dict(self.clock.now())

    # ---- Helpers ----

    def _owned(self, user_id, timer_id):
        timer = self.store.find_by_id(timer_id)
        if timer is None or timer.user_id != user_id:
            raise NotFound(timer_id)
        return timer

    def _publish(self, timer, event, payload):
        if self.rewards is None:
            return
        try:
            self.rewards.publish(timer.user_id, event, payload)
        except Exception:
            # The committed transition stands; rewards are reconciled separately
            self.logger.exception(f"[reward-failed] user={timer.user_id} timer={timer.id} event={event.value}")
