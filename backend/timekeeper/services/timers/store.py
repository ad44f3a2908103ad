from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import func, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from timekeeper.models import ACTIVE_STATUSES, Timer, TimeEntry
from .elapsed import minutes_for
from .errors import ConflictActiveTimer, InvalidTransition, NotFound, StoreUnavailable
from .state import TimerSnapshot, TimerStatus


# Columns a transition or metadata edit may write. id, user_id and started_at never change.
_MUTABLE_COLUMNS = (
    'status', 'segment_started_at', 'paused_at', 'ended_at', 'recorded_elapsed_ms',
    'total_paused_ms', 'project_id', 'task_id', 'note', 'billable',
)


ACTIVE_TIMER_INDEX = 'uq_timer_one_active_per_user'


def _statuses(expected):
    if isinstance(expected, (str, TimerStatus)):
        return frozenset([TimerStatus(expected)])
    return frozenset(TimerStatus(s) for s in expected)


def _violates_one_active(exc):
    diag = getattr(exc.orig, 'diag', None)
    constraint = getattr(diag, 'constraint_name', None)
    if constraint:
        return constraint == ACTIVE_TIMER_INDEX
    message = str(exc.orig)
    # SQLite reports the indexed column rather than the index name
    return ACTIVE_TIMER_INDEX in message or 'UNIQUE constraint failed: timer.user_id' in message


class TimerStore:
    """Persistence contract the engine relies on.

    Every write is atomic with respect to concurrent callers:

    - ``create_if_none_active`` checks and inserts in one step, so two
      concurrent starts for one user cannot both succeed.
    - ``transition`` is a compare-and-swap: the mutation is applied only if
      the stored status is still one of ``expected_status`` when written.
      ``expected_status`` is a status or a collection of statuses.
    """

    def find_by_id(self, timer_id):
        raise NotImplementedError

    def find_active_for_user(self, user_id):
        raise NotImplementedError

    def create_if_none_active(self, initial):
        raise NotImplementedError

    def transition(self, timer_id, expected_status, mutation, operation=None, entry_date=None):
        raise NotImplementedError

    def list_for_user(self, user_id, **filters):
        raise NotImplementedError

    def stats_for_user(self, user_id, now):
        raise NotImplementedError

    def list_time_entries(self, user_id, limit=50, offset=0):
        raise NotImplementedError


class SqlAlchemyTimerStore(TimerStore):
    """TimerStore backed by the Flask-SQLAlchemy session.

    The one-active-timer rule lives in the ``uq_timer_one_active_per_user``
    partial unique index; transitions are conditional UPDATEs keyed on
    ``(id, status, revision)``. A transition that loses to another writer is
    recomputed from the fresh row, up to ``max_attempts`` times, as long as
    the operation is still legal in the status it now finds.
    """

    def __init__(self, db, max_attempts=3):
        self.db = db
        self.max_attempts = max_attempts

    @contextmanager
    def _guard(self):
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as exc:
            self.db.session.rollback()
            raise StoreUnavailable() from exc

    def find_by_id(self, timer_id):
        with self._guard():
            record = self.db.session.get(Timer, timer_id, populate_existing=True)
            return TimerSnapshot.from_record(record) if record else None

    def find_active_for_user(self, user_id):
        with self._guard():
            record = (
                Timer.query
                .filter(Timer.user_id == user_id, Timer.status.in_(ACTIVE_STATUSES))
                .order_by(Timer.started_at.desc())
                .populate_existing()
                .first()
            )
            return TimerSnapshot.from_record(record) if record else None

    def create_if_none_active(self, initial):
        record = Timer(
            id=initial.id,
            user_id=initial.user_id,
            status=initial.status.value,
            started_at=initial.started_at,
            segment_started_at=initial.segment_started_at,
            recorded_elapsed_ms=initial.recorded_elapsed_ms,
            total_paused_ms=initial.total_paused_ms,
            project_id=initial.project_id,
            task_id=initial.task_id,
            note=initial.note,
            billable=initial.billable,
            revision=0,
        )
        with self._guard():
            self.db.session.add(record)
            self._commit(initial.user_id)
            return self.find_by_id(initial.id)

    def transition(self, timer_id, expected_status, mutation, operation=None, entry_date=None):
        allowed = _statuses(expected_status)
        with self._guard():
            for _ in range(self.max_attempts):
                current = self.find_by_id(timer_id)
                if current is None:
                    raise NotFound(timer_id)
                if current.status not in allowed:
                    raise InvalidTransition(timer_id, current.status, operation)

                updated = mutation(current)
                values = {col: getattr(updated, col) for col in _MUTABLE_COLUMNS}
                values['status'] = updated.status.value
                values['revision'] = current.revision + 1

                result = self.db.session.execute(
                    update(Timer)
                    .where(
                        Timer.id == timer_id,
                        Timer.status == current.status.value,
                        Timer.revision == current.revision,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    break
                # Another writer got there first; re-read and recompute from its result
                self.db.session.rollback()
            else:
                raise StoreUnavailable('Timer changed concurrently, retry the request')

            if updated.status is TimerStatus.COMPLETED:
                self._materialize_time_entry(updated, entry_date)
            self._commit(current.user_id)
            return self.find_by_id(timer_id)

    def _commit(self, user_id):
        try:
            self.db.session.commit()
        except IntegrityError as exc:
            self.db.session.rollback()
            if not _violates_one_active(exc):
                raise
            raise self._conflict_for(user_id) from exc

    def _materialize_time_entry(self, timer, entry_date):
        self.db.session.add(TimeEntry(
            user_id=timer.user_id,
            timer_id=timer.id,
            project_id=timer.project_id,
            task_id=timer.task_id,
            date=entry_date or timer.ended_at.date(),
            description=timer.note,
            billable=timer.billable,
            minutes=minutes_for(timer.recorded_elapsed_ms),
        ))

    def _conflict_for(self, user_id):
        active = self.find_active_for_user(user_id)
        if active is None:
            # The competing timer ended between our failed write and this read
            return StoreUnavailable('Active timer changed concurrently, retry the request')
        return ConflictActiveTimer(active.id)

    def list_for_user(self, user_id, status=None, project_id=None, task_id=None,
                      started_after=None, started_before=None, limit=50, offset=0):
        with self._guard():
            query = Timer.query.filter(Timer.user_id == user_id)
            if status:
                query = query.filter(Timer.status == TimerStatus(status).value)
            if project_id:
                query = query.filter(Timer.project_id == project_id)
            if task_id:
                query = query.filter(Timer.task_id == task_id)
            if started_after:
                query = query.filter(Timer.started_at >= started_after)
            if started_before:
                query = query.filter(Timer.started_at <= started_before)
            total = query.count()
            records = (
                query.order_by(Timer.started_at.desc(), Timer.created_at.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            return [TimerSnapshot.from_record(r) for r in records], total

    def stats_for_user(self, user_id, now):
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = today - timedelta(days=today.weekday())
        month_start = today.replace(day=1)

        def completed():
            return self.db.session.query(
                func.coalesce(func.sum(Timer.recorded_elapsed_ms), 0),
                func.count(Timer.id),
            ).filter(Timer.user_id == user_id, Timer.status == TimerStatus.COMPLETED.value)

        with self._guard():
            total_ms, sessions = completed().one()
            today_ms = completed().filter(Timer.started_at >= today).one()[0]
            week_ms = completed().filter(Timer.started_at >= week_start).one()[0]
            month_ms = completed().filter(Timer.started_at >= month_start).one()[0]

        total_ms = int(total_ms or 0)
        sessions = int(sessions or 0)
        return {
            'total_ms': total_ms,
            'sessions': sessions,
            'average_ms': total_ms // sessions if sessions else 0,
            'today_ms': int(today_ms or 0),
            'week_ms': int(week_ms or 0),
            'month_ms': int(month_ms or 0),
        }

    def list_time_entries(self, user_id, limit=50, offset=0):
        with self._guard():
            query = TimeEntry.query.filter_by(user_id=user_id)
            total = query.count()
            entries = (
                query.order_by(TimeEntry.date.desc(), TimeEntry.id.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            return [e.to_dict() for e in entries], total
