from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .clock import ensure_utc
from .elapsed import current_elapsed_ms


class TimerStatus(str, Enum):
    RUNNING = 'RUNNING'
    PAUSED = 'PAUSED'
    COMPLETED = 'COMPLETED'
    CANCELED = 'CANCELED'

    @property
    def is_terminal(self) -> bool:
        return self in (TimerStatus.COMPLETED, TimerStatus.CANCELED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


@dataclass(frozen=True)
class TimerSnapshot:
    """Immutable view of a timer row.

    Construction validates the fields each status requires, so a snapshot
    that exists is always internally consistent:

    - RUNNING: ``segment_started_at`` set, no ``paused_at``, no ``ended_at``
    - PAUSED: ``paused_at`` set, no ``ended_at``
    - COMPLETED / CANCELED: ``ended_at`` set, no ``paused_at``
    """
    id: str
    user_id: int
    status: TimerStatus
    started_at: datetime
    segment_started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    recorded_elapsed_ms: int = 0
    total_paused_ms: int = 0
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    note: Optional[str] = None
    billable: bool = False
    revision: int = 0

    def __post_init__(self):
        status = TimerStatus(self.status)
        object.__setattr__(self, 'status', status)
        for field in ('started_at', 'segment_started_at', 'paused_at', 'ended_at'):
            object.__setattr__(self, field, ensure_utc(getattr(self, field)))

        if self.started_at is None:
            raise ValueError('started_at is required')
        if self.recorded_elapsed_ms < 0 or self.total_paused_ms < 0:
            raise ValueError('durations cannot be negative')
        if (status is TimerStatus.PAUSED) != (self.paused_at is not None):
            raise ValueError(f'paused_at must be set exactly when PAUSED (status={status.value})')
        if status.is_terminal != (self.ended_at is not None):
            raise ValueError(f'ended_at must be set exactly when terminal (status={status.value})')
        if status is TimerStatus.RUNNING and self.segment_started_at is None:
            raise ValueError('a RUNNING timer needs segment_started_at')

    @property
    def is_running(self) -> bool:
        return self.status is TimerStatus.RUNNING

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @classmethod
    def from_record(cls, record) -> 'TimerSnapshot':
        return cls(
            id=record.id,
            user_id=record.user_id,
            status=record.status,
            started_at=record.started_at,
            segment_started_at=record.segment_started_at,
            paused_at=record.paused_at,
            ended_at=record.ended_at,
            recorded_elapsed_ms=int(record.recorded_elapsed_ms or 0),
            total_paused_ms=int(record.total_paused_ms or 0),
            project_id=record.project_id,
            task_id=record.task_id,
            note=record.note,
            billable=bool(record.billable),
            revision=int(record.revision or 0),
        )

    def evolve(self, **changes) -> 'TimerSnapshot':
        return replace(self, **changes)

    def to_dict(self, now: datetime) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'status': self.status.value,
            'started_at': _iso(self.started_at),
            'paused_at': _iso(self.paused_at),
            'ended_at': _iso(self.ended_at),
            'recorded_elapsed_ms': self.recorded_elapsed_ms,
            'total_paused_ms': self.total_paused_ms,
            'current_elapsed_ms': current_elapsed_ms(self, now),
            'project_id': self.project_id,
            'task_id': self.task_id,
            'note': self.note,
            'billable': self.billable,
        }


def _iso(value):
    return value.isoformat() if value else None
