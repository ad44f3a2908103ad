"""Elapsed-time arithmetic for timers. Pure functions, no I/O."""

from datetime import datetime, timedelta

_ONE_MS = timedelta(milliseconds=1)


def segment_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two instants, clamped at zero.

    A clock that steps backwards must never shrink recorded work.
    """
    if start is None or end is None:
        return 0
    return max(0, (end - start) // _ONE_MS)


def current_elapsed_ms(timer, now: datetime) -> int:
    """Active (non-paused) work time of ``timer`` as seen at ``now``.

    Only a RUNNING timer accrues: the open segment since the last start or
    resume is added on top of what earlier pauses already recorded.
    PAUSED and terminal timers report the recorded baseline unchanged.
    """
    if timer.is_running:
        return timer.recorded_elapsed_ms + segment_ms(timer.segment_started_at, now)
    return timer.recorded_elapsed_ms


def paused_ms(timer, now: datetime) -> int:
    """Total pause time including the pause currently in progress, if any."""
    if timer.paused_at is not None:
        return timer.total_paused_ms + segment_ms(timer.paused_at, now)
    return timer.total_paused_ms


def minutes_for(elapsed_ms: int) -> int:
    """Whole minutes billed for a duration, rounded up."""
    return -(-max(0, elapsed_ms) // 60000)
