"""Errors raised by the timer engine and its store.

Each error knows the HTTP status it maps to and how to render itself, so
routes only need a single error handler.
"""


class TimerError(Exception):
    status_code = 400
    message = 'Timer operation failed'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'error': self.message}


class NotFound(TimerError):
    status_code = 404
    message = 'Timer not found'

    def __init__(self, timer_id=None):
        super().__init__()
        # Kept for logs only; never rendered
        self.timer_id = timer_id


class InvalidTransition(TimerError):
    status_code = 409

    def __init__(self, timer_id, current_status, operation=None):
        status = getattr(current_status, 'value', current_status)
        if operation:
            message = f'Cannot {operation} a timer that is {status}'
        else:
            message = f'Timer is {status}'
        super().__init__(message)
        self.timer_id = timer_id
        self.current_status = status
        self.operation = operation

    def to_dict(self):
        return {'error': self.message, 'status': self.current_status, 'timer_id': self.timer_id}


class ConflictActiveTimer(TimerError):
    status_code = 409
    message = 'User already has an active timer. Stop the current timer before starting another one.'

    def __init__(self, active_timer_id):
        super().__init__()
        self.active_timer_id = active_timer_id

    def to_dict(self):
        return {'error': self.message, 'active_timer_id': self.active_timer_id}


class StoreUnavailable(TimerError):
    status_code = 503
    message = 'Timer storage is temporarily unavailable'
    retryable = True

    def to_dict(self):
        return {'error': self.message, 'retryable': True}
