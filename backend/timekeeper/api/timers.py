from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from datetime import date, datetime
from timekeeper import db, socketio
from timekeeper.models import User
from timekeeper.services.timers.clock import ensure_utc
from timekeeper.services.timers.engine import EDITABLE_FIELDS
from timekeeper.services.timers.errors import TimerError
from timekeeper.services.timers.state import TimerStatus


timers = Blueprint('timers', __name__)


class RequestError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@timers.errorhandler(RequestError)
def handle_request_error(exc):
    return jsonify({'error': exc.message}), exc.status_code


@timers.errorhandler(TimerError)
def handle_timer_error(exc):
    current_app.logger.info(f"[timer-error] {type(exc).__name__}: {exc.message}")
    return jsonify(exc.to_dict()), exc.status_code


def _engine():
    return current_app.extensions['timer_engine']


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RequestError('JSON body must be an object')
    return data


def _caller_id(source) -> int:
    """Logged-in user if there is a session, otherwise the user_id field."""
    if current_user.is_authenticated:
        return current_user.id
    raw = source.get('user_id')
    if raw is None:
        raise RequestError('user_id is required')
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise RequestError('user_id must be an integer')
    if db.session.get(User, user_id) is None:
        raise RequestError('User not found', 404)
    return user_id


def _optional_bool(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise RequestError(f'{key} must be a boolean')
    return value


def _optional_str(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, (str, int)):
        raise RequestError(f'{key} must be a string')
    return str(value) if value is not None else None


def _optional_date(data, key):
    value = data.get(key)
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise RequestError(f'{key} must be an ISO date (YYYY-MM-DD)')


def _optional_datetime(args, key):
    value = args.get(key)
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
    except ValueError:
        raise RequestError(f'{key} must be an ISO timestamp')


def _paging(args):
    max_limit = int(current_app.config.get('TIMER_LIST_MAX_LIMIT', 100))
    try:
        limit = int(args.get('limit', 50))
        offset = int(args.get('offset', 0))
    except (TypeError, ValueError):
        raise RequestError('limit and offset must be integers')
    if not 1 <= limit <= max_limit:
        raise RequestError(f'limit must be between 1 and {max_limit}')
    if offset < 0:
        raise RequestError('offset must be non-negative')
    return limit, offset


def _respond(timer, status_code=200, emit=True):
    payload = _engine().serialize(timer)
    if emit and current_app.config.get('TIMER_EMIT_UPDATES', 1):
        socketio.emit('timer_update', {'timer': payload}, to=f"user:{timer.user_id}", namespace='/ws')
    return jsonify(payload), status_code


@timers.route('/start', methods=['POST'])
def start_timer():
    data = _json_body()
    user_id = _caller_id(data)
    timer = _engine().start(
        user_id,
        project_id=_optional_str(data, 'project_id'),
        task_id=_optional_str(data, 'task_id'),
        note=_optional_str(data, 'note'),
        billable=bool(_optional_bool(data, 'billable')),
    )
    return _respond(timer, 201)


@timers.route('/<string:timer_id>/pause', methods=['POST'])
def pause_timer(timer_id):
    data = _json_body()
    return _respond(_engine().pause(_caller_id(data), timer_id))


@timers.route('/<string:timer_id>/resume', methods=['POST'])
def resume_timer(timer_id):
    data = _json_body()
    return _respond(_engine().resume(_caller_id(data), timer_id))


@timers.route('/<string:timer_id>/complete', methods=['POST'])
def complete_timer(timer_id):
    data = _json_body()
    user_id = _caller_id(data)
    timer = _engine().complete(
        user_id,
        timer_id,
        note=_optional_str(data, 'note'),
        entry_date=_optional_date(data, 'date'),
    )
    return _respond(timer)


@timers.route('/<string:timer_id>/cancel', methods=['POST'])
def cancel_timer(timer_id):
    data = _json_body()
    return _respond(_engine().cancel(_caller_id(data), timer_id))


@timers.route('/active', methods=['GET'])
def get_active_timer():
    user_id = _caller_id(request.args)
    engine = _engine()
    timer = engine.active_timer(user_id)
    return jsonify({'timer': engine.serialize(timer) if timer else None})


@timers.route('', methods=['GET'])
def list_timers():
    args = request.args
    user_id = _caller_id(args)
    status = args.get('status')
    if status:
        try:
            status = TimerStatus(status.upper()).value
        except ValueError:
            raise RequestError('status must be one of RUNNING, PAUSED, COMPLETED, CANCELED')
    limit, offset = _paging(args)
    engine = _engine()
    items, total = engine.list_timers(
        user_id,
        status=status,
        project_id=args.get('project_id'),
        task_id=args.get('task_id'),
        started_after=_optional_datetime(args, 'started_after'),
        started_before=_optional_datetime(args, 'started_before'),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        'timers': [engine.serialize(t) for t in items],
        'meta': {'total': total, 'limit': limit, 'offset': offset},
    })


@timers.route('/stats', methods=['GET'])
def get_timer_stats():
    return jsonify(_engine().stats(_caller_id(request.args)))


@timers.route('/entries', methods=['GET'])
def list_time_entries():
    user_id = _caller_id(request.args)
    limit, offset = _paging(request.args)
    entries, total = _engine().time_entries(user_id, limit=limit, offset=offset)
    return jsonify({'entries': entries, 'meta': {'total': total, 'limit': limit, 'offset': offset}})


@timers.route('/<string:timer_id>', methods=['GET'])
def get_timer(timer_id):
    engine = _engine()
    return jsonify(engine.serialize(engine.get(_caller_id(request.args), timer_id)))


@timers.route('/<string:timer_id>', methods=['PATCH'])
def update_timer(timer_id):
    data = _json_body()
    user_id = _caller_id(data)
    changes = {}
    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        if key == 'billable':
            value = _optional_bool(data, key)
            if value is None:
                raise RequestError('billable cannot be null')
            changes[key] = value
        else:
            changes[key] = _optional_str(data, key)
    if not changes:
        raise RequestError(f"Nothing to update; editable fields are {', '.join(EDITABLE_FIELDS)}")
    return _respond(_engine().update_details(user_id, timer_id, **changes))
