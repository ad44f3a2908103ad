def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_join_user(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    sio_client.emit('join_user', {'user_id': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0] == {'room': 'user:1'} for pkt in received)


def test_join_user_requires_user_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_user', {}, namespace='/ws')
    assert any(pkt['name'] == 'error' for pkt in sio_client.get_received('/ws'))


def test_transitions_push_timer_updates_to_user_room(sio_client, client, users, clock):
    uid = users[0]
    sio_client.emit('join_user', {'user_id': uid}, namespace='/ws')
    sio_client.get_received('/ws')  # flush

    timer = client.post('/api/timers/start', json={'user_id': uid}).get_json()
    clock.advance(3)
    client.post(f"/api/timers/{timer['id']}/pause", json={'user_id': uid})

    received = sio_client.get_received('/ws')
    updates = [pkt['args'][0]['timer'] for pkt in received if pkt['name'] == 'timer_update']
    assert [u['status'] for u in updates] == ['RUNNING', 'PAUSED']
    assert updates[-1]['recorded_elapsed_ms'] == 3_000
    awards = [pkt['args'][0] for pkt in received if pkt['name'] == 'xp_awarded']
    assert awards and awards[0]['action'] == 'TIMER_STARTED'


def test_other_users_rooms_stay_quiet(sio_client, client, users):
    sio_client.emit('join_user', {'user_id': users[1]}, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/timers/start', json={'user_id': users[0]})
    assert _events(sio_client, 'timer_update') == []


def test_leave_user_stops_updates(sio_client, client, users):
    uid = users[0]
    sio_client.emit('join_user', {'user_id': uid}, namespace='/ws')
    sio_client.emit('leave_user', {'user_id': uid}, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/timers/start', json={'user_id': uid})
    assert _events(sio_client, 'timer_update') == []
