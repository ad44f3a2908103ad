def _start(client, user_id, **extra):
    return client.post('/api/timers/start', json={'user_id': user_id, **extra})


def test_start_pause_resume_complete_flow(client, users, clock):
    uid = users[0]
    res = _start(client, uid, project_id='p1', note='code review', billable=True)
    assert res.status_code == 201
    timer = res.get_json()
    assert timer['status'] == 'RUNNING'
    assert timer['recorded_elapsed_ms'] == 0
    assert timer['billable'] is True
    assert timer['paused_at'] is None and timer['ended_at'] is None

    clock.advance(10)
    paused = client.post(f"/api/timers/{timer['id']}/pause", json={'user_id': uid}).get_json()
    assert paused['status'] == 'PAUSED'
    assert paused['recorded_elapsed_ms'] == 10_000
    assert paused['current_elapsed_ms'] == 10_000
    assert paused['paused_at'] is not None

    clock.advance(5)
    resumed = client.post(f"/api/timers/{timer['id']}/resume", json={'user_id': uid}).get_json()
    assert resumed['status'] == 'RUNNING'
    assert resumed['total_paused_ms'] == 5_000

    clock.advance(10)
    live = client.get(f"/api/timers/active?user_id={uid}").get_json()['timer']
    assert live['id'] == timer['id']
    assert live['current_elapsed_ms'] == 20_000
    assert live['recorded_elapsed_ms'] == 10_000

    res = client.post(f"/api/timers/{timer['id']}/complete", json={'user_id': uid, 'note': 'done'})
    assert res.status_code == 200
    done = res.get_json()
    assert done['status'] == 'COMPLETED'
    assert done['recorded_elapsed_ms'] == 20_000
    assert done['note'] == 'done'
    assert done['ended_at'] is not None

    assert client.get(f"/api/timers/active?user_id={uid}").get_json() == {'timer': None}


def test_second_start_returns_conflict_with_active_id(client, users):
    first = _start(client, users[0]).get_json()
    res = _start(client, users[0])
    assert res.status_code == 409
    body = res.get_json()
    assert body['active_timer_id'] == first['id']
    assert 'error' in body


def test_invalid_transition_reports_current_status(client, users):
    uid = users[0]
    timer = _start(client, uid).get_json()
    client.post(f"/api/timers/{timer['id']}/cancel", json={'user_id': uid})
    res = client.post(f"/api/timers/{timer['id']}/complete", json={'user_id': uid})
    assert res.status_code == 409
    assert res.get_json()['status'] == 'CANCELED'
    assert res.get_json()['timer_id'] == timer['id']


def test_foreign_timer_is_not_found(client, users):
    timer = _start(client, users[0]).get_json()
    res = client.post(f"/api/timers/{timer['id']}/pause", json={'user_id': users[1]})
    assert res.status_code == 404
    assert res.get_json() == {'error': 'Timer not found'}
    assert client.get(f"/api/timers/{timer['id']}?user_id={users[1]}").status_code == 404


def test_unknown_or_missing_user(client, users):
    assert _start(client, 9999).status_code == 404
    res = client.post('/api/timers/start', json={})
    assert res.status_code == 400
    assert client.post('/api/timers/start', json={'user_id': 'abc'}).status_code == 400


def test_bad_input_is_rejected(client, users):
    uid = users[0]
    assert _start(client, uid, billable='yes').status_code == 400
    timer = _start(client, uid).get_json()
    res = client.post(f"/api/timers/{timer['id']}/complete", json={'user_id': uid, 'date': 'tomorrow'})
    assert res.status_code == 400
    assert client.get(f'/api/timers?user_id={uid}&status=LOST').status_code == 400
    assert client.get(f'/api/timers?user_id={uid}&limit=0').status_code == 400
    assert client.get(f'/api/timers?user_id={uid}&limit=many').status_code == 400
    # The failed complete left the timer untouched
    assert client.get(f"/api/timers/{timer['id']}?user_id={uid}").get_json()['status'] == 'RUNNING'


def test_complete_creates_time_entry_and_awards_xp(client, users, clock):
    uid = users[0]
    timer = _start(client, uid, note='bugfix').get_json()
    clock.advance(125)
    client.post(f"/api/timers/{timer['id']}/complete", json={'user_id': uid, 'date': '2025-02-03'})

    entries = client.get(f'/api/timers/entries?user_id={uid}').get_json()
    assert entries['meta']['total'] == 1
    entry = entries['entries'][0]
    assert entry['minutes'] == 3
    assert entry['date'] == '2025-02-03'
    assert entry['description'] == 'bugfix'

    xp = client.get(f'/api/users/{uid}/xp').get_json()
    assert xp['total_xp'] == 15
    assert xp['level'] == 1
    assert xp['xp_to_next_level'] == 85

    history = client.get(f'/api/users/{uid}/xp/history').get_json()['history']
    assert sorted(h['action'] for h in history) == ['TIMER_COMPLETED', 'TIMER_STARTED']


def test_cancel_awards_only_start_xp(client, users):
    uid = users[0]
    timer = _start(client, uid).get_json()
    res = client.post(f"/api/timers/{timer['id']}/cancel", json={'user_id': uid})
    assert res.get_json()['status'] == 'CANCELED'
    assert client.get(f'/api/users/{uid}/xp').get_json()['total_xp'] == 5
    assert client.get(f'/api/timers/entries?user_id={uid}').get_json()['entries'] == []


def test_list_get_and_patch(client, users, clock):
    uid = users[0]
    first = _start(client, uid, project_id='alpha').get_json()
    client.post(f"/api/timers/{first['id']}/complete", json={'user_id': uid})
    clock.advance(60)
    second = _start(client, uid, project_id='beta').get_json()

    listing = client.get(f'/api/timers?user_id={uid}').get_json()
    assert listing['meta'] == {'total': 2, 'limit': 50, 'offset': 0}
    assert [t['id'] for t in listing['timers']] == [second['id'], first['id']]

    only_alpha = client.get(f'/api/timers?user_id={uid}&project_id=alpha').get_json()
    assert [t['id'] for t in only_alpha['timers']] == [first['id']]

    completed = client.get(f'/api/timers?user_id={uid}&status=completed').get_json()
    assert [t['id'] for t in completed['timers']] == [first['id']]

    res = client.patch(f"/api/timers/{second['id']}", json={'user_id': uid, 'note': 'renamed', 'billable': True})
    assert res.status_code == 200
    assert res.get_json()['note'] == 'renamed'
    assert res.get_json()['billable'] is True

    res = client.patch(f"/api/timers/{first['id']}", json={'user_id': uid, 'note': 'rewrite history'})
    assert res.status_code == 409
    assert client.patch(f"/api/timers/{second['id']}", json={'user_id': uid}).status_code == 400

    fetched = client.get(f"/api/timers/{second['id']}?user_id={uid}").get_json()
    assert fetched['note'] == 'renamed'


def test_stats_endpoint(client, users, clock):
    uid = users[0]
    timer = _start(client, uid).get_json()
    clock.advance(minutes=15)
    client.post(f"/api/timers/{timer['id']}/complete", json={'user_id': uid})
    stats = client.get(f'/api/timers/stats?user_id={uid}').get_json()
    assert stats['total_ms'] == 15 * 60_000
    assert stats['sessions'] == 1
    assert stats['today_ms'] == 15 * 60_000


def test_logged_in_user_is_the_caller(client, users):
    res = client.post('/login', json={'username': 'bob', 'password': 'password'})
    assert res.status_code == 200
    timer = client.post('/api/timers/start', json={'user_id': users[0]}).get_json()
    # Session identity wins over the body
    assert timer['user_id'] == users[1]


def test_register_and_login(client):
    res = client.post('/register', json={'username': 'carol', 'password': 's3cret'})
    assert res.status_code == 201
    assert res.get_json()['user']['total_xp'] == 0
    assert client.post('/register', json={'username': 'carol', 'password': 'x'}).status_code == 400
    assert client.post('/login', json={'username': 'carol', 'password': 'nope'}).status_code == 401
    assert client.get('/check_login').get_json()['user']['username'] == 'carol'


def test_non_object_json_body_is_rejected(client, users):
    uid = users[0]
    res = client.post('/api/timers/start', json=[uid])
    assert res.status_code == 400
    assert res.get_json() == {'error': 'JSON body must be an object'}
    timer = _start(client, uid).get_json()
    assert client.patch(f"/api/timers/{timer['id']}", json='note').status_code == 400
    assert client.post(f"/api/timers/{timer['id']}/pause", json=[uid]).status_code == 400
    assert client.post('/login', json=['bob', 'password']).status_code == 401
