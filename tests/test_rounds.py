from datetime import datetime, timedelta

from buzzmaster import db
from buzzmaster.models import Press, Round, TrophyWin, User, utcnow
from conftest import as_user, make_user


def _start(client, admin_headers, competition, **body):
    res = client.post('/api/round/start', json={'competition_id': competition.id, **body}, headers=admin_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()['round']


def _open_round(client, admin_headers, competition, **body):
    rnd = _start(client, admin_headers, competition, **body)
    assert client.post('/api/round/enable-buttons', json={}, headers=admin_headers).status_code == 200
    return rnd


def _press(client, user):
    return client.post('/api/press', headers=as_user(user))


def test_admin_actions_require_allowlisted_admin(client, players, room_factory):
    alice = players[0]
    _, competition = room_factory(players)
    res = client.post('/api/round/start', json={'competition_id': competition.id})
    assert res.status_code == 401
    res = client.post('/api/round/start', json={'competition_id': competition.id}, headers=as_user(alice))
    assert res.status_code == 403
    assert res.get_json() == {'error': 'Forbidden'}
    assert Round.query.count() == 0


def test_start_requires_active_competition(client, admin_headers):
    res = client.post('/api/round/start', json={}, headers=admin_headers)
    assert res.status_code == 400
    assert res.get_json()['error'] == 'No active competition found'


def test_start_rejects_bad_timer(client, admin_headers, players, room_factory):
    _, competition = room_factory(players)
    res = client.post('/api/round/start', json={
        'competition_id': competition.id, 'timer_enabled': True, 'timer_duration': 0,
    }, headers=admin_headers)
    assert res.status_code == 400


def test_start_supersedes_open_round(client, admin_headers, players, room_factory, recorder):
    room, competition = room_factory(players)
    first = _start(client, admin_headers, competition)
    second = _start(client, admin_headers, competition)
    assert db.session.get(Round, first['id']).ended_at is not None
    assert db.session.get(Round, second['id']).ended_at is None
    started = recorder.events('round:started')
    assert len(started) == 2
    assert started[0]['data']['roomId'] == room.id


def test_press_rejected_while_buttons_disabled(client, admin_headers, players, room_factory):
    _, competition = room_factory(players)
    _start(client, admin_headers, competition)
    res = _press(client, players[0])
    assert res.status_code == 409
    assert res.get_json()['error'] == 'Buttons are not enabled'
    assert Press.query.count() == 0


def test_press_requires_login(client, admin_headers, players, room_factory):
    _, competition = room_factory(players)
    _open_round(client, admin_headers, competition)
    assert client.post('/api/press').status_code == 401


def test_press_only_counts_for_own_room(client, admin_headers, players, room_factory):
    _, competition = room_factory(players[:2])
    outsider = make_user('mallory')
    _open_round(client, admin_headers, competition)
    assert _press(client, outsider).status_code == 400


def test_second_press_same_user_conflicts(client, admin_headers, players, room_factory):
    alice = players[0]
    _, competition = room_factory(players)
    _open_round(client, admin_headers, competition)
    assert _press(client, alice).status_code == 201
    res = _press(client, alice)
    assert res.status_code == 409
    assert res.get_json()['error'] == 'Already pressed in this round'
    assert Press.query.filter_by(user_id=alice.id).count() == 1


def test_first_presser_holds_the_round(client, admin_headers, players, room_factory, recorder):
    alice, bob, carol = players[:3]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition)
    recorder.clear()
    for user in (alice, bob, carol):
        assert _press(client, user).status_code == 201

    assert db.session.get(Round, rnd['id']).winner_user_id == alice.id
    assert recorder.types().count('press:new') == 3
    # Only the first press re-announces the round
    assert recorder.types().count('round:started') == 1
    queue = client.get(f"/api/round/{rnd['id']}/presses").get_json()['presses']
    assert [p['user_id'] for p in queue] == [alice.id, bob.id, carol.id]


def test_timed_round_scenario(client, admin_headers, players, room_factory):
    alice, bob = players[:2]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition, timer_enabled=True, timer_duration=30)
    assert rnd['has_timer'] is True
    assert rnd['timer_duration'] == 30

    before = utcnow()
    alice_press = _press(client, alice).get_json()['press']
    bob_press = _press(client, bob).get_json()['press']
    alice_deadline = datetime.fromisoformat(alice_press['timer_expires_at'])
    assert before + timedelta(seconds=29) <= alice_deadline <= utcnow() + timedelta(seconds=31)
    assert bob_press['timer_expires_at'] is None
    assert alice_press['timer_expired'] is False

    res = client.post('/api/round/evaluate', json={
        'press_id': alice_press['id'], 'is_correct': False, 'points': -1,
    }, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()['disabled_buttons'] is False
    assert db.session.get(User, alice.id).score == -1
    assert Press.query.filter_by(round_id=rnd['id']).count() == 2

    before = utcnow()
    res = client.post('/api/round/give-to-next', json={'press_id': alice_press['id']}, headers=admin_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body['next_user_id'] == bob.id
    assert db.session.get(Press, alice_press['id']) is None
    assert db.session.get(Round, rnd['id']).winner_user_id == bob.id
    bob_deadline = db.session.get(Press, bob_press['id']).timer_expires_at
    assert bob_deadline >= before + timedelta(seconds=29)
    # Evaluation penalty plus the hand-over penalty
    assert db.session.get(User, alice.id).score == -2


def test_give_to_next_with_empty_queue_changes_nothing(client, admin_headers, players, room_factory):
    alice = players[0]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition)
    press_id = _press(client, alice).get_json()['press']['id']

    res = client.post('/api/round/give-to-next', json={'press_id': press_id}, headers=admin_headers)
    assert res.status_code == 404
    assert res.get_json()['error'] == 'No one else in queue'
    assert db.session.get(Press, press_id) is not None
    assert db.session.get(Round, rnd['id']).winner_user_id == alice.id
    assert db.session.get(User, alice.id).score == 0


def test_give_to_next_rotates_through_queue(client, admin_headers, players, room_factory):
    alice, bob, carol = players[:3]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition)
    ids = [_press(client, u).get_json()['press']['id'] for u in (alice, bob, carol)]

    client.post('/api/round/give-to-next', json={'press_id': ids[0]}, headers=admin_headers)
    client.post('/api/round/give-to-next', json={'press_id': ids[1]}, headers=admin_headers)
    remaining = Press.query.filter_by(round_id=rnd['id']).all()
    assert [p.user_id for p in remaining] == [carol.id]
    assert db.session.get(Round, rnd['id']).winner_user_id == carol.id


def test_correct_answer_clears_queue_and_awards_trophy_once(
        client, admin_headers, players, room_factory, trophy, recorder):
    alice, bob = players[:2]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition)
    client.post('/api/round/enable-buttons', json={'trophy_id': trophy.id}, headers=admin_headers)
    assert recorder.events('buttons:enabled')[-1]['data']['round']['id'] == rnd['id']
    press_id = _press(client, alice).get_json()['press']['id']
    _press(client, bob)
    recorder.clear()

    res = client.post('/api/round/evaluate', json={
        'press_id': press_id, 'is_correct': True, 'points': 3,
    }, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()['disabled_buttons'] is True

    stored = db.session.get(Round, rnd['id'])
    assert stored.buttons_enabled is False
    assert stored.trophy_id is None
    assert Press.query.filter_by(round_id=rnd['id']).count() == 0
    assert db.session.get(User, alice.id).score == 3
    assert TrophyWin.query.filter_by(user_id=alice.id, trophy_id=trophy.id).count() == 1
    types = recorder.types()
    for expected in ('trophy:won', 'buttons:disabled', 'presses:cleared', 'scores:updated', 'press:evaluated'):
        assert expected in types

    # A retried evaluation finds nothing left to award
    res = client.post('/api/round/evaluate', json={
        'press_id': press_id, 'is_correct': True, 'points': 3,
    }, headers=admin_headers)
    assert res.status_code == 404
    assert TrophyWin.query.count() == 1
    assert recorder.types().count('trophy:won') == 1


def test_evaluate_validates_body(client, admin_headers, players, room_factory):
    _, competition = room_factory(players)
    _open_round(client, admin_headers, competition)
    res = client.post('/api/round/evaluate', json={'press_id': 1, 'is_correct': 'yes', 'points': 1},
                      headers=admin_headers)
    assert res.status_code == 400


def test_disable_buttons_resets_queue(client, admin_headers, players, room_factory, trophy, recorder):
    alice = players[0]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition, trophy_id=trophy.id)
    _press(client, alice)
    recorder.clear()

    res = client.post('/api/round/disable-buttons', json={}, headers=admin_headers)
    assert res.status_code == 200
    stored = db.session.get(Round, rnd['id'])
    assert stored.buttons_enabled is False
    assert stored.trophy_id is None
    assert Press.query.count() == 0
    assert recorder.types() == ['buttons:disabled', 'presses:cleared']

    # Re-enabling starts a fresh contest
    client.post('/api/round/enable-buttons', json={}, headers=admin_headers)
    assert _press(client, alice).status_code == 201


def test_enable_buttons_keeps_reward_unless_given(client, admin_headers, players, room_factory, trophy):
    _, competition = room_factory(players)
    rnd = _start(client, admin_headers, competition, trophy_id=trophy.id)
    client.post('/api/round/enable-buttons', json={}, headers=admin_headers)
    assert db.session.get(Round, rnd['id']).trophy_id == trophy.id
    client.post('/api/round/enable-buttons', json={'trophy_id': None}, headers=admin_headers)
    assert db.session.get(Round, rnd['id']).trophy_id is None


def test_end_round_rewards_first_presser(client, admin_headers, players, room_factory, recorder):
    alice, bob = players[:2]
    _, competition = room_factory(players)
    rnd = _open_round(client, admin_headers, competition)
    _press(client, bob)
    _press(client, alice)

    res = client.post('/api/round/end', json={}, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()['winner']['id'] == bob.id
    stored = db.session.get(Round, rnd['id'])
    assert stored.ended_at is not None
    assert stored.winner_user_id == bob.id
    assert db.session.get(User, bob.id).score == 1
    assert db.session.get(User, alice.id).score == 0
    assert 'round:ended' in recorder.types()

    assert client.get('/api/round/current').get_json()['round'] is None
    assert client.post('/api/round/end', json={}, headers=admin_headers).status_code == 400
