from buzzmaster import db
from buzzmaster.models import Challenge, RoomMembership, User
from conftest import as_user, make_user


def _start(client, admin_headers, room, **body):
    res = client.post('/api/challenges/start', json={'room_id': room.id, **body}, headers=admin_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()['challenge']


def _eliminate(client, user, **body):
    return client.post('/api/challenges/eliminate', json=body, headers=as_user(user))


def _bet(client, user, all_in=True):
    return client.post('/api/challenges/bet', json={'all_in': all_in}, headers=as_user(user))


def test_start_snapshots_members(client, admin_headers, players, room_factory, recorder):
    room, _ = room_factory(players)
    challenge = _start(client, admin_headers, room, config={'chill_mode': False})
    ids = [u.id for u in players]
    assert challenge['participants'] == ids
    assert challenge['alive'] == ids
    assert challenge['results'] == {}
    assert challenge['bets'] == {}
    assert challenge['type'] == 'arkanoid'
    event = recorder.events('challenge:started')[0]['data']
    assert event['roomId'] == room.id
    assert event['alive'] == ids


def test_start_ends_previous_challenge_in_room(client, admin_headers, players, room_factory):
    room, _ = room_factory(players)
    first = _start(client, admin_headers, room)
    second = _start(client, admin_headers, room)
    assert db.session.get(Challenge, first['id']).status == 'ended'
    assert db.session.get(Challenge, second['id']).status == 'active'
    assert Challenge.query.filter_by(room_id=room.id, status='active').count() == 1


def test_start_unknown_room(client, admin_headers):
    res = client.post('/api/challenges/start', json={'room_id': 42}, headers=admin_headers)
    assert res.status_code == 404


def test_normal_mode_ends_with_one_left(client, admin_headers, players, room_factory, recorder):
    room, _ = room_factory(players)
    challenge_id = _start(client, admin_headers, room)['id']
    a, b, c, d = players

    for user, alive_left in ((a, 3), (b, 2)):
        body = _eliminate(client, user, bricks=5, score=100).get_json()
        assert body['ended'] is False
        assert body['alive_count'] == alive_left
        assert db.session.get(Challenge, challenge_id).status == 'active'

    body = _eliminate(client, c, bricks=5, score=100).get_json()
    assert body['ended'] is True
    assert db.session.get(Challenge, challenge_id).status == 'ended'
    assert recorder.types().count('challenge:playerEliminated') == 3
    assert recorder.types().count('challenge:ended') == 1
    ranking = recorder.events('challenge:ended')[0]['data']['ranking']
    assert ranking[0]['user_id'] == d.id
    assert ranking[0]['survivor'] is True


def test_chill_mode_waits_for_everyone(client, admin_headers, players, room_factory):
    room, _ = room_factory(players)
    challenge_id = _start(client, admin_headers, room, config={'chillMode': True})['id']
    for idx, user in enumerate(players):
        body = _eliminate(client, user, bricks=idx, score=0).get_json()
        assert body['alive_count'] == len(players) - idx - 1
        if idx < len(players) - 1:
            assert body['ended'] is False
            assert db.session.get(Challenge, challenge_id).status == 'active'
    assert body['ended'] is True
    challenge = db.session.get(Challenge, challenge_id)
    assert challenge.status == 'ended'
    ranking = challenge.to_dict()['ranking']
    # Nobody survived; the last one out ranks first
    assert ranking[0]['user_id'] == players[-1].id
    assert [r['points'] for r in ranking] == [10, 6, 4, 2]


def test_two_player_scenario(client, admin_headers, room_factory, recorder):
    x = make_user('xavier')
    y = make_user('yolanda')
    room, _ = room_factory([x, y])
    _start(client, admin_headers, room)

    body = _eliminate(client, x, bricks=10).get_json()
    assert body['ended'] is True
    ranking = body['ranking']
    assert [(r['user_id'], r['place'], r['points']) for r in ranking] == [(y.id, 1, 10), (x.id, 2, 6)]
    assert ranking[0]['username'] == 'yolanda'
    assert db.session.get(User, y.id).score == 10
    assert db.session.get(User, x.id).score == 6
    assert 'scores:updated' in recorder.types()


def test_all_in_bets_settle(client, admin_headers, room_factory, recorder):
    alice = make_user('alice', score=20)
    bob = make_user('bob', score=15)
    carol = make_user('carol', score=0)
    room, _ = room_factory([alice, bob, carol])
    challenge_id = _start(client, admin_headers, room)['id']

    assert _bet(client, alice).status_code == 200
    assert _bet(client, bob).status_code == 200
    placed = recorder.events('challenge:betPlaced')
    assert [e['data']['user_id'] for e in placed] == [alice.id, bob.id]
    assert placed[0]['data']['roomId'] == room.id
    bets = db.session.get(Challenge, challenge_id).bets_map
    assert bets[str(alice.id)] == {'all_in': True, 'current_score': 20}
    assert bets[str(bob.id)] == {'all_in': True, 'current_score': 15}

    _eliminate(client, carol, bricks=1, score=10)
    body = _eliminate(client, bob, bricks=50, score=900).get_json()
    assert body['ended'] is True

    assert db.session.get(User, alice.id).score == 2 * 20 + 10
    assert db.session.get(User, bob.id).score == 0
    assert db.session.get(User, carol.id).score == 4


def test_bet_without_challenge(client, players, room_factory):
    room_factory(players)
    res = _bet(client, players[0])
    assert res.status_code == 400


def test_duplicate_report_is_ignored(client, admin_headers, players, room_factory):
    room, _ = room_factory(players)
    challenge_id = _start(client, admin_headers, room)['id']
    a = players[0]
    _eliminate(client, a, bricks=3)
    res = _eliminate(client, a, bricks=99)
    assert res.status_code == 200
    assert res.get_json()['ignored'] is True
    challenge = db.session.get(Challenge, challenge_id)
    assert challenge.results_map[str(a.id)]['bricks'] == 3
    assert len(challenge.alive_ids) == 3


def test_late_joiner_is_not_alive(client, admin_headers, players, room_factory):
    room, _ = room_factory(players[:3])
    challenge_id = _start(client, admin_headers, room)['id']
    late = players[3]
    db.session.add(RoomMembership(room_id=room.id, user_id=late.id))
    db.session.commit()

    res = _eliminate(client, late, bricks=1)
    assert res.status_code == 409
    assert str(late.id) not in db.session.get(Challenge, challenge_id).results_map


def test_report_after_end_is_harmless(client, admin_headers, players, room_factory):
    a, b = players[:2]
    room, _ = room_factory([a, b])
    _start(client, admin_headers, room)
    _eliminate(client, a)
    res = _eliminate(client, b)
    assert res.status_code == 200
    assert res.get_json() == {'success': True, 'already_ended': True}
    # Settlement ran exactly once
    assert db.session.get(User, b.id).score == 10


def test_eliminate_rejects_non_numeric_metrics(client, admin_headers, players, room_factory):
    room, _ = room_factory(players)
    _start(client, admin_headers, room)
    assert _eliminate(client, players[0], bricks='lots').status_code == 400


def test_status(client, admin_headers, players, room_factory):
    room, _ = room_factory(players)
    assert client.get(f'/api/challenges/status?room_id={room.id}').get_json() == {'active': False}
    challenge_id = _start(client, admin_headers, room)['id']
    body = client.get(f'/api/challenges/status?room_id={room.id}').get_json()
    assert body['active'] is True
    assert body['id'] == challenge_id
    assert client.get('/api/challenges/status').status_code == 400
