from buzzmaster import db
from buzzmaster.models import Answer, Question, TrophyWin, User
from buzzmaster.services.questions import normalize_answer, question_points
from conftest import as_user, make_user


def _create(client, admin_headers, **body):
    payload = {
        'text': 'Capital of France?',
        'type': 'multiple_choice',
        'options': ['Paris', 'Lyon', 'Nice'],
        'correct_answer': 'Paris',
        'points': 3,
        'scoring_type': 'descending',
    }
    payload.update(body)
    return client.post('/api/questions/create', json=payload, headers=admin_headers)


def _send(client, admin_headers, question_id, competition, **body):
    return client.post('/api/questions/send', json={
        'question_id': question_id, 'competition_id': competition.id, **body,
    }, headers=admin_headers)


def _answer(client, user, question_id, competition, text):
    return client.post('/api/questions/answer', json={
        'question_id': question_id, 'competition_id': competition.id, 'answer': text,
    }, headers=as_user(user))


def _evaluate(client, admin_headers, question_id):
    return client.post('/api/questions/evaluate', json={'question_id': question_id}, headers=admin_headers)


def test_question_points():
    assert [question_points('first_only', 5, i) for i in range(3)] == [5, 0, 0]
    assert [question_points('descending', 3, i) for i in range(5)] == [3, 2, 1, 1, 1]
    assert [question_points('all_equal', 2, i) for i in range(3)] == [2, 2, 2]
    assert normalize_answer('  New   York ') == 'new york'


def test_create_validation(client, admin_headers):
    assert _create(client, admin_headers, text='').status_code == 400
    assert _create(client, admin_headers, options=['Paris']).status_code == 400
    assert _create(client, admin_headers, correct_answer='Marseille').status_code == 400
    assert _create(client, admin_headers, scoring_type='winner_takes_all').status_code == 400
    assert _create(client, admin_headers, type='essay').status_code == 400
    assert _create(client, admin_headers, points='three').status_code == 400
    assert Question.query.count() == 0

    res = _create(client, admin_headers, type='freetext', correct_answer='Everest', points=None, scoring_type=None)
    assert res.status_code == 201
    question = res.get_json()['question']
    assert question['options'] is None
    assert question['points'] == 1
    assert question['scoring_type'] == 'all_equal'


def test_only_admins_manage_questions(client, players):
    res = _create(client, as_user(players[0]))
    assert res.status_code == 403
    assert client.get('/api/questions/list', headers=as_user(players[0])).status_code == 403


def test_send_hides_the_correct_answer(client, admin_headers, players, room_factory, recorder):
    room, competition = room_factory(players)
    question_id = _create(client, admin_headers).get_json()['question']['id']
    res = _send(client, admin_headers, question_id, competition)
    assert res.status_code == 200
    assert res.get_json()['usage']['status'] == 'active'

    sent = recorder.events('question:sent')[0]['data']
    assert sent['roomId'] == room.id
    assert sent['question']['options'] == ['Paris', 'Lyon', 'Nice']
    assert 'correct_answer' not in sent['question']

    assert _send(client, admin_headers, question_id, competition).status_code == 409
    assert _send(client, admin_headers, 999, competition).status_code == 404


def test_multiple_choice_scored_on_evaluate(client, admin_headers, players, room_factory, trophy, recorder):
    alice, bob, carol, dave = players
    room, competition = room_factory([alice, bob, carol])
    question_id = _create(client, admin_headers).get_json()['question']['id']
    _send(client, admin_headers, question_id, competition, trophy_id=trophy.id)

    res = _answer(client, alice, question_id, competition, ' paris ')
    assert res.status_code == 201
    assert res.get_json()['answer']['is_correct'] is True
    assert _answer(client, bob, question_id, competition, 'Lyon').get_json()['answer']['is_correct'] is False
    assert _answer(client, carol, question_id, competition, 'PARIS').status_code == 201
    assert recorder.types().count('question:answered') == 3
    # Nothing is scored until the host evaluates
    assert db.session.get(User, alice.id).score == 0

    res = _answer(client, alice, question_id, competition, 'Nice')
    assert res.status_code == 409
    assert res.get_json()['error'] == 'Already answered this question'
    assert _answer(client, dave, question_id, competition, 'Paris').status_code == 403

    recorder.clear()
    res = _evaluate(client, admin_headers, question_id)
    assert res.status_code == 200
    body = res.get_json()
    assert body['winner_id'] == alice.id
    assert body['usage']['status'] == 'completed'
    assert [a['points'] for a in body['answers']] == [3, 0, 2]
    assert all(a['reviewed'] for a in body['answers'])

    assert db.session.get(User, alice.id).score == 3
    assert db.session.get(User, bob.id).score == 0
    assert db.session.get(User, carol.id).score == 2
    assert TrophyWin.query.filter_by(user_id=alice.id, source='question').count() == 1
    assert recorder.types() == ['trophy:won', 'question:completed', 'scores:updated']
    assert recorder.events('question:completed')[0]['data']['roomId'] == room.id

    res = _answer(client, dave, question_id, competition, 'Paris')
    assert res.status_code == 400
    assert _evaluate(client, admin_headers, question_id).status_code == 404
    assert db.session.get(User, alice.id).score == 3


def test_first_only_scores_one_answer(client, admin_headers, players, room_factory):
    alice, bob = players[:2]
    _, competition = room_factory([alice, bob])
    question_id = _create(client, admin_headers, scoring_type='first_only', points=5).get_json()['question']['id']
    _send(client, admin_headers, question_id, competition)
    _answer(client, alice, question_id, competition, 'Paris')
    _answer(client, bob, question_id, competition, 'Paris')
    _evaluate(client, admin_headers, question_id)
    assert db.session.get(User, alice.id).score == 5
    assert db.session.get(User, bob.id).score == 0


def test_freetext_answers_are_graded_once(client, admin_headers, players, room_factory, recorder):
    alice, bob = players[:2]
    _, competition = room_factory([alice, bob])
    question_id = _create(client, admin_headers, type='freetext', text='Highest mountain?',
                          correct_answer='Everest', options=None, points=2).get_json()['question']['id']
    _send(client, admin_headers, question_id, competition)

    answer = _answer(client, alice, question_id, competition, 'Mt Everest').get_json()['answer']
    assert answer['is_correct'] is False
    assert answer['reviewed'] is False

    recorder.clear()
    res = client.post('/api/questions/grade', json={'answer_id': answer['id'], 'is_correct': True},
                      headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()['answer']['points'] == 2
    assert db.session.get(User, alice.id).score == 2
    assert recorder.types() == ['scores:updated']

    res = client.post('/api/questions/grade', json={'answer_id': answer['id'], 'is_correct': False},
                      headers=admin_headers)
    assert res.status_code == 409
    assert res.get_json()['error'] == 'Answer already graded'
    assert db.session.get(User, alice.id).score == 2
    assert db.session.get(Answer, answer['id']).is_correct is True

    late = _answer(client, bob, question_id, competition, 'K2').get_json()['answer']
    body = _evaluate(client, admin_headers, question_id).get_json()
    assert body['winner_id'] == alice.id
    graded = db.session.get(Answer, late['id'])
    assert graded.reviewed is True
    assert graded.points == 0
    assert db.session.get(User, alice.id).score == 2


def test_grade_validation(client, admin_headers, players, room_factory):
    alice = players[0]
    _, competition = room_factory([alice])
    mc_id = _create(client, admin_headers).get_json()['question']['id']
    _send(client, admin_headers, mc_id, competition)
    mc_answer = _answer(client, alice, mc_id, competition, 'Paris').get_json()['answer']

    res = client.post('/api/questions/grade', json={'answer_id': mc_answer['id'], 'is_correct': 'yes'},
                      headers=admin_headers)
    assert res.status_code == 400
    res = client.post('/api/questions/grade', json={'answer_id': mc_answer['id'], 'is_correct': True},
                      headers=admin_headers)
    assert res.status_code == 400
    res = client.post('/api/questions/grade', json={'answer_id': 999, 'is_correct': True},
                      headers=admin_headers)
    assert res.status_code == 404


def test_answer_needs_a_sent_question(client, admin_headers, players, room_factory):
    alice = players[0]
    _, competition = room_factory([alice])
    question_id = _create(client, admin_headers).get_json()['question']['id']
    assert _answer(client, alice, question_id, competition, 'Paris').status_code == 404
    assert _answer(client, alice, question_id, competition, '   ').status_code == 400
    assert client.post('/api/questions/answer', json={}).status_code == 401


def test_list_by_competition(client, admin_headers, players, room_factory):
    alice = players[0]
    _, competition = room_factory([alice])
    sent_id = _create(client, admin_headers).get_json()['question']['id']
    draft_id = _create(client, admin_headers, text='Capital of Spain?', options=['Madrid', 'Seville'],
                       correct_answer='Madrid').get_json()['question']['id']
    _send(client, admin_headers, sent_id, competition)
    _answer(client, alice, sent_id, competition, 'Paris')

    listed = client.get(f'/api/questions/list?competition_id={competition.id}',
                        headers=admin_headers).get_json()['questions']
    by_id = {q['id']: q for q in listed}
    assert by_id[sent_id]['status'] == 'active'
    assert [a['username'] for a in by_id[sent_id]['answers']] == ['alice']
    assert by_id[draft_id]['status'] == 'draft'
    assert by_id[draft_id]['answers'] == []

    everything = client.get('/api/questions/list', headers=admin_headers).get_json()['questions']
    counts = {q['id']: q['usage_count'] for q in everything}
    assert counts == {sent_id: 1, draft_id: 0}
