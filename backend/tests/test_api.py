from sqlalchemy.exc import OperationalError

from codeduel import db
from codeduel.models import MATCH_COMPLETED, Match, Solution, User
from conftest import FakeJudge, auth_headers, make_token

ARRAY_EASY = {'topic': ['ARRAY'], 'Difficulty': ['EASY']}


def _create(client, user='alice', body=ARRAY_EASY):
    return client.post('/match-with-your-buddy?action=create', json=body, headers=auth_headers(user))


def _join(client, code, user='bob', body=ARRAY_EASY):
    return client.post(f'/match-with-your-buddy?action=join&code={code}', json=body,
                       headers=auth_headers(user, user.capitalize()))


def test_index(client):
    assert client.get('/').status_code == 200


def test_missing_token_is_auth_missing(client):
    res = client.post('/match-with-your-buddy?action=create', json=ARRAY_EASY)
    assert res.status_code == 401
    assert res.get_json() == {'success': False, 'code': 'AUTH_MISSING', 'message': 'Access token is missing'}


def test_bad_token_is_auth_invalid(client):
    res = client.get('/me', headers={'Authorization': f"Bearer {make_token('alice', secret='wrong')}"})
    assert res.status_code == 401
    assert res.get_json()['code'] == 'AUTH_INVALID'


def test_sync_user_creates_local_user(client):
    res = client.post('/sync-user', headers=auth_headers('alice', 'Alice'))
    assert res.status_code == 200
    assert res.get_json()['user']['username'] == 'Alice'
    assert db.session.get(User, 'alice') is not None
    # Session login carries the identity without a token
    assert client.get('/me').get_json()['user']['id'] == 'alice'


def test_create_returns_code_and_expiry(client):
    res = _create(client)
    assert res.status_code == 200
    data = res.get_json()
    assert data['success'] is True
    assert len(data['joiningCode']) == 6
    assert data['matchId']
    assert data['expiresAt']


def test_create_requires_filters(client):
    res = _create(client, body={'topic': [], 'Difficulty': ['EASY']})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'INVALID_REQUEST'


def test_invalid_action(client):
    res = client.post('/match-with-your-buddy?action=dance', json={}, headers=auth_headers('alice'))
    assert res.status_code == 400
    assert res.get_json()['code'] == 'INVALID_REQUEST'


def test_join_pairs_players_and_sets_cookie(flask_app, question):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    created = _create(alice).get_json()
    res = _join(bob, created['joiningCode'])
    assert res.status_code == 200
    data = res.get_json()
    assert data['matchId'] == created['matchId']
    assert data['questionId'] == question.id
    assert bob.get_cookie('matchId').value == data['matchId']

    match = db.session.get(Match, data['matchId'])
    assert match.team.participant_ids() == ['alice', 'bob']
    assert db.session.get(User, 'bob').username == 'Bob'


def test_join_with_other_topic_is_rejected(flask_app, question):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    res = _join(bob, code, body={'topic': ['GRAPH'], 'Difficulty': ['EASY']})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'CONSTRAINT_MISMATCH'
    assert Match.query.count() == 0


def test_join_failures(flask_app, question, services):
    alice, bob, carol = flask_app.test_client(), flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']

    assert _join(alice, code, user='alice').get_json()['code'] == 'SELF_JOIN'
    assert _join(bob, 'ZZZZZZ').status_code == 404
    assert _join(bob, code).status_code == 200
    res = _join(carol, code, user='carol')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'ALREADY_MATCHED'


def test_expired_code(flask_app, question, services):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    services.join_codes.get(code).expires_at = 0
    res = _join(bob, code)
    assert res.status_code == 410
    assert res.get_json()['code'] == 'EXPIRED'


def test_join_without_questions_releases_code(flask_app):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    res = _join(bob, code)
    assert res.status_code == 404
    assert res.get_json()['message'] == 'No questions available'
    # The code was not consumed by the failed pairing
    entry = flask_app.extensions['codeduel'].join_codes.get(code)
    assert entry.match_id is None


def test_check_reports_status_for_creator_only(flask_app, question):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    check = f'/match-with-your-buddy?action=check&code={code}'

    waiting = alice.post(check, headers=auth_headers('alice')).get_json()
    assert waiting['status'] == 'waiting'
    assert waiting['matchId'] is None
    assert bob.post(check, headers=auth_headers('bob')).status_code == 403

    match_id = _join(bob, code).get_json()['matchId']
    matched = alice.post(check, headers=auth_headers('alice')).get_json()
    assert matched == {'success': True, 'status': 'matched', 'matchId': match_id,
                       'expiresAt': waiting['expiresAt']}
    assert alice.get_cookie('matchId').value == match_id


def test_get_match_hides_hidden_cases(flask_app, question):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    match_id = _join(bob, code).get_json()['matchId']
    res = bob.get(f'/playground/{match_id}', headers=auth_headers('bob'))
    assert res.status_code == 200
    q = res.get_json()['match']['question']
    assert q['test_cases'] == {'public': [{'input': '1 2', 'output': '3'}]}
    assert bob.get('/playground/nope', headers=auth_headers('bob')).status_code == 404


def test_submit_without_match_cookie(client, fake_judge):
    res = client.post('/playground', json={'answer': 'x', 'language': 'PYTHON'}, headers=auth_headers('alice'))
    assert res.status_code == 400
    assert res.get_json()['code'] == 'INVALID_REQUEST'


def test_full_duel_flow(flask_app, question, services, sio_factory):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    created = _create(alice).get_json()
    match_id = _join(bob, created['joiningCode']).get_json()['matchId']
    alice.post(f"/match-with-your-buddy?action=check&code={created['joiningCode']}",
               headers=auth_headers('alice'))

    alice_sock = sio_factory('alice')
    alice_sock.emit('match_message', {'type': 'PLAYER_JOINED', 'matchId': match_id,
                                      'data': {'username': 'Alice'}}, namespace='/ws')
    alice_sock.get_received('/ws')

    services.judge = FakeJudge(time='0.1')
    first = alice.post('/playground', json={'answer': 'print(3)', 'language': 'python'},
                       headers=auth_headers('alice')).get_json()
    assert first['execution']['allPassed']
    assert first['matchResult']['isComplete'] is False

    services.judge = FakeJudge(time='0.4')
    second = bob.post('/playground', json={'answer': 'print(3)', 'language': 'python'},
                      headers=auth_headers('bob')).get_json()
    result = second['matchResult']
    assert result['isComplete'] is True
    assert result['winner']['userId'] == 'alice'
    assert result['loser']['userId'] == 'bob'

    match = db.session.get(Match, match_id)
    assert match.status == MATCH_COMPLETED
    assert match.winner_id == 'alice'

    completed = [p['args'][0] for p in alice_sock.get_received('/ws') if p['name'] == 'match_message']
    assert completed[-1]['type'] == 'MATCH_COMPLETED'
    assert completed[-1]['data']['winnerId'] == 'alice'


def test_submit_unsupported_language(flask_app, question, fake_judge):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    _join(bob, code)
    res = bob.post('/playground', json={'answer': 'x', 'language': 'COBOL'}, headers=auth_headers('bob'))
    assert res.status_code == 400
    assert res.get_json()['code'] == 'UNSUPPORTED_LANGUAGE'
    assert fake_judge.submitted == []


def test_db_reset_seeds_questions(flask_app):
    from codeduel.models import Question
    result = flask_app.test_cli_runner().invoke(args=['db-reset'])
    assert 'seeded with 3 questions' in result.output
    assert Question.query.count() == 3


def test_each_request_resolves_its_own_token(flask_app):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    assert alice.get('/me', headers=auth_headers('alice')).get_json()['user']['id'] == 'alice'
    assert bob.get('/me', headers=auth_headers('bob')).get_json()['user']['id'] == 'bob'
    assert alice.get('/me', headers=auth_headers('alice')).get_json()['user']['id'] == 'alice'


def test_token_wins_over_logged_in_session(client):
    client.post('/sync-user', headers=auth_headers('alice', 'Alice'))
    assert client.get('/me', headers=auth_headers('bob')).get_json()['user']['id'] == 'bob'
    bad = {'Authorization': f"Bearer {make_token('alice', secret='wrong')}"}
    res = client.get('/me', headers=bad)
    assert res.status_code == 401
    assert res.get_json()['code'] == 'AUTH_INVALID'
    # Without a token the session still identifies the user
    assert client.get('/me').get_json()['user']['id'] == 'alice'


def _failing_commit():
    raise OperationalError('COMMIT', {}, Exception('disk I/O error'))


def test_join_commit_failure_is_persistence_error_and_releases_code(flask_app, question, services, monkeypatch):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    db.session.add(User(id='bob', username='Bob'))
    db.session.commit()

    monkeypatch.setattr(db.session, 'commit', _failing_commit)
    res = _join(bob, code)
    monkeypatch.undo()

    assert res.status_code == 500
    assert res.get_json()['code'] == 'PERSISTENCE_ERROR'
    assert Match.query.count() == 0
    assert services.join_codes.get(code).match_id is None
    assert _join(bob, code).status_code == 200


def test_submit_commit_failure_is_persistence_error(flask_app, question, fake_judge, monkeypatch):
    alice, bob = flask_app.test_client(), flask_app.test_client()
    code = _create(alice).get_json()['joiningCode']
    _join(bob, code)

    monkeypatch.setattr(db.session, 'commit', _failing_commit)
    res = bob.post('/playground', json={'answer': 'x', 'language': 'PYTHON'},
                   headers=auth_headers('bob', 'Bob'))
    monkeypatch.undo()

    assert res.status_code == 500
    assert res.get_json()['code'] == 'PERSISTENCE_ERROR'
    assert Solution.query.count() == 0
    assert fake_judge.submitted == []
