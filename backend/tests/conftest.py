import os
import sys
import jwt
import pytest
from flask import g, request_started

# Ensure the backend root (containing the `codeduel` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from codeduel import create_app, db, socketio
from codeduel.errors import ExecutionTimeout
from codeduel.models import Question


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET = 'jwt-test-secret'
    JWT_ALGORITHMS = ['HS256']
    JOIN_CODE_TTL_SEC = 1800
    JOIN_CODE_LENGTH = 6
    JUDGE0_URL = 'http://judge.invalid'
    JUDGE_MAX_WAIT_SEC = 0.5
    JUDGE_POLL_INTERVAL_SEC = 0
    SOCKETIO_ASYNC_MODE = 'threading'


class FakeJudge:
    """Stands in for Judge0: echoes the expected output unless told otherwise.

    ``outputs`` maps stdin -> stdout; ``fail_inputs`` makes the run time out.
    """

    def __init__(self, outputs=None, fail_inputs=(), time='0.1', memory=1000):
        self.outputs = outputs or {}
        self.fail_inputs = set(fail_inputs)
        self.time = time
        self.memory = memory
        self.submitted = []
        self._runs = {}

    def submit(self, source_code, lang_id, stdin, expected_output):
        token = f'tok-{len(self.submitted) + 1}'
        self.submitted.append({'token': token, 'source': source_code, 'language_id': lang_id,
                               'stdin': stdin, 'expected_output': expected_output})
        self._runs[token] = (stdin, expected_output)
        return token

    def wait_for_result(self, token, max_wait=30.0, poll_interval=1.0):
        stdin, expected = self._runs[token]
        if stdin in self.fail_inputs:
            raise ExecutionTimeout()
        stdout = self.outputs.get(stdin, expected)
        status = {'id': 3, 'description': 'Accepted'} if stdout == expected else {'id': 4, 'description': 'Wrong Answer'}
        return {'status': status, 'stdout': f'{stdout}\n', 'stderr': None,
                'time': self.time, 'memory': self.memory}


def make_token(user_id, name=None, secret=TestConfig.JWT_SECRET):
    return jwt.encode({'sub': user_id, 'name': name or user_id}, secret, algorithm='HS256')


def auth_headers(user_id, name=None):
    return {'Authorization': f'Bearer {make_token(user_id, name)}'}


def _forget_login_user(sender, **extra):
    # Requests share the fixture's app context, so drop the user cached on g
    g.pop('_login_user', None)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    request_started.connect(_forget_login_user, application)
    with application.app_context():
        # Ensure models are imported so tables are created
        import codeduel.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['codeduel']


@pytest.fixture()
def fake_judge(services):
    judge = FakeJudge()
    services.judge = judge
    return judge


@pytest.fixture()
def question(flask_app):
    q = Question(
        title='Sum',
        difficulty='EASY',
        tags=['ARRAY', 'MATH'],
        test_cases={'public': [{'input': '1 2', 'output': '3'}],
                    'hidden': [{'input': '2 2', 'output': '4'}]},
    )
    db.session.add(q)
    db.session.commit()
    return q


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _connect(user_id=None, **kwargs):
        auth = {'userId': user_id} if user_id else None
        test_client = socketio.test_client(flask_app, namespace='/ws', auth=auth, **kwargs)
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass
