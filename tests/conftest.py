import json
import os
import pytest
from flask import g

from buzzmaster import create_app, db, socketio
from buzzmaster.models import User, Room, RoomMembership, Competition, Trophy
from buzzmaster.realtime.hub import BroadcastHub

ADMIN_EMAIL = 'host@example.com'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = []
    USER_ID_HEADER = 'X-User-Id'
    USER_EMAIL_HEADER = 'X-User-Email'
    ADMIN_EMAIL_ALLOWLIST = [ADMIN_EMAIL]
    DEV_MODE = False
    ROUND_WIN_POINTS = 1
    GIVE_TO_NEXT_PENALTY = 1
    THUMB_GAME_PENALTY = 5
    CHALLENGE_PLACE_POINTS = [10, 6, 4, 2]
    CHALLENGE_FALLBACK_POINTS = 1
    WS_RECONNECT_BASE_SEC = 1
    WS_RECONNECT_MAX_SEC = 10
    WS_RECONNECT_MAX_ATTEMPTS = 5


class RecordingConnection:
    """Stands in for a websocket client and keeps every frame it is sent."""

    def __init__(self):
        self.frames = []
        self.is_open = True

    def send(self, text):
        self.frames.append(json.loads(text))

    def events(self, event_type=None):
        return [f for f in self.frames if event_type is None or f.get('type') == event_type]

    def types(self):
        return [f.get('type') for f in self.frames]

    def clear(self):
        self.frames = []


@pytest.fixture()
def hub():
    return BroadcastHub()


@pytest.fixture()
def recorder(hub):
    conn = RecordingConnection()
    hub.register(conn)
    conn.clear()
    return conn


@pytest.fixture()
def flask_app(hub):
    application = create_app(TestConfig, hub=hub)

    # Requests reuse this app context, so g would carry the previous caller along
    @application.before_request
    def forget_cached_user():
        g.pop('_login_user', None)

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def publisher(flask_app):
    return flask_app.extensions['buzzmaster'].publisher


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


def make_user(external_id, username=None, email=None, score=0):
    user = User(external_id=external_id, username=username or external_id, email=email, score=score)
    db.session.add(user)
    db.session.commit()
    return user


def as_user(user):
    return {'X-User-Id': user.external_id}


@pytest.fixture()
def admin(flask_app):
    return make_user('host-sub', 'host', email=ADMIN_EMAIL)


@pytest.fixture()
def admin_headers(admin):
    return as_user(admin)


@pytest.fixture()
def room_factory(flask_app):
    """Room with an active competition and the given users as members."""
    def factory(users, name='Quiz night'):
        room = Room(name=name, status='active')
        db.session.add(room)
        db.session.flush()
        for user in users:
            db.session.add(RoomMembership(room_id=room.id, user_id=user.id))
        competition = Competition(name=f'{name} cup', room_id=room.id, status='active')
        db.session.add(competition)
        db.session.commit()
        return room, competition
    return factory


@pytest.fixture()
def players(flask_app):
    return [make_user(sub) for sub in ('alice', 'bob', 'carol', 'dave')]


@pytest.fixture()
def trophy(flask_app):
    item = Trophy(name='Golden Buzzer')
    db.session.add(item)
    db.session.commit()
    return item
