"""Shared pytest fixtures for testing."""

import pytest

from queuedesk import create_app, db
from queuedesk.models import QueueEntry, User
from queuedesk.services.notifications import NotificationPort
from queuedesk.utils.jwt_utils import generate_token


class RecordingNotifier(NotificationPort):
    """NotificationPort that keeps every delivery in order."""

    def __init__(self):
        self.events = []

    def notify_position_update(self, user_id, position, estimated_minutes):
        self.events.append(('position_update', user_id, position, estimated_minutes))

    def notify_your_turn(self, user_id, call_id, agent_id):
        self.events.append(('your_turn', user_id, call_id, agent_id))

    def notify_call_assigned(self, agent_id, call_summary):
        self.events.append(('call_assigned', agent_id, call_summary))

    def notify_call_ended(self, user_id, call_id):
        self.events.append(('call_ended', user_id, call_id))

    def broadcast_queue_update(self, waiting, available_agents):
        self.events.append(('queue_update', waiting, available_agents))

    def of_kind(self, kind):
        return [e for e in self.events if e[0] == kind]

    def positions_for(self, user_id):
        return [e[2] for e in self.of_kind('position_update') if e[1] == user_id]

    def clear(self):
        self.events.clear()


BASE_TEST_CONFIG = {
    'TESTING': True,
    'REDIS_URL': None,
    'QUEUE_SWEEP_ENABLED': False,
    'QUEUE_NOTIFY_ASYNC': False,
    'QUEUE_AVG_HANDLE_MINUTES': 5,
}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app_factory(tmp_path):
    """Build an app on a fresh SQLite file with extra config."""
    created = []

    def _build(notifier=None, **overrides):
        config = dict(BASE_TEST_CONFIG)
        config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{tmp_path / f'queue{len(created)}.db'}"
        config.update(overrides)
        app = create_app(config, notifier=notifier)
        created.append(app)
        return app

    yield _build

    for app in created:
        app.extensions['sweep_scheduler'].stop()
        app.extensions['queue_service'].dispatcher.stop()
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(app_factory, notifier):
    app = app_factory(notifier=notifier)
    with app.app_context():
        yield app


@pytest.fixture
def service(app):
    return app.extensions['queue_service']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(name=None, role=User.ROLE_CUSTOMER, available=False, skills=None):
        counter['n'] += 1
        name = name or f"{role}{counter['n']}"
        user = User(
            email=f"{name.lower()}@example.com",
            name=name,
            role=role,
            is_available=available,
            skills=skills
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_agent(make_user):
    def _make(name=None, available=False, skills=None):
        return make_user(name=name, role=User.ROLE_REPRESENTATIVE, available=available, skills=skills)
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        return {'Authorization': f"Bearer {generate_token(user.id)}"}
    return _headers


def waiting_positions():
    """Positions of waiting entries in rank order of join."""
    db.session.expire_all()
    entries = QueueEntry.query.filter_by(status=QueueEntry.STATUS_WAITING).order_by(QueueEntry.position).all()
    return [e.position for e in entries]


def assert_dense_positions():
    positions = waiting_positions()
    assert positions == list(range(1, len(positions) + 1))
