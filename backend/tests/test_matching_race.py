"""Tests for leave/sweep races and the all-or-nothing pairing."""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from queuedesk import db
from queuedesk.models import Call, QueueEntry, User
from queuedesk.services.errors import MatchRace, NotQueued
from queuedesk.services.matching import MatchingEngine
from queuedesk.services.queue_store import SqlQueueStore

from conftest import assert_dense_positions


def active_entry(user_id):
    db.session.expire_all()
    return QueueEntry.query.filter(
        QueueEntry.user_id == user_id,
        QueueEntry.status.in_(QueueEntry.ACTIVE_STATUSES)
    ).first()


class CancelBeforeAssignStore(SqlQueueStore):
    """Store where a leave lands between picking the head and assigning it."""

    def find_next_waiting(self):
        entry = super().find_next_waiting()
        if entry is not None:
            self.update_entry_status(entry.id, QueueEntry.STATUS_CANCELLED)
            self.commit()
        return entry


class TestLeaveVersusSweep:
    def test_leave_wins(self, make_user, make_agent, service):
        """Y leaves first: the sweep finds nobody and the agent stays free."""
        y = make_user('Y')
        agent = make_agent('A', available=True)
        service.join(y.id)

        service.leave(y.id)
        assert service.sweep() == []

        assert Call.query.count() == 0
        assert db.session.get(User, agent.id).is_available is True

    def test_sweep_wins(self, make_user, make_agent, service):
        """The sweep connects Y first: leave then ends that call cleanly."""
        y = make_user('Y')
        agent = make_agent('A', available=True)
        service.join(y.id)

        assert len(service.sweep()) == 1
        service.leave(y.id)

        db.session.expire_all()
        assert Call.query.count() == 1
        assert Call.query.one().status == Call.STATUS_COMPLETED
        assert db.session.get(User, agent.id).is_available is True
        assert active_entry(y.id) is None

    def test_assign_after_cancel_is_a_race(self, make_user, make_agent, service):
        y = make_user('Y')
        agent = make_agent('A', available=True)
        entry_id = service.join(y.id).id
        service.leave(y.id)

        with pytest.raises(MatchRace):
            service.store.assign(entry_id, agent.id)

        db.session.expire_all()
        assert Call.query.count() == 0
        assert db.session.get(User, agent.id).is_available is True

    def test_assign_to_busy_agent_rolls_back_entry(self, make_user, make_agent, service):
        y = make_user('Y')
        agent = make_agent('A', available=False)
        entry_id = service.join(y.id).id

        with pytest.raises(MatchRace):
            service.store.assign(entry_id, agent.id)

        assert active_entry(y.id).status == QueueEntry.STATUS_WAITING
        assert Call.query.count() == 0

    def test_engine_aborts_on_stale_entry(self, make_user, make_agent):
        y, z = make_user('Y'), make_user('Z')
        agent = make_agent('A', available=True)
        store = SqlQueueStore()
        for position, user in enumerate((y, z), start=1):
            store.create_entry(user.id, position)
        store.commit()

        engine = MatchingEngine(CancelBeforeAssignStore())
        assert engine.sweep() == []

        db.session.expire_all()
        assert Call.query.count() == 0
        assert db.session.get(User, agent.id).is_available is True
        assert active_entry(y.id) is None
        assert active_entry(z.id).status == QueueEntry.STATUS_WAITING

    def test_storage_failure_rolls_back(self, make_user, make_agent, service, monkeypatch):
        y = make_user('Y')
        agent = make_agent('A', available=True)
        service.join(y.id)

        def broken_create_call(*args, **kwargs):
            raise OperationalError('INSERT INTO calls', {}, Exception('disk I/O error'))

        monkeypatch.setattr(service.store, 'create_call', broken_create_call)

        assert service.sweep() == []

        assert active_entry(y.id).status == QueueEntry.STATUS_WAITING
        assert db.session.get(User, agent.id).is_available is True
        assert Call.query.count() == 0


class TestConcurrentMutations:
    def test_threads_never_double_assign(self, app, make_user, make_agent, service):
        customers = [make_user(f"C{i}") for i in range(8)]
        agents = [make_agent(f"A{i}", available=True) for i in range(3)]
        customer_ids = [c.id for c in customers]
        for customer_id in customer_ids:
            service.join(customer_id)

        errors = []

        def run(work):
            with app.app_context():
                try:
                    work()
                except NotQueued:
                    pass
                except Exception as e:
                    errors.append(e)
                finally:
                    db.session.remove()

        jobs = [lambda cid=cid: service.leave(cid) for cid in customer_ids[::2]]
        jobs += [service.sweep for _ in range(5)]
        threads = [threading.Thread(target=run, args=(job,)) for job in jobs]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        assert errors == []
        db.session.expire_all()

        active_calls = Call.query.filter_by(status=Call.STATUS_ACTIVE).all()
        busy = {c.representative_id for c in active_calls}
        assert len(busy) == len(active_calls)
        for agent in agents:
            assert db.session.get(User, agent.id).is_available is (agent.id not in busy)

        for customer_id in customer_ids:
            active = QueueEntry.query.filter(
                QueueEntry.user_id == customer_id,
                QueueEntry.status.in_(QueueEntry.ACTIVE_STATUSES)
            ).count()
            assert active <= 1

        assert_dense_positions()
