"""Tests for ranking and agent selection strategies."""

from datetime import datetime, timedelta

import pytest

from queuedesk import db
from queuedesk.models import QueueEntry, User
from queuedesk.services.queue_store import SqlQueueStore
from queuedesk.services.routing import (
    FifoRanking,
    FirstAvailableSelector,
    PreferredAgentSelector,
    PriorityRanking,
    SkillsMatchSelector,
    get_agent_selector,
    get_ranking,
)

T0 = datetime(2026, 1, 1, 12, 0, 0)


def entry(id, minutes=0, priority=0, skills=None, preferred=None):
    return QueueEntry(id=id, user_id=100 + id, joined_at=T0 + timedelta(minutes=minutes),
                      priority=priority, skills_required=skills, preferred_agent_id=preferred)


def agent(id, skills=None):
    return User(id=id, email=f"a{id}@example.com", role=User.ROLE_REPRESENTATIVE, skills=skills)


class TestRanking:
    @pytest.fixture
    def waiting(self, app, make_user):
        """Persist waiting entries as (minutes after T0, priority) pairs."""
        def _add(*specs):
            entries = []
            for minutes, priority in specs:
                user = make_user()
                entries.append(QueueEntry(user_id=user.id, joined_at=T0 + timedelta(minutes=minutes),
                                          priority=priority, position=len(entries) + 1))
            db.session.add_all(entries)
            db.session.commit()
            return [e.id for e in entries]
        return _add

    def test_fifo_orders_by_join_time(self, waiting):
        first, second, third = waiting((5, 0), (1, 0), (3, 0))
        ordered = SqlQueueStore(FifoRanking()).find_waiting_ordered_by_rank()
        assert [e.id for e in ordered] == [second, third, first]

    def test_fifo_ties_break_on_id(self, waiting):
        ids = waiting((0, 0), (0, 0), (0, 0))
        ordered = SqlQueueStore(FifoRanking()).find_waiting_ordered_by_rank()
        assert [e.id for e in ordered] == sorted(ids)

    def test_priority_first_then_join_time(self, waiting):
        plain, high_early, high_late, low = waiting((0, 0), (1, 5), (2, 5), (3, 1))
        ordered = SqlQueueStore(PriorityRanking()).find_waiting_ordered_by_rank()
        assert [e.id for e in ordered] == [high_early, high_late, low, plain]

    def test_ranking_ignores_finished_entries(self, waiting):
        kept, gone = waiting((0, 0), (1, 0))
        db.session.get(QueueEntry, gone).status = QueueEntry.STATUS_CANCELLED
        db.session.commit()
        ordered = SqlQueueStore(PriorityRanking()).find_waiting_ordered_by_rank()
        assert [e.id for e in ordered] == [kept]

    def test_lookup_by_name(self):
        assert isinstance(get_ranking('fifo'), FifoRanking)
        assert isinstance(get_ranking('priority'), PriorityRanking)
        with pytest.raises(ValueError):
            get_ranking('random')


class TestAgentSelectors:
    def test_first_available(self):
        agents = [agent(1), agent(2)]
        assert FirstAvailableSelector().select(entry(1), agents).id == 1
        assert FirstAvailableSelector().select(entry(1), []) is None

    def test_preferred_agent_when_free(self):
        agents = [agent(1), agent(2)]
        assert PreferredAgentSelector().select(entry(1, preferred=2), agents).id == 2

    def test_preferred_agent_busy_falls_back(self):
        agents = [agent(1), agent(3)]
        assert PreferredAgentSelector().select(entry(1, preferred=2), agents).id == 1

    def test_skills_require_full_coverage(self):
        agents = [agent(1, skills=['billing']), agent(2, skills=['billing', 'spanish'])]
        chosen = SkillsMatchSelector().select(entry(1, skills=['spanish', 'billing']), agents)
        assert chosen.id == 2

    def test_skills_no_match_keeps_waiting(self):
        agents = [agent(1, skills=['billing'])]
        assert SkillsMatchSelector().select(entry(1, skills=['legal']), agents) is None

    def test_no_required_skills_matches_anyone(self):
        agents = [agent(1)]
        assert SkillsMatchSelector().select(entry(1), agents).id == 1

    def test_lookup_by_name(self):
        assert isinstance(get_agent_selector('skills'), SkillsMatchSelector)
        with pytest.raises(ValueError):
            get_agent_selector('round_robin')
