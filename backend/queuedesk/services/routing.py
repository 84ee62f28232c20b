"""
Ranking and agent-selection strategies

Ranking decides the order of the waiting line, selection decides which of
the available representatives takes the head of that line.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from queuedesk.models import QueueEntry, User


class RankingStrategy(ABC):
    """Orders waiting entries. Lower rank is served first."""

    name = None

    @abstractmethod
    def order_by(self) -> list:
        """SQL ORDER BY clauses over QueueEntry."""


class FifoRanking(RankingStrategy):
    """First come, first served."""

    name = 'fifo'

    def order_by(self):
        return [QueueEntry.joined_at.asc(), QueueEntry.id.asc()]


class PriorityRanking(RankingStrategy):
    """Higher priority first, join order within the same priority."""

    name = 'priority'

    def order_by(self):
        return [QueueEntry.priority.desc(), QueueEntry.joined_at.asc(), QueueEntry.id.asc()]


class AgentSelector(ABC):
    """Picks a representative for a waiting entry."""

    name = None

    @abstractmethod
    def select(self, entry: QueueEntry, agents: List[User]) -> Optional[User]:
        """Return the chosen agent, or None to leave the entry waiting."""


class FirstAvailableSelector(AgentSelector):
    name = 'first_available'

    def select(self, entry, agents):
        if not agents:
            return None
        return agents[0]


class PreferredAgentSelector(AgentSelector):
    """Route to the customer's preferred agent when that agent is free."""

    name = 'preferred'

    def select(self, entry, agents):
        if not agents:
            return None

        if entry.preferred_agent_id:
            for agent in agents:
                if agent.id == entry.preferred_agent_id:
                    return agent

        return agents[0]


class SkillsMatchSelector(AgentSelector):
    """
    Route to the first agent holding every skill the entry requires

    An entry with required skills that no free agent covers keeps waiting.
    """

    name = 'skills'

    def select(self, entry, agents):
        required = set(entry.skills_required or [])
        for agent in agents:
            if required.issubset(agent.skills or []):
                return agent
        return None


RANKING_STRATEGIES = {cls.name: cls for cls in (FifoRanking, PriorityRanking)}
AGENT_SELECTORS = {cls.name: cls for cls in (FirstAvailableSelector, PreferredAgentSelector, SkillsMatchSelector)}


def get_ranking(name: str) -> RankingStrategy:
    try:
        return RANKING_STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown queue ranking '{name}'. Expected one of: {', '.join(RANKING_STRATEGIES)}")


def get_agent_selector(name: str) -> AgentSelector:
    try:
        return AGENT_SELECTORS[name]()
    except KeyError:
        raise ValueError(f"Unknown agent selection '{name}'. Expected one of: {', '.join(AGENT_SELECTORS)}")
