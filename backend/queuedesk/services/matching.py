"""
Matching Engine
Pairs the head of the waiting line with an available representative
"""

from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError

from queuedesk.services.errors import MatchRace
from queuedesk.services.queue_store import QueueStorePort
from queuedesk.services.routing import AgentSelector, FirstAvailableSelector

logger = logging.getLogger(__name__)


@dataclass
class Assignment:
    entry_id: int
    customer_id: int
    agent_id: int
    call_id: int


class MatchingEngine:
    """
    Connects waiting customers to available agents

    By default one pair is made per sweep. With ``until_exhausted`` the sweep
    keeps pairing until it runs out of agents or customers.
    """

    def __init__(self, store: QueueStorePort, selector: Optional[AgentSelector] = None,
                 until_exhausted: bool = False):
        self.store = store
        self.selector = selector or FirstAvailableSelector()
        self.until_exhausted = until_exhausted

    def match_once(self) -> Optional[Assignment]:
        """
        Try a single pairing

        Returns:
            The committed assignment, or None if there is nothing to pair

        Raises:
            MatchRace: the chosen entry or agent changed under us
        """
        agents = self.store.find_available_agents()
        if not agents:
            return None

        entry = self.store.find_next_waiting()
        if not entry:
            return None

        agent = self.selector.select(entry, agents)
        if agent is None:
            logger.info(f"No suitable agent for queue entry {entry.id} among {len(agents)} available")
            return None

        entry_id, customer_id, agent_id = entry.id, entry.user_id, agent.id
        call = self.store.assign(entry_id, agent_id)
        return Assignment(entry_id=entry_id, customer_id=customer_id, agent_id=agent_id, call_id=call.id)

    def sweep(self) -> List[Assignment]:
        """
        Run one matching pass

        A race or storage failure ends the pass without partial effects; the
        next scheduled sweep tries again.
        """
        assignments = []

        while True:
            try:
                assignment = self.match_once()
            except MatchRace as e:
                logger.warning(f"Matching aborted: {str(e)}")
                self.store.rollback()
                break
            except SQLAlchemyError:
                logger.exception("Storage error while matching, rolled back")
                self.store.rollback()
                break

            if assignment is None:
                break

            assignments.append(assignment)
            if not self.until_exhausted:
                break

        return assignments
