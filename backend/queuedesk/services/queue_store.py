"""
Queue storage

QueueStorePort is what the queue engine needs from persistence. SqlQueueStore
implements it on the Flask-SQLAlchemy session: single-row updates are staged
on the session and made durable by ``commit()``, while ``assign()`` commits
its own all-or-nothing pairing.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from queuedesk import db
from queuedesk.models import Call, QueueEntry, QueueSettings, User
from queuedesk.services.errors import AlreadyQueued, MatchRace
from queuedesk.services.routing import FifoRanking, RankingStrategy

logger = logging.getLogger(__name__)


class QueueStorePort(ABC):
    """Queue and agent state used by the queue engine"""

    @abstractmethod
    def find_waiting_ordered_by_rank(self) -> List[QueueEntry]:
        pass

    @abstractmethod
    def find_next_waiting(self) -> Optional[QueueEntry]:
        pass

    @abstractmethod
    def find_active_entry_for_user(self, user_id: int) -> Optional[QueueEntry]:
        pass

    @abstractmethod
    def count_waiting(self) -> int:
        pass

    @abstractmethod
    def create_entry(self, user_id: int, position: int, **metadata) -> QueueEntry:
        pass

    @abstractmethod
    def update_entry_status(self, entry_id: int, status: str, expected_status: Optional[str] = None) -> bool:
        pass

    @abstractmethod
    def update_entry_position(self, entry_id: int, position: int) -> None:
        pass

    @abstractmethod
    def count_available_agents(self) -> int:
        pass

    @abstractmethod
    def find_available_agents(self) -> List[User]:
        pass

    @abstractmethod
    def find_agent(self, agent_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def set_agent_availability(self, agent_id: int, available: bool, expected: Optional[bool] = None) -> bool:
        pass

    @abstractmethod
    def create_call(self, customer_id: int, agent_id: int, entry_id: Optional[int] = None) -> Call:
        pass

    @abstractmethod
    def find_call(self, call_id: int) -> Optional[Call]:
        pass

    @abstractmethod
    def find_active_call_for_entry(self, entry_id: int) -> Optional[Call]:
        pass

    @abstractmethod
    def find_active_call_for_agent(self, agent_id: int) -> Optional[Call]:
        pass

    @abstractmethod
    def find_settings(self) -> Optional[QueueSettings]:
        pass

    @abstractmethod
    def save_settings(self, **fields) -> QueueSettings:
        """Update the settings row, creating it on first save."""

    @abstractmethod
    def assign(self, entry_id: int, agent_id: int) -> Call:
        """Atomically connect a waiting entry to an available agent."""

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    @contextmanager
    def transaction(self):
        """Commit on success, roll back and re-raise on any error."""
        try:
            yield self
            self.commit()
        except BaseException:
            self.rollback()
            raise


class SqlQueueStore(QueueStorePort):
    """QueueStorePort on the Flask-SQLAlchemy session of the current app context."""

    def __init__(self, ranking: Optional[RankingStrategy] = None):
        self.ranking = ranking or FifoRanking()

    @property
    def session(self):
        return db.session

    # Queue entries

    def _waiting_query(self):
        return self.session.query(QueueEntry).filter(
            QueueEntry.status == QueueEntry.STATUS_WAITING
        ).order_by(*self.ranking.order_by())

    def find_waiting_ordered_by_rank(self):
        return self._waiting_query().all()

    def find_next_waiting(self):
        return self._waiting_query().first()

    def find_active_entry_for_user(self, user_id):
        return self.session.query(QueueEntry).filter(
            QueueEntry.user_id == user_id,
            QueueEntry.status.in_(QueueEntry.ACTIVE_STATUSES)
        ).first()

    def count_waiting(self):
        return self.session.query(QueueEntry).filter(
            QueueEntry.status == QueueEntry.STATUS_WAITING
        ).count()

    def create_entry(self, user_id, position, **metadata):
        entry = QueueEntry(
            user_id=user_id,
            position=position,
            status=QueueEntry.STATUS_WAITING,
            **metadata
        )
        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError:
            # Partial unique index on active entries per user
            self.session.rollback()
            raise AlreadyQueued()
        return entry

    def update_entry_status(self, entry_id, status, expected_status=None):
        stmt = update(QueueEntry).where(QueueEntry.id == entry_id)
        if expected_status is not None:
            stmt = stmt.where(QueueEntry.status == expected_status)
        result = self.session.execute(
            stmt.values(status=status, updated_at=datetime.utcnow()).execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1

    def update_entry_position(self, entry_id, position):
        self.session.execute(
            update(QueueEntry)
            .where(QueueEntry.id == entry_id)
            .values(position=position, updated_at=datetime.utcnow())
            .execution_options(synchronize_session='fetch')
        )

    # Agents

    def _available_agents_query(self):
        return self.session.query(User).filter(
            User.role == User.ROLE_REPRESENTATIVE,
            User.is_active.is_(True),
            User.is_available.is_(True)
        )

    def count_available_agents(self):
        return self._available_agents_query().count()

    def find_available_agents(self):
        return self._available_agents_query().order_by(User.id.asc()).all()

    def find_agent(self, agent_id):
        return self.session.query(User).filter(
            User.id == agent_id,
            User.role == User.ROLE_REPRESENTATIVE
        ).first()

    def set_agent_availability(self, agent_id, available, expected=None):
        stmt = update(User).where(User.id == agent_id, User.role == User.ROLE_REPRESENTATIVE)
        if expected is not None:
            stmt = stmt.where(User.is_available.is_(expected))
        result = self.session.execute(
            stmt.values(is_available=available, updated_at=datetime.utcnow()).execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1

    # Calls

    def create_call(self, customer_id, agent_id, entry_id=None):
        call = Call(
            customer_id=customer_id,
            representative_id=agent_id,
            queue_entry_id=entry_id,
            status=Call.STATUS_ACTIVE
        )
        self.session.add(call)
        self.session.flush()
        return call

    def find_call(self, call_id):
        return self.session.get(Call, call_id)

    def find_active_call_for_entry(self, entry_id):
        return self.session.query(Call).filter_by(
            queue_entry_id=entry_id, status=Call.STATUS_ACTIVE
        ).first()

    def find_active_call_for_agent(self, agent_id):
        return self.session.query(Call).filter_by(
            representative_id=agent_id, status=Call.STATUS_ACTIVE
        ).first()

    # Settings

    def find_settings(self):
        return QueueSettings.current()

    def save_settings(self, **fields):
        settings = self.find_settings()
        if settings is None:
            settings = QueueSettings()
            self.session.add(settings)
        for name, value in fields.items():
            setattr(settings, name, value)
        self.session.flush()
        return settings

    def assign(self, entry_id, agent_id):
        """
        Connect a waiting entry to an available agent in one transaction

        Both flips are compare-and-set on the current row state, so a leave or
        another worker's sweep that got there first makes this a no-op.

        Raises:
            MatchRace: entry no longer waiting or agent no longer available
        """
        try:
            if not self.update_entry_status(entry_id, QueueEntry.STATUS_CONNECTED,
                                            expected_status=QueueEntry.STATUS_WAITING):
                raise MatchRace(f"Queue entry {entry_id} is no longer waiting")

            if not self.set_agent_availability(agent_id, False, expected=True):
                raise MatchRace(f"Agent {agent_id} is no longer available")

            entry = self.session.get(QueueEntry, entry_id)
            call = self.create_call(entry.user_id, agent_id, entry_id)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise MatchRace(f"Agent {agent_id} already has an active call") from e
        except BaseException:
            self.session.rollback()
            raise

        logger.info(f"Queue entry {entry_id} (user {call.customer_id}) connected to agent {agent_id} on call {call.id}")
        return call

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
