"""
Queue Management Service for Call Center
Handles joining and leaving the wait line, agent availability, and call hand-off
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import logging
import threading

from sqlalchemy.exc import SQLAlchemyError

from queuedesk import db
from queuedesk.models import Call, QueueEntry, User
from queuedesk.services.errors import (
    AgentBusy, AgentNotFound, AlreadyQueued, CallNotFound, InvalidRequest, NotCallRepresentative, NotQueued,
    QueueFull
)
from queuedesk.services.matching import Assignment, MatchingEngine
from queuedesk.services.notifications import (
    CallAssigned, CallEnded, NotificationDispatcher, NotificationPort, PositionChanged, QueueBroadcast, YourTurn
)
from queuedesk.services.queue_store import QueueStorePort, SqlQueueStore
from queuedesk.services.reconciler import PositionReconciler
from queuedesk.services.routing import get_agent_selector, get_ranking
from queuedesk.services.wait_time import estimate_wait_minutes

logger = logging.getLogger(__name__)

JOIN_POLICY_REJECT = 'reject'
JOIN_POLICY_RETURN_EXISTING = 'return_existing'

ENTRY_METADATA_FIELDS = (
    'is_callback', 'callback_phone', 'priority', 'estimated_handle_time',
    'customer_value', 'skills_required', 'preferred_agent_id'
)

SETTINGS_FIELDS = ('max_queue_size', 'enable_auto_assignment')


class QueueService:
    """
    Public queue operations

    Every read-then-write on queue or agent state runs under one mutation
    gate, so joins, leaves, availability flips and sweeps never interleave.
    Events are published to the dispatcher after the commit, still inside
    the gate, and delivered once the gate is released.
    """

    def __init__(
        self,
        store: QueueStorePort,
        dispatcher: NotificationDispatcher,
        matcher: MatchingEngine,
        reconciler: PositionReconciler,
        avg_handle_minutes: int = 5,
        join_policy: str = JOIN_POLICY_REJECT,
        default_settings: Optional[Dict[str, Any]] = None
    ):
        if join_policy not in (JOIN_POLICY_REJECT, JOIN_POLICY_RETURN_EXISTING):
            raise ValueError(f"Unknown duplicate join policy '{join_policy}'")

        self.store = store
        self.dispatcher = dispatcher
        self.matcher = matcher
        self.reconciler = reconciler
        self.avg_handle_minutes = avg_handle_minutes
        self.join_policy = join_policy
        self.default_settings = {'max_queue_size': 0, 'enable_auto_assignment': True}
        self.default_settings.update(default_settings or {})
        self._gate = threading.RLock()
        self._capacity_listeners: List[Callable[[], None]] = []

    def add_capacity_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when a match may have become possible."""
        self._capacity_listeners.append(callback)

    def join(self, user_id: int, is_callback: bool = False, callback_phone: Optional[str] = None,
             **metadata) -> QueueEntry:
        """
        Add a customer to the end of the wait line

        Args:
            user_id: Customer joining
            is_callback: Customer asked to be called back
            callback_phone: Number to call back on
            metadata: Priority-aware routing fields (priority, skills_required, ...)

        Returns:
            The new waiting entry, or the existing active one under the
            return-existing policy

        Raises:
            AlreadyQueued: user has an active entry and the policy rejects duplicates
            QueueFull: the configured maximum number of customers are waiting
        """
        unknown = set(metadata) - set(ENTRY_METADATA_FIELDS)
        if unknown:
            raise TypeError(f"Unexpected queue entry fields: {', '.join(sorted(unknown))}")

        fields = {k: v for k, v in metadata.items() if v is not None}
        fields['is_callback'] = bool(is_callback)
        if callback_phone:
            fields['callback_phone'] = callback_phone

        with self._gate:
            existing = self.store.find_active_entry_for_user(user_id)
            if existing:
                if self.join_policy == JOIN_POLICY_RETURN_EXISTING:
                    logger.info(f"User {user_id} already queued as entry {existing.id}, returning it")
                    return existing
                raise AlreadyQueued()

            waiting = self.store.count_waiting()
            max_queue_size = self.get_settings()['max_queue_size']
            if max_queue_size and waiting >= max_queue_size:
                logger.info(f"Queue full ({waiting}/{max_queue_size}), refusing user {user_id}")
                raise QueueFull()

            with self.store.transaction():
                entry = self.store.create_entry(user_id, waiting + 1, **fields)
                changes = self.reconciler.reconcile()

            available_agents = self.store.count_available_agents()
            if not any(change.user_id == user_id for change in changes):
                changes.append(PositionChanged(
                    user_id=user_id,
                    old_position=None,
                    new_position=entry.position,
                    estimated_minutes=estimate_wait_minutes(entry.position, available_agents,
                                                            self.avg_handle_minutes)
                ))

            self.dispatcher.publish(changes + [self._broadcast(available_agents)])

        logger.info(f"User {user_id} joined the queue at position {entry.position} (entry {entry.id})")
        self.dispatcher.kick()
        self._notify_capacity()
        return entry

    def leave(self, user_id: int) -> QueueEntry:
        """
        Take a customer out of the queue

        A waiting entry is cancelled and the line behind it moves up. A
        connected entry is completed together with its active call.

        Raises:
            NotQueued: user has no active entry
        """
        with self._gate:
            entry = self.store.find_active_entry_for_user(user_id)
            if not entry:
                raise NotQueued()

            events = None
            if entry.is_waiting:
                events = self._cancel_waiting(entry)
                if events is None:
                    # Matched by another worker between read and write
                    entry = self.store.find_active_entry_for_user(user_id)
                    if not entry or entry.is_waiting:
                        raise NotQueued()

            if events is None:
                events = self._complete_connected(entry)

            self.dispatcher.publish(events)

        logger.info(f"User {user_id} left the queue (entry {entry.id}, now {entry.status})")
        self.dispatcher.kick()
        self._notify_capacity()
        return entry

    def get_entry(self, user_id: int) -> QueueEntry:
        entry = self.store.find_active_entry_for_user(user_id)
        if not entry:
            raise NotQueued()
        return entry

    def get_position(self, user_id: int) -> int:
        """Current 1-based position; 0 once the customer is connected."""
        entry = self.get_entry(user_id)
        return entry.position if entry.is_waiting else 0

    def get_estimated_wait(self, user_id: int) -> int:
        """Estimated minutes until a waiting customer is connected."""
        entry = self.get_entry(user_id)
        if not entry.is_waiting:
            return 0
        return estimate_wait_minutes(entry.position, self.store.count_available_agents(),
                                     self.avg_handle_minutes)

    def sweep(self) -> List[Assignment]:
        """
        Run one matching pass and compact the line behind it

        Returns:
            Assignments made in this pass
        """
        with self._gate:
            assignments = self.matcher.sweep()

            events = []
            for assignment in assignments:
                events.append(YourTurn(
                    user_id=assignment.customer_id,
                    call_id=assignment.call_id,
                    agent_id=assignment.agent_id
                ))
                events.append(CallAssigned(
                    agent_id=assignment.agent_id,
                    call_id=assignment.call_id,
                    customer_id=assignment.customer_id
                ))
            if assignments:
                events.append(self._broadcast())

            events.extend(self._reconcile())
            self.dispatcher.publish(events)

        self.dispatcher.kick()
        return assignments

    def set_agent_availability(self, agent_id: int, available: bool) -> User:
        """
        Flip a representative's availability

        Raises:
            AgentNotFound: no representative with this id
            AgentBusy: asked to become available while on an active call
        """
        with self._gate:
            agent = self.store.find_agent(agent_id)
            if not agent:
                raise AgentNotFound()

            if available and self.store.find_active_call_for_agent(agent_id):
                raise AgentBusy()

            with self.store.transaction():
                self.store.set_agent_availability(agent_id, available)

            self.dispatcher.publish([self._broadcast()])

        logger.info(f"Agent {agent_id} is now {'available' if available else 'unavailable'}")
        self.dispatcher.kick()
        if available:
            self._notify_capacity()
        return agent

    def end_call(self, call_id: int, agent_id: Optional[int] = None, notes: Optional[str] = None) -> Call:
        """
        End an active call and free its representative

        Args:
            call_id: Call to end
            agent_id: Representative ending it; None skips the ownership check
            notes: Optional wrap-up notes

        Raises:
            CallNotFound: no such call
            NotCallRepresentative: agent_id is not the call's representative
        """
        return self._close_call(call_id, agent_id, Call.STATUS_COMPLETED, QueueEntry.STATUS_COMPLETED, notes)

    def mark_call_missed(self, call_id: int, agent_id: Optional[int] = None) -> Call:
        """
        Close a call the customer never picked up

        The representative is freed and the customer's queue entry is
        cancelled, so they have to join again.
        """
        return self._close_call(call_id, agent_id, Call.STATUS_MISSED, QueueEntry.STATUS_CANCELLED)

    def get_active_call(self, user_id: int) -> Optional[Call]:
        return Call.find_active_for_user(user_id)

    def get_active_calls(self) -> List[Call]:
        return Call.find_active()

    def get_call_history(self, user_id: int, role: str) -> List[Call]:
        """Customers see calls they made, everyone else calls they took."""
        return Call.find_history(user_id, as_representative=role != User.ROLE_CUSTOMER)

    def get_settings(self) -> Dict[str, Any]:
        settings = self.store.find_settings()
        if settings is None:
            return {**self.default_settings, 'updated_at': None}
        return settings.to_dict()

    def update_settings(self, **fields) -> Dict[str, Any]:
        """
        Change queue settings

        Raises:
            InvalidRequest: unknown field or negative queue size
        """
        unknown = set(fields) - set(SETTINGS_FIELDS)
        if unknown:
            raise InvalidRequest(f"Unknown settings: {', '.join(sorted(unknown))}")
        if fields.get('max_queue_size') is not None and fields['max_queue_size'] < 0:
            raise InvalidRequest('max_queue_size must be 0 (unlimited) or more')

        with self._gate:
            current = self.get_settings()
            values = {name: current[name] for name in SETTINGS_FIELDS}
            values.update({k: v for k, v in fields.items() if v is not None})

            with self.store.transaction():
                self.store.save_settings(**values)

        logger.info(f"Queue settings updated: {values}")
        if values['enable_auto_assignment'] and not current['enable_auto_assignment']:
            self._notify_capacity()
        return self.get_settings()

    def auto_assignment_enabled(self) -> bool:
        return bool(self.get_settings()['enable_auto_assignment'])

    def get_live_queue(self) -> List[Dict[str, Any]]:
        """Waiting customers in position order, for supervisors."""
        now = datetime.utcnow()
        rows = []

        for entry in self.store.find_waiting_ordered_by_rank():
            rows.append({
                'entry_id': entry.id,
                'user_id': entry.user_id,
                'position': entry.position,
                'customer_name': entry.user.name or entry.user.email,
                'waiting_minutes': entry.waited_minutes(now),
                'is_callback': entry.is_callback,
                'priority': entry.priority
            })

        return rows

    def get_metrics(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Queue and call statistics

        Args:
            since: Only count calls started at or after this time
            until: Only count calls started at or before this time
        """
        calls = db.session.query(Call)
        if since:
            calls = calls.filter(Call.started_at >= since)
        if until:
            calls = calls.filter(Call.started_at <= until)
        calls = calls.all()

        waits = []
        for call in calls:
            entry = call.queue_entry
            if entry and call.started_at:
                waits.append((call.started_at - entry.joined_at).total_seconds() / 60)

        return {
            'total_calls': len(calls),
            'active_calls': len([c for c in calls if c.status == Call.STATUS_ACTIVE]),
            'missed_calls': len([c for c in calls if c.status == Call.STATUS_MISSED]),
            'average_wait_minutes': round(sum(waits) / len(waits)) if waits else 0,
            'active_queue_length': self.store.count_waiting(),
            'available_representatives': self.store.count_available_agents()
        }

    def list_representatives(self) -> List[User]:
        return User.find_representatives()

    def _cancel_waiting(self, entry: QueueEntry) -> Optional[list]:
        with self.store.transaction():
            if not self.store.update_entry_status(entry.id, QueueEntry.STATUS_CANCELLED,
                                                  expected_status=QueueEntry.STATUS_WAITING):
                return None
            changes = self.reconciler.reconcile()

        return changes + [self._broadcast()]

    def _complete_connected(self, entry: QueueEntry) -> list:
        call = self.store.find_active_call_for_entry(entry.id)
        if call:
            return self._finish_call(call)

        with self.store.transaction():
            self.store.update_entry_status(entry.id, QueueEntry.STATUS_COMPLETED,
                                           expected_status=QueueEntry.STATUS_CONNECTED)
        return [self._broadcast()]

    def _close_call(self, call_id, agent_id, status, entry_status, notes=None):
        with self._gate:
            call = self.store.find_call(call_id)
            if not call:
                raise CallNotFound()

            if agent_id is not None and call.representative_id != agent_id:
                raise NotCallRepresentative()

            if not call.is_active:
                logger.info(f"Call {call_id} already {call.status}")
                return call

            self.dispatcher.publish(self._finish_call(call, status, entry_status, notes))

        logger.info(f"Call {call_id} closed as {status} by agent {call.representative_id}")
        self.dispatcher.kick()
        self._notify_capacity()
        return call

    def _finish_call(self, call: Call, status: str = Call.STATUS_COMPLETED,
                     entry_status: str = QueueEntry.STATUS_COMPLETED, notes: Optional[str] = None) -> list:
        with self.store.transaction():
            call.status = status
            call.ended_at = datetime.utcnow()
            if notes:
                call.notes = notes

            if call.queue_entry_id:
                self.store.update_entry_status(call.queue_entry_id, entry_status,
                                               expected_status=QueueEntry.STATUS_CONNECTED)
            self.store.set_agent_availability(call.representative_id, True)

        return [
            CallEnded(call_id=call.id, customer_id=call.customer_id, agent_id=call.representative_id),
            self._broadcast()
        ]

    def _reconcile(self) -> list:
        try:
            with self.store.transaction():
                return self.reconciler.reconcile()
        except SQLAlchemyError:
            logger.exception("Failed to reconcile queue positions")
            return []

    def _broadcast(self, available_agents: Optional[int] = None) -> QueueBroadcast:
        if available_agents is None:
            available_agents = self.store.count_available_agents()
        return QueueBroadcast(waiting=self.store.count_waiting(), available_agents=available_agents)

    def _notify_capacity(self) -> None:
        for callback in self._capacity_listeners:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Capacity listener failed: {str(e)}")


def build_queue_service(app, notifier: NotificationPort) -> QueueService:
    """Wire a QueueService from the app's QUEUE_* configuration."""
    config = app.config
    avg_handle_minutes = config['QUEUE_AVG_HANDLE_MINUTES']

    store = SqlQueueStore(ranking=get_ranking(config['QUEUE_RANKING']))
    matcher = MatchingEngine(
        store,
        selector=get_agent_selector(config['QUEUE_AGENT_SELECTION']),
        until_exhausted=config['QUEUE_MATCH_UNTIL_EXHAUSTED']
    )

    return QueueService(
        store,
        NotificationDispatcher(notifier),
        matcher,
        PositionReconciler(store, avg_handle_minutes),
        avg_handle_minutes=avg_handle_minutes,
        join_policy=config['QUEUE_DUPLICATE_JOIN_POLICY'],
        default_settings={
            'max_queue_size': config['QUEUE_MAX_SIZE'],
            'enable_auto_assignment': config['QUEUE_AUTO_ASSIGNMENT']
        }
    )
