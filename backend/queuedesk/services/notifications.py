"""
Queue notifications

Events produced by queue mutations, the port that delivers them, and the
dispatcher that delivers them in production order without blocking the
mutation gate on transport I/O.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional
import logging
import queue
import threading

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionChanged:
    user_id: int
    old_position: Optional[int]
    new_position: int
    estimated_minutes: int


@dataclass(frozen=True)
class YourTurn:
    user_id: int
    call_id: int
    agent_id: int


@dataclass(frozen=True)
class CallAssigned:
    agent_id: int
    call_id: int
    customer_id: int


@dataclass(frozen=True)
class CallEnded:
    call_id: int
    customer_id: int
    agent_id: int


@dataclass(frozen=True)
class QueueBroadcast:
    waiting: int
    available_agents: int


class NotificationPort(ABC):
    """Transport for queue events. Delivery is best effort."""

    @abstractmethod
    def notify_position_update(self, user_id: int, position: int, estimated_minutes: int) -> None:
        pass

    @abstractmethod
    def notify_your_turn(self, user_id: int, call_id: int, agent_id: int) -> None:
        pass

    @abstractmethod
    def notify_call_assigned(self, agent_id: int, call_summary: dict) -> None:
        pass

    @abstractmethod
    def notify_call_ended(self, user_id: int, call_id: int) -> None:
        pass

    @abstractmethod
    def broadcast_queue_update(self, waiting: int, available_agents: int) -> None:
        pass


class NotificationDispatcher:
    """
    FIFO outbox in front of a NotificationPort

    ``publish`` only enqueues, so it is safe to call while holding the queue
    mutation gate. Events are delivered one at a time, in the order they were
    published, either by the background worker (``start``) or by ``flush``
    when no worker runs.
    """

    def __init__(self, port: NotificationPort):
        self.port = port
        self._pending = queue.Queue()
        self._deliver_lock = threading.Lock()
        self._stop = threading.Event()
        self._worker = None

    @property
    def running(self):
        return self._worker is not None and self._worker.is_alive()

    def publish(self, events: Iterable) -> None:
        for event in events:
            self._pending.put(event)

    def kick(self) -> None:
        """Deliver pending events now unless the worker owns delivery."""
        if not self.running:
            self.flush()

    def flush(self) -> None:
        with self._deliver_lock:
            while True:
                try:
                    event = self._pending.get_nowait()
                except queue.Empty:
                    return
                self._deliver(event)
                self._pending.task_done()

    def start(self) -> None:
        if self.running:
            return

        self._stop.clear()

        def deliver_loop():
            while not self._stop.is_set():
                try:
                    event = self._pending.get(timeout=0.5)
                except queue.Empty:
                    continue
                with self._deliver_lock:
                    self._deliver(event)
                self._pending.task_done()

        self._worker = threading.Thread(target=deliver_loop, name='queue-notifications', daemon=True)
        self._worker.start()
        logger.info("Notification dispatcher started")

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._stop.set()
        self._worker.join(timeout)
        self._worker = None
        # Whatever the worker did not reach still goes out
        self.flush()
        logger.info("Notification dispatcher stopped")

    def _deliver(self, event) -> None:
        try:
            if isinstance(event, PositionChanged):
                self.port.notify_position_update(event.user_id, event.new_position, event.estimated_minutes)
            elif isinstance(event, YourTurn):
                self.port.notify_your_turn(event.user_id, event.call_id, event.agent_id)
            elif isinstance(event, CallAssigned):
                self.port.notify_call_assigned(event.agent_id, {
                    'call_id': event.call_id,
                    'customer_id': event.customer_id,
                })
            elif isinstance(event, CallEnded):
                self.port.notify_call_ended(event.customer_id, event.call_id)
            elif isinstance(event, QueueBroadcast):
                self.port.broadcast_queue_update(event.waiting, event.available_agents)
            else:
                logger.error(f"Unknown queue event type: {type(event).__name__}")
        except Exception as e:
            logger.warning(f"Failed to deliver {type(event).__name__}: {str(e)}")
