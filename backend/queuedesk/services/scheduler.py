"""
Sweep Scheduler
Runs queue matching on a fixed interval and whenever capacity may have changed
"""

import logging
import threading
import uuid

from queuedesk.services.redis_service import acquire_lock, release_lock

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = 'queue_sweep_lock'


class SweepScheduler:
    """
    Background trigger for QueueService.sweep

    At most one tick runs at a time in this process; a tick that finds the
    previous one still in flight is skipped. With Redis configured, a
    short-lived lock extends that to every worker.
    """

    def __init__(self, app, service, interval_seconds=10):
        self.app = app
        self.service = service
        self.interval = interval_seconds
        self.worker_id = uuid.uuid4().hex
        self._in_flight = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return

        self._stop.clear()

        def sweep_loop():
            while not self._stop.is_set():
                self._wake.wait(self.interval)
                self._wake.clear()
                if self._stop.is_set():
                    break
                self.tick(scheduled=True)

        self._thread = threading.Thread(target=sweep_loop, name='queue-sweep', daemon=True)
        self._thread.start()
        logger.info(f"Queue sweep scheduler started (every {self.interval}s)")

    def stop(self, timeout=5.0):
        if not self.running:
            return

        self._stop.set()
        self._wake.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Queue sweep scheduler stopped")

    def trigger(self):
        """Ask for a sweep now instead of at the next interval."""
        self._wake.set()

    def tick(self, scheduled=False, raise_errors=False):
        """
        Run one sweep unless another is in flight

        Args:
            scheduled: Interval or triggered tick; skipped while auto
                assignment is turned off in the queue settings
            raise_errors: Re-raise a failed sweep instead of only logging it

        Returns:
            Assignments made, or None if the tick was skipped or failed
        """
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Sweep still in flight, skipping tick")
            return None

        try:
            if not acquire_lock(SWEEP_LOCK_KEY, self.worker_id, max(self.interval, 1) * 3):
                logger.debug("Another worker is sweeping, skipping tick")
                return None

            try:
                with self.app.app_context():
                    if scheduled and not self.service.auto_assignment_enabled():
                        logger.debug("Auto assignment is off, skipping tick")
                        return None
                    return self.service.sweep()
            finally:
                release_lock(SWEEP_LOCK_KEY, self.worker_id)
        except Exception:
            logger.exception("Queue sweep failed")
            if raise_errors:
                raise
            return None
        finally:
            self._in_flight.release()
