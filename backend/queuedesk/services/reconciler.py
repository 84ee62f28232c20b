import logging
from typing import List

from queuedesk.services.notifications import PositionChanged
from queuedesk.services.queue_store import QueueStorePort
from queuedesk.services.wait_time import estimate_wait_minutes

logger = logging.getLogger(__name__)


class PositionReconciler:
    """Renumbers waiting entries 1..N in rank order."""

    def __init__(self, store: QueueStorePort, avg_handle_minutes: int):
        self.store = store
        self.avg_handle_minutes = avg_handle_minutes

    def reconcile(self) -> List[PositionChanged]:
        """
        Stage position updates for every waiting entry whose rank moved

        Entries already at the right position produce no event. The caller
        commits and publishes the returned events.
        """
        entries = self.store.find_waiting_ordered_by_rank()
        if not entries:
            return []

        available_agents = self.store.count_available_agents()
        changes = []

        for index, entry in enumerate(entries):
            new_position = index + 1
            if entry.position == new_position:
                continue

            old_position = entry.position
            self.store.update_entry_position(entry.id, new_position)
            changes.append(PositionChanged(
                user_id=entry.user_id,
                old_position=old_position,
                new_position=new_position,
                estimated_minutes=estimate_wait_minutes(new_position, available_agents, self.avg_handle_minutes)
            ))

        if changes:
            logger.info(f"Reconciled queue: {len(changes)} of {len(entries)} waiting entries moved")
        return changes
