import math

from queuedesk.services.errors import InvalidPosition

DEFAULT_AVG_HANDLE_MINUTES = 5


def estimate_wait_minutes(position: int, available_agents: int,
                          avg_handle_minutes: int = DEFAULT_AVG_HANDLE_MINUTES) -> int:
    """
    Estimate how long the customer at ``position`` will wait

    Everyone ahead costs ``avg_handle_minutes``. With agents available the work
    is split between them (rounded up); with none, no parallelism is assumed.

    Raises:
        InvalidPosition: position is not a positive integer
    """
    if position is None or position <= 0:
        raise InvalidPosition(f"Invalid queue position: {position}")

    people_ahead = position - 1
    base = people_ahead * avg_handle_minutes

    if available_agents > 0:
        return math.ceil(base / available_agents)
    return base
