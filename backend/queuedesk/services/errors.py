"""
Queue error taxonomy

QueueError subclasses are user-facing: routes turn them into JSON responses
using ``status_code`` and ``code``. InvalidPosition and MatchRace never reach
a caller as a client error.
"""


class QueueError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = 'queue_error'

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)

    def to_dict(self):
        return {'error': str(self), 'code': self.code}


class Unauthorized(QueueError):
    """Missing, invalid or expired bearer token"""

    status_code = 401
    code = 'unauthorized'


class Forbidden(QueueError):
    """Role not allowed for this operation"""

    status_code = 403
    code = 'forbidden'


class InvalidRequest(QueueError):
    """Malformed request body"""

    code = 'invalid_request'


class AlreadyQueued(QueueError):
    """User already has an active queue entry"""

    status_code = 409
    code = 'already_queued'


class QueueFull(QueueError):
    """The queue is full, try again later"""

    status_code = 503
    code = 'queue_full'


class NotQueued(QueueError):
    """User has no active queue entry"""

    status_code = 404
    code = 'not_queued'


class AgentNotFound(QueueError):
    """Representative not found"""

    status_code = 404
    code = 'agent_not_found'


class AgentBusy(QueueError):
    """Representative has an active call"""

    status_code = 409
    code = 'agent_busy'


class CallNotFound(QueueError):
    """Call not found"""

    status_code = 404
    code = 'call_not_found'


class NotCallRepresentative(QueueError):
    """Only the representative can end the call"""

    status_code = 403
    code = 'not_call_representative'


class InvalidPosition(ValueError):
    """A waiting position was not a positive integer."""


class MatchRace(Exception):
    """The entry or agent picked for a pairing changed before it committed."""
