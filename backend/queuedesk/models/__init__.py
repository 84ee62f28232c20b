from .user import User
from .call import Call
from .queue_entry import QueueEntry
from .queue_settings import QueueSettings

__all__ = ['User', 'Call', 'QueueEntry', 'QueueSettings']
