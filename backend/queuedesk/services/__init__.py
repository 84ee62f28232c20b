# Import services to register their socket handlers
from . import socketio_events
from . import callcenter_socketio
from . import redis_service

__all__ = ['socketio_events', 'callcenter_socketio', 'redis_service']
