from flask_socketio import emit, join_room
from flask import request
from queuedesk import socketio
from queuedesk.models import User
from queuedesk.utils.jwt_utils import verify_token
from queuedesk.services.redis_service import add_to_set, remove_from_set
import logging

logger = logging.getLogger(__name__)


@socketio.on('connect')
def handle_connect():
    """Handle client connection."""
    client_id = request.sid
    logger.info(f"Client connected: {client_id}")
    emit('connected', {'message': 'Connected to queue service'})


@socketio.on('disconnect')
def handle_disconnect(*args):
    """Handle client disconnection."""
    client_id = request.sid
    logger.info(f"Client disconnected: {client_id}")
    remove_from_set("active_clients", client_id)


@socketio.on('authenticate')
def handle_authenticate(data):
    """Authenticate WebSocket connection and join the user's rooms."""
    token = (data or {}).get('token')
    if not token:
        emit('error', {'message': 'No token provided'})
        return False

    user_id = verify_token(token)
    user = User.find_by_id(user_id) if user_id else None
    if not user or not user.is_active:
        emit('error', {'message': 'Invalid or expired token'})
        return False

    # Personal room (MUST be string to match emit room format)
    join_room(str(user.id))
    if user.is_representative:
        join_room('agents')
    elif user.is_admin:
        join_room('supervisors')

    add_to_set("active_clients", request.sid)
    add_to_set(f"user:{user.id}:clients", request.sid)

    emit('authenticated', {
        'message': 'Authentication successful',
        'user_id': user.id,
        'role': user.role
    })

    logger.info(f"Client authenticated: {request.sid} -> User: {user.id}, joined room '{str(user.id)}'")
    return True


@socketio.on('ping')
def handle_ping():
    """Handle ping to keep connection alive."""
    emit('pong', {'sid': request.sid})
