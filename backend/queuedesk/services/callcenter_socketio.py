"""
Call Center WebSocket Events
Pushes queue events to customers and agents, and takes agent status changes
"""

from flask_socketio import emit
from flask import current_app, request
from queuedesk import socketio
from queuedesk.utils.jwt_utils import verify_token
from queuedesk.services.errors import QueueError
from queuedesk.services.notifications import NotificationPort
from queuedesk.services.redis_service import publish_event
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

QUEUE_CHANNEL = 'queue_updates'


class SocketIONotifier(NotificationPort):
    """Delivers queue events to Socket.IO rooms keyed by user id."""

    def notify_position_update(self, user_id, position, estimated_minutes):
        socketio.emit('position_update', {
            'position': position,
            'estimated_wait_time': estimated_minutes
        }, room=str(user_id))
        logger.info(f"Queue position {position} sent to user {user_id}")

    def notify_your_turn(self, user_id, call_id, agent_id):
        socketio.emit('your_turn', {
            'message': "It's your turn! Connecting to representative...",
            'call_id': call_id,
            'representative_id': agent_id
        }, room=str(user_id))

    def notify_call_assigned(self, agent_id, call_summary):
        socketio.emit('call_assigned', {'call': call_summary}, room=str(agent_id))
        logger.info(f"Call {call_summary.get('call_id')} assigned to agent {agent_id}")

    def notify_call_ended(self, user_id, call_id):
        socketio.emit('call_ended', {'call_id': call_id}, room=str(user_id))

    def broadcast_queue_update(self, waiting, available_agents):
        payload = {
            'waiting': waiting,
            'available_agents': available_agents,
            'timestamp': datetime.utcnow().isoformat()
        }
        socketio.emit('queue_update', payload)
        publish_event(QUEUE_CHANNEL, payload)


def _authenticated_user_id(data):
    token = (data or {}).get('token') or request.headers.get('Authorization', '').replace('Bearer ', '')
    return verify_token(token) if token else None


@socketio.on('agent_status')
def handle_agent_status_change(data):
    """Agent goes available or steps away."""
    user_id = _authenticated_user_id(data)
    if not user_id:
        emit('error', {'message': 'Invalid token'})
        return

    status = data.get('status')
    service = current_app.extensions['queue_service']

    try:
        agent = service.set_agent_availability(user_id, status == 'available')
    except QueueError as e:
        emit('error', e.to_dict())
        return

    socketio.emit('agent_status_update', {
        'agent_id': agent.id,
        'status': status,
        'timestamp': datetime.utcnow().isoformat()
    }, room='supervisors')

    logger.info(f"Agent {user_id} status changed to: {status}")


@socketio.on('request_next_call')
def handle_request_next_call(data=None):
    """Agent asks for the queue to be swept right away."""
    user_id = _authenticated_user_id(data)
    if not user_id:
        emit('error', {'message': 'Invalid token'})
        return

    current_app.extensions['sweep_scheduler'].trigger()
    emit('sweep_requested', {'agent_id': user_id})
