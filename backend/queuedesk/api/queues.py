"""
Queue API Endpoints
Customers join and leave the wait line and follow their place in it
"""

from flask import current_app, jsonify, request
from queuedesk.api import queues_bp
from queuedesk.services.errors import QueueError
from queuedesk.utils.decorators import require_auth
import logging

logger = logging.getLogger(__name__)


def get_queue_service():
    return current_app.extensions['queue_service']


@queues_bp.route('/join', methods=['POST'])
@require_auth
def join_queue():
    """Join the queue. Body fields are all optional."""
    data = request.get_json(silent=True) or {}
    user_id = request.current_user.id

    try:
        service = get_queue_service()
        existing = service.store.find_active_entry_for_user(user_id)

        entry = service.join(
            user_id,
            is_callback=data.get('is_callback', False),
            callback_phone=data.get('callback_phone'),
            priority=data.get('priority'),
            estimated_handle_time=data.get('estimated_handle_time'),
            customer_value=data.get('customer_value', request.current_user.customer_value),
            skills_required=data.get('skills_required'),
            preferred_agent_id=data.get('preferred_agent_id')
        )

        status_code = 200 if existing is not None and existing.id == entry.id else 201
        return jsonify({
            **entry.to_dict(),
            'estimated_wait_minutes': service.get_estimated_wait(user_id)
        }), status_code

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error joining queue for user {user_id}: {str(e)}")
        return jsonify({'error': 'Failed to join queue'}), 500


@queues_bp.route('/leave', methods=['POST'])
@require_auth
def leave_queue():
    """Leave the queue, or hang up if already connected."""
    user_id = request.current_user.id

    try:
        entry = get_queue_service().leave(user_id)
        return jsonify({'success': True, 'entry': entry.to_dict()})

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error leaving queue for user {user_id}: {str(e)}")
        return jsonify({'error': 'Failed to leave queue'}), 500


@queues_bp.route('/position', methods=['GET'])
@require_auth
def get_position():
    """Current position in queue."""
    user_id = request.current_user.id

    try:
        service = get_queue_service()
        entry = service.get_entry(user_id)
        return jsonify({
            'position': service.get_position(user_id),
            'status': entry.status
        })

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code


@queues_bp.route('/wait-time', methods=['GET'])
@require_auth
def get_wait_time():
    """Estimated wait time in minutes."""
    try:
        minutes = get_queue_service().get_estimated_wait(request.current_user.id)
        return jsonify({'estimated_minutes': minutes})

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
