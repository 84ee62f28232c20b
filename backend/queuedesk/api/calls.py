from flask import current_app, jsonify, request
from queuedesk.api import calls_bp
from queuedesk.models import User
from queuedesk.services.errors import QueueError
from queuedesk.utils.decorators import require_auth
import logging

logger = logging.getLogger(__name__)


def get_queue_service():
    return current_app.extensions['queue_service']


@calls_bp.route('/active', methods=['GET'])
@require_auth
def get_active_call():
    """The caller's active call, as customer or representative."""
    call = get_queue_service().get_active_call(request.current_user.id)
    if not call:
        return jsonify({'call': None}), 404
    return jsonify({'call': call.to_dict()})


@calls_bp.route('/history', methods=['GET'])
@require_auth
def get_call_history():
    """Past and current calls of the caller, newest first."""
    user = request.current_user
    calls = get_queue_service().get_call_history(user.id, user.role)
    return jsonify({'calls': [call.to_dict() for call in calls]})


@calls_bp.route('/<int:call_id>/end', methods=['POST'])
@require_auth(User.ROLE_REPRESENTATIVE)
def end_call(call_id):
    """Representative ends their call and becomes available again."""
    data = request.get_json(silent=True) or {}

    try:
        call = get_queue_service().end_call(
            call_id,
            agent_id=request.current_user.id,
            notes=data.get('notes')
        )
        return jsonify({'success': True, 'call': call.to_dict()})

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Failed to end call {call_id}: {str(e)}")
        return jsonify({'error': f'Failed to end call: {str(e)}'}), 500


@calls_bp.route('/<int:call_id>/missed', methods=['POST'])
@require_auth(User.ROLE_REPRESENTATIVE)
def mark_call_missed(call_id):
    """Customer never answered: close the call and free the representative."""
    try:
        call = get_queue_service().mark_call_missed(call_id, agent_id=request.current_user.id)
        return jsonify({'success': True, 'call': call.to_dict()})

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Failed to mark call {call_id} missed: {str(e)}")
        return jsonify({'error': f'Failed to mark call missed: {str(e)}'}), 500
