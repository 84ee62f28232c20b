from datetime import datetime
from flask import current_app, jsonify, request
from queuedesk.api import admin_bp
from queuedesk.models import User
from queuedesk.services.errors import QueueError
from queuedesk.utils.decorators import require_auth, validate_json
import logging

logger = logging.getLogger(__name__)


def get_queue_service():
    return current_app.extensions['queue_service']


def _parse_timestamp(name):
    value = request.args.get(name)
    return datetime.fromisoformat(value) if value else None


@admin_bp.route('/representatives', methods=['GET'])
@require_auth(User.ROLE_ADMIN)
def list_representatives():
    reps = get_queue_service().list_representatives()
    return jsonify({'representatives': [rep.to_dict() for rep in reps]})


@admin_bp.route('/representatives/<int:agent_id>', methods=['PUT'])
@require_auth(User.ROLE_ADMIN)
@validate_json('is_available', is_available=bool)
def update_representative(agent_id):
    """Administrative availability override."""
    data = request.get_json()
    logger.info(f"Availability override for agent {agent_id} by admin {request.current_user.id}")

    try:
        agent = get_queue_service().set_agent_availability(agent_id, data['is_available'])
        return jsonify({'success': True, 'representative': agent.to_dict()})

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.route('/queue', methods=['GET'])
@require_auth(User.ROLE_ADMIN)
def live_queue():
    return jsonify({'queue': get_queue_service().get_live_queue()})


@admin_bp.route('/queue/sweep', methods=['POST'])
@require_auth(User.ROLE_ADMIN)
def sweep_queue():
    """Run a matching pass now, even with auto assignment turned off."""
    try:
        assignments = current_app.extensions['sweep_scheduler'].tick(raise_errors=True)
    except Exception as e:
        logger.error(f"Manual sweep by admin {request.current_user.id} failed: {str(e)}")
        return jsonify({'error': 'Sweep failed', 'code': 'sweep_failed'}), 500

    if assignments is None:
        return jsonify({'error': 'Sweep skipped, another one is running', 'code': 'sweep_in_flight'}), 409

    return jsonify({
        'success': True,
        'assigned': [
            {'call_id': a.call_id, 'customer_id': a.customer_id, 'agent_id': a.agent_id}
            for a in assignments
        ]
    })


@admin_bp.route('/calls/active', methods=['GET'])
@require_auth(User.ROLE_ADMIN)
def active_calls():
    calls = get_queue_service().get_active_calls()
    return jsonify({'calls': [call.to_dict() for call in calls]})


@admin_bp.route('/metrics', methods=['GET'])
@require_auth(User.ROLE_ADMIN)
def metrics():
    """System metrics for calls started in ?since=..&until=.. (ISO timestamps)."""
    try:
        since, until = _parse_timestamp('since'), _parse_timestamp('until')
    except ValueError:
        return jsonify({'error': 'since and until must be ISO 8601 timestamps', 'code': 'invalid_request'}), 400

    if since and until and since > until:
        return jsonify({'error': 'since must not be after until', 'code': 'invalid_request'}), 400

    return jsonify(get_queue_service().get_metrics(since, until))


@admin_bp.route('/settings', methods=['GET'])
@require_auth(User.ROLE_ADMIN)
def get_settings():
    return jsonify(get_queue_service().get_settings())


@admin_bp.route('/settings', methods=['PUT'])
@require_auth(User.ROLE_ADMIN)
@validate_json(max_queue_size=int, enable_auto_assignment=bool)
def update_settings():
    """Change the queue size limit or turn auto assignment on and off."""
    data = request.get_json()

    try:
        settings = get_queue_service().update_settings(**data)
        return jsonify(settings)

    except QueueError as e:
        return jsonify(e.to_dict()), e.status_code
