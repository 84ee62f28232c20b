from flask import Blueprint

# Create blueprints
queues_bp = Blueprint('queues', __name__)
calls_bp = Blueprint('calls', __name__)
admin_bp = Blueprint('admin', __name__)

# Import routes after blueprint creation to avoid circular imports
from queuedesk.api import queues, calls, admin  # noqa: E402,F401
