from functools import wraps
from flask import request, jsonify
from queuedesk.models import User
from queuedesk.services.errors import Forbidden, InvalidRequest, QueueError, Unauthorized
from queuedesk.utils.jwt_utils import verify_token


def _current_user():
    """Resolve the bearer token on the request to an active user."""
    scheme, _, token = request.headers.get('Authorization', '').partition(' ')
    if scheme.lower() != 'bearer' or not token:
        raise Unauthorized('Expected an Authorization: Bearer <token> header')

    user_id = verify_token(token)
    if not user_id:
        raise Unauthorized('Invalid or expired token')

    user = User.find_by_id(user_id)
    if not user or not user.is_active:
        raise Unauthorized('User not found or inactive')
    return user


def require_auth(*roles):
    """
    Require a valid bearer token, optionally from one of ``roles``

    Works bare (``@require_auth``) or with roles
    (``@require_auth(User.ROLE_ADMIN)``). The user is set on
    ``request.current_user``.
    """
    if len(roles) == 1 and callable(roles[0]):
        return require_auth()(roles[0])

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                user = _current_user()
                if roles and user.role not in roles:
                    raise Forbidden(f"Requires role: {' or '.join(roles)}")
            except QueueError as e:
                return jsonify(e.to_dict()), e.status_code

            request.current_user = user
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _type_matches(value, expected):
    # bool is an int subclass; keep flags and counts apart
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def validate_json(*required, **types):
    """
    Require a JSON object body

    ``required`` fields must be present; fields named in ``types`` must have
    that type when present.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True) if request.is_json else None
            try:
                if not isinstance(data, dict):
                    raise InvalidRequest('Expected a JSON object body')

                missing = [name for name in required if name not in data]
                if missing:
                    raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")

                wrong = [name for name, expected in types.items()
                         if name in data and not _type_matches(data[name], expected)]
                if wrong:
                    raise InvalidRequest(f"Wrong type for fields: {', '.join(wrong)}")
            except QueueError as e:
                return jsonify(e.to_dict()), e.status_code

            return f(*args, **kwargs)
        return wrapper
    return decorator
