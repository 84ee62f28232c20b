import jwt
from datetime import datetime, timezone
from flask import current_app


def generate_token(user_id, token_type='access'):
    """Issue a signed token for a user, as the identity service does."""
    payload = {
        'user_id': user_id,
        'sub': str(user_id),
        'exp': datetime.now(timezone.utc) + current_app.config['JWT_ACCESS_TOKEN_EXPIRES'],
        'type': token_type
    }

    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm='HS256'
    )


def decode_token(token):
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            current_app.config['JWT_SECRET_KEY'],
            algorithms=['HS256']
        )
        return payload
    except jwt.ExpiredSignatureError:
        return {'error': 'Token has expired'}
    except jwt.InvalidTokenError:
        return {'error': 'Invalid token'}


def verify_token(token, token_type='access'):
    """Verify a token and return the user_id if valid."""
    payload = decode_token(token)

    if 'error' in payload:
        return None

    if payload.get('type') != token_type:
        return None

    return payload.get('user_id')
