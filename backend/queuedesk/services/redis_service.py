import json
import logging
import threading

import redis

logger = logging.getLogger(__name__)


def get_redis_client():
    """Get the app's Redis client, or None when Redis is not configured or down."""
    from queuedesk import redis_client

    if redis_client is None:
        return None

    try:
        redis_client.ping()
        return redis_client
    except redis.RedisError as e:
        logger.debug(f"Redis unavailable: {str(e)}")
        return None


def publish_event(channel, data):
    """Publish an event to a Redis channel in a non-blocking way."""
    def _publish():
        try:
            client = get_redis_client()
            if client:
                message = json.dumps(data)
                client.publish(channel, message)
                logger.debug(f"Published to {channel}: {message}")
        except redis.RedisError as e:
            # Log at debug level to reduce noise - Redis pub/sub is optional
            logger.debug(f"Redis publish failed (non-critical): {str(e)}")

    # Run in background thread to avoid blocking the caller
    thread = threading.Thread(target=_publish)
    thread.daemon = True  # Daemon thread won't prevent app shutdown
    thread.start()


def acquire_lock(name, token, ttl_seconds):
    """
    Take a cross-worker lock

    Returns True when the lock is held by ``token`` afterwards. Without Redis
    there is only one worker, so the lock is always granted.
    """
    client = get_redis_client()
    if client is None:
        return True

    try:
        return bool(client.set(name, token, nx=True, ex=max(1, int(ttl_seconds))))
    except redis.RedisError as e:
        logger.warning(f"Could not acquire lock {name}: {e}")
        return False


def release_lock(name, token):
    """Release a lock previously taken with the same token."""
    client = get_redis_client()
    if client is None:
        return

    try:
        if client.get(name) == token:
            client.delete(name)
    except redis.RedisError as e:
        logger.warning(f"Could not release lock {name}: {e}")


def add_to_set(set_name, value):
    """Add a value to a Redis set."""
    try:
        client = get_redis_client()
        if client:
            return client.sadd(set_name, value) > 0
    except redis.RedisError as e:
        # Log at debug level to reduce noise
        logger.debug(f"Redis operation failed (non-critical): {str(e)}")
    return False


def remove_from_set(set_name, value):
    """Remove a value from a Redis set."""
    try:
        client = get_redis_client()
        if client:
            return client.srem(set_name, value) > 0
    except redis.RedisError as e:
        # Log at debug level to reduce noise
        logger.debug(f"Redis operation failed (non-critical): {str(e)}")
    return False
