"""
Session record storage backends.
"""

import logging

from tether.config.settings import StoreConfig

from .redis_session_store import RedisSessionStore
from .session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger('tether.storage.factory')


def create_session_store(config: StoreConfig) -> SessionStore:
    """
    Build the backing store selected by configuration.

    Args:
        config: Store configuration section

    Returns:
        An unconnected SessionStore
    """
    if config.store_backend == 'redis':
        logger.info(f"Using Redis session store at {config.redis_url}")
        return RedisSessionStore(
            redis_url=config.redis_url,
            key_prefix=config.redis_key_prefix,
            retention_seconds=config.record_retention_seconds,
            max_connections=config.redis_max_connections
        )

    logger.info("Using in-memory session store")
    return InMemorySessionStore(retention_seconds=config.record_retention_seconds)


__all__ = [
    'SessionStore',
    'InMemorySessionStore',
    'RedisSessionStore',
    'create_session_store'
]
