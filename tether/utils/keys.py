"""
Capability key generation for relay sessions.

Session identifiers and write/read keys are lowercase hex strings drawn
from the operating system's CSPRNG. There is no fallback source: if
``os.urandom`` is unavailable the call raises.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass

logger = logging.getLogger('tether.utils.keys')

SESSION_ID_BYTES = 4   # 8 hex chars
CAPABILITY_KEY_BYTES = 8   # 16 hex chars


def random_key(byte_length: int) -> str:
    """
    Generate a random hex string.

    Args:
        byte_length: Number of random bytes to draw

    Returns:
        Lowercase hex string of length ``2 * byte_length``
    """
    if byte_length <= 0:
        raise ValueError(f"byte_length must be positive, got {byte_length}")
    return secrets.token_hex(byte_length)


@dataclass(frozen=True)
class SessionCredentials:
    """Identifier and capability keys handed to the session creator"""
    session_id: str
    write_key: str
    read_key: str


def new_session_credentials() -> SessionCredentials:
    """Draw a fresh session id plus independent write and read keys."""
    write_key = random_key(CAPABILITY_KEY_BYTES)
    read_key = random_key(CAPABILITY_KEY_BYTES)
    while read_key == write_key:
        logger.warning("Write and read key collided, redrawing read key")
        read_key = random_key(CAPABILITY_KEY_BYTES)

    return SessionCredentials(
        session_id=random_key(SESSION_ID_BYTES),
        write_key=write_key,
        read_key=read_key
    )


def keys_match(supplied: str, stored: str) -> bool:
    """Constant-time comparison of a supplied capability key against the stored one."""
    if supplied is None or stored is None:
        return False
    return hmac.compare_digest(supplied.encode('utf-8'), stored.encode('utf-8'))
