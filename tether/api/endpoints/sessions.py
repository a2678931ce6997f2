"""
Session Relay Endpoints

Handles session creation plus posting and polling of messages.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Request, status

from tether.api.schemas import (
    CreateSessionResponse,
    MessageOut,
    MessagesResponse,
    PostMessageResponse,
)
from tether.exceptions import SessionInitError, StorageError, session_not_found
from tether.sessions import SessionRegistry
from tether.utils.keys import new_session_credentials

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])
logger = logging.getLogger('tether.api.sessions')

SESSION_ID_PATTERN = re.compile(r'^[0-9a-f]{8}$')
_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')

# Fresh ids are 32 random bits; a collision with a live record is redrawn
CREATE_ATTEMPTS = 3


def parse_since(raw: Optional[str]) -> int:
    """
    Parse the ``since`` cursor leniently.

    A leading integer prefix is used (``"5abc"`` is 5), negatives clamp to
    0 and anything without digits is 0.
    """
    if not raw:
        return 0
    match = _LEADING_INT.match(raw)
    if match is None:
        return 0
    return max(int(match.group(1)), 0)


def parse_content_length(raw: Optional[str]) -> Optional[int]:
    """Read the Content-Length size hint, ignoring values that are not sizes."""
    if raw is None:
        return None
    try:
        size = int(raw)
    except ValueError:
        return None
    return size if size >= 0 else None


def read_limited_body(request: Request, limit: int):
    """
    Build a reader that streams the request body but stops once more than
    ``limit`` bytes have arrived, so an oversize body is never fully buffered.
    """
    async def read() -> bytes:
        chunks = []
        total = 0
        async for chunk in request.stream():
            chunks.append(chunk)
            total += len(chunk)
            if total > limit:
                break
        return b''.join(chunks)

    return read


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def require_session_id(session_id: str) -> str:
    """Reject malformed ids before they reach the registry"""
    if not SESSION_ID_PATTERN.match(session_id):
        logger.debug(f"Rejected malformed session id {session_id[:32]!r}")
        raise session_not_found(session_id[:32])
    return session_id


@router.post("", response_model=CreateSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(request: Request):
    """
    Create a new session and hand its capability keys to the caller.

    The write key goes to the sender, the read key to the viewer.
    """
    registry = get_registry(request)
    relay_config = request.app.state.settings.relay

    for _ in range(CREATE_ATTEMPTS):
        credentials = new_session_credentials()
        actor = registry.resolve(credentials.session_id)
        try:
            created = await actor.init(credentials.write_key, credentials.read_key)
        except StorageError as e:
            logger.error(f"Failed to initialize session {credentials.session_id}: {e}")
            raise SessionInitError(credentials.session_id) from e

        if created:
            break
        logger.warning(f"Session id {credentials.session_id} already in use, drawing a new one")
    else:
        raise SessionInitError(credentials.session_id, context={'reason': 'id collisions'})

    logger.info(f"Created session {credentials.session_id}")
    return CreateSessionResponse(
        session_id=credentials.session_id,
        write_key=credentials.write_key,
        read_key=credentials.read_key,
        expires_in_seconds=relay_config.session_ttl
    )


@router.post("/{session_id}/messages", response_model=PostMessageResponse)
async def post_message(session_id: str, request: Request, w: str = ''):
    """Append a JSON message to the session (requires the write key)"""
    require_session_id(session_id)
    relay_config = request.app.state.settings.relay

    declared_size = parse_content_length(request.headers.get('content-length'))
    actor = get_registry(request).resolve(session_id)

    result = await actor.post_message(
        w,
        read_limited_body(request, relay_config.max_body_bytes),
        declared_size=declared_size
    )

    return PostMessageResponse(seq=result.seq, timestamp=result.timestamp)


@router.get("/{session_id}/messages", response_model=MessagesResponse)
async def get_messages(session_id: str, request: Request, r: str = '', since: str = '0'):
    """Return messages newer than ``since`` (requires the read key)"""
    require_session_id(session_id)

    cursor = parse_since(since)
    page = await get_registry(request).resolve(session_id).get_messages(r, since=cursor)

    return MessagesResponse(
        messages=[MessageOut(seq=m.seq, body=m.body, timestamp=m.timestamp) for m in page.messages],
        next_since=page.next_since
    )
