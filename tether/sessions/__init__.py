"""
Relay session state, actors and the registry that routes to them.
"""

from .session_state import MessagePage, PostResult, RelayMessage, SessionRecord, format_timestamp
from .actor import SessionActor, parse_json_body
from .registry import SessionRegistry

__all__ = [
    'RelayMessage',
    'SessionRecord',
    'PostResult',
    'MessagePage',
    'format_timestamp',
    'SessionActor',
    'SessionRegistry',
    'parse_json_body'
]
