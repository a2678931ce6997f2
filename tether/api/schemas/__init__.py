"""
API Schemas Module

Pydantic models for relay API responses.
"""

from .session import CreateSessionResponse, MessageOut, MessagesResponse, PostMessageResponse

__all__ = [
    'CreateSessionResponse',
    'PostMessageResponse',
    'MessageOut',
    'MessagesResponse'
]
