"""
Session-related Pydantic models for the relay API

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class CreateSessionResponse(BaseModel):
    """Credentials for a freshly created session"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias='sessionId', description="8 hex character session identifier")
    write_key: str = Field(..., alias='writeKey', description="Capability required to post messages")
    read_key: str = Field(..., alias='readKey', description="Capability required to read messages")
    expires_in_seconds: int = Field(..., alias='expiresInSeconds', description="Inactivity window in seconds")


class PostMessageResponse(BaseModel):
    """Acknowledgement of an accepted message"""
    seq: int = Field(..., description="Sequence number assigned to the message")
    timestamp: str = Field(..., description="UTC ISO-8601 acceptance time")


class MessageOut(BaseModel):
    """One relayed message"""
    seq: int = Field(..., description="Sequence number, starting at 1")
    body: Any = Field(None, description="The JSON value that was posted")
    timestamp: str = Field(..., description="UTC ISO-8601 acceptance time")


class MessagesResponse(BaseModel):
    """Messages newer than the requested cursor"""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[MessageOut] = Field(default_factory=list, description="Messages in ascending seq order")
    next_since: int = Field(..., alias='nextSince', description="Cursor to pass as since on the next poll")
