"""
Relay session state

A session record is the unit of isolation: two capability keys, an
append-only message list and the timestamps used for inactivity expiry.
Records are persisted as JSON so any store can hold them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def format_timestamp(epoch_seconds: float) -> str:
    """Render an epoch timestamp as UTC ISO-8601 with millisecond precision."""
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class RelayMessage:
    """One relayed payload"""
    seq: int
    body: Any
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {'seq': self.seq, 'body': self.body, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RelayMessage':
        return cls(seq=data['seq'], body=data['body'], timestamp=data['timestamp'])


@dataclass
class SessionRecord:
    """Authoritative state of one relay session"""
    write_key: str
    read_key: str
    created_at: float
    last_activity: float
    messages: List[RelayMessage] = field(default_factory=list)

    # Bumped on every persisted change; stores compare-and-set on it
    version: int = 0

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """Check whether the inactivity window has elapsed"""
        return now - self.last_activity > ttl_seconds

    def touch(self, now: float):
        """Record a successful read or write"""
        self.last_activity = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'write_key': self.write_key,
            'read_key': self.read_key,
            'created_at': self.created_at,
            'last_activity': self.last_activity,
            'messages': [message.to_dict() for message in self.messages],
            'version': self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionRecord':
        return cls(
            write_key=data['write_key'],
            read_key=data['read_key'],
            created_at=data['created_at'],
            last_activity=data['last_activity'],
            messages=[RelayMessage.from_dict(m) for m in data.get('messages', [])],
            version=data.get('version', 0)
        )


@dataclass(frozen=True)
class PostResult:
    """Acknowledgement for an accepted message"""
    seq: int
    timestamp: str


@dataclass(frozen=True)
class MessagePage:
    """Messages newer than the reader's cursor, plus the cursor to send next"""
    messages: List[RelayMessage]
    next_since: int
