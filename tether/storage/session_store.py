"""
Abstract Session Store Interface

Every backing store for relay session records conforms to this interface.
Records cross the interface as fresh ``SessionRecord`` objects: a store
never hands out a reference to its own state, so a caller that mutates a
loaded record and then fails leaves the stored record untouched.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from tether.exceptions import ConcurrencyError
from tether.sessions.session_state import SessionRecord

logger = logging.getLogger('tether.storage.interface')


class SessionStore(ABC):
    """
    Abstract base class for session record storage.

    ``save`` is a compare-and-set on ``SessionRecord.version``; it is the
    serialization point for writers that do not share a process.
    """

    async def connect(self):
        """Establish backend connections. No-op by default."""

    async def close(self):
        """Release backend connections. No-op by default."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[SessionRecord]:
        """
        Load a session record.

        Args:
            session_id: Session identifier

        Returns:
            The stored record, or None if none exists
        """

    @abstractmethod
    async def create(self, session_id: str, record: SessionRecord) -> bool:
        """
        Insert a record if none exists for the session.

        Returns:
            True if the record was created, False if one already existed
        """

    @abstractmethod
    async def save(self, session_id: str, record: SessionRecord, expected_version: int) -> None:
        """
        Replace a record if the stored version still equals ``expected_version``.

        Raises:
            ConcurrencyError: Another writer changed the record first
            StorageError: The backend failed
        """

    async def purge_expired(self, now: float) -> int:
        """
        Delete records whose retention period has passed.

        Backends that expire records on their own keep this no-op.

        Returns:
            Number of records deleted
        """
        return 0

    @staticmethod
    def serialize(record: SessionRecord) -> str:
        return json.dumps(record.to_dict(), separators=(',', ':'))

    @staticmethod
    def deserialize(payload: str) -> SessionRecord:
        return SessionRecord.from_dict(json.loads(payload))


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Records are kept serialized so that loads always
    return independent copies.

    Like a Redis key TTL, ``retention_seconds`` counts from a record's last
    activity; ``purge_expired`` drops records past it (0 keeps them forever).
    """

    def __init__(self, retention_seconds: int = 86400):
        self._records: dict[str, str] = {}
        self.retention_seconds = retention_seconds
        logger.info("InMemorySessionStore initialized")

    async def load(self, session_id: str) -> Optional[SessionRecord]:
        payload = self._records.get(session_id)
        if payload is None:
            return None
        return self.deserialize(payload)

    async def create(self, session_id: str, record: SessionRecord) -> bool:
        if session_id in self._records:
            return False
        self._records[session_id] = self.serialize(record)
        return True

    async def save(self, session_id: str, record: SessionRecord, expected_version: int) -> None:
        current = self._records.get(session_id)
        current_version = self.deserialize(current).version if current is not None else None
        if current_version != expected_version:
            raise ConcurrencyError(
                resource_id=session_id,
                operation='save',
                expected_version=expected_version,
                actual_version=current_version
            )
        self._records[session_id] = self.serialize(record)

    async def purge_expired(self, now: float) -> int:
        if not self.retention_seconds:
            return 0

        stale = [
            session_id for session_id, payload in self._records.items()
            if now - self.deserialize(payload).last_activity > self.retention_seconds
        ]
        for session_id in stale:
            del self._records[session_id]

        if stale:
            logger.info(f"Purged {len(stale)} session records past retention")
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)
