"""
Session Actor

Owns one relay session. Every read or write of the session record runs
inside the actor's lock, so sequence assignment, capacity checks and the
sliding expiry clock are never interleaved between concurrent requests.
State is reloaded from the store at the start of each locked step and
persisted before the operation returns. Request bodies are streamed
outside the lock so that a slow upload never stalls readers.
"""

import asyncio
import contextlib
import json
import logging
import math
import time
from typing import Any, Awaitable, Callable, Optional

from tether.config.logging_config import get_logger
from tether.config.settings import RelayConfig
from tether.exceptions import (
    ConcurrencyError,
    MalformedBodyError,
    MessageLimitExceededError,
    PayloadTooLargeError,
    invalid_key,
    session_expired,
    session_not_found,
)
from tether.storage.session_store import SessionStore
from tether.utils.keys import keys_match

from .session_state import MessagePage, PostResult, RelayMessage, SessionRecord, format_timestamp

logger = logging.getLogger('tether.sessions.actor')

BodyReader = Callable[[], Awaitable[bytes]]

# Longest integer literal accepted in a body (CPython's default int() digit limit)
MAX_INT_DIGITS = 4300


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _finite_float(literal: str) -> float:
    value = float(literal)
    if math.isinf(value):
        raise ValueError(f"{literal} is out of range")
    return value


def _bounded_int(literal: str) -> int:
    if len(literal.lstrip('-')) > MAX_INT_DIGITS:
        raise ValueError(f"integer literal longer than {MAX_INT_DIGITS} digits is out of range")
    return int(literal)


def parse_json_body(raw: bytes) -> Any:
    """
    Decode a UTF-8 JSON document.

    Numbers that cannot be echoed back as JSON are rejected: the NaN and
    Infinity literals, floats that overflow to infinity, and integers with
    more than ``MAX_INT_DIGITS`` digits.
    """
    return json.loads(
        raw.decode('utf-8'),
        parse_constant=_reject_constant,
        parse_float=_finite_float,
        parse_int=_bounded_int
    )


class SessionActor:
    """
    Single serialization point for one session.

    The actor holds no session state of its own, only the lock and a count
    of operations running or waiting on it. The registry uses that count
    to decide when a handle may be dropped.
    """

    def __init__(
        self,
        session_id: str,
        store: SessionStore,
        config: RelayConfig,
        clock: Callable[[], float] = time.time
    ):
        self.session_id = session_id
        self.store = store
        self.config = config
        self.clock = clock

        self._lock = asyncio.Lock()
        self._pending = 0
        self.log = get_logger(logger.name, session_id)

    @property
    def idle(self) -> bool:
        """True when no operation is running or queued on this actor"""
        return self._pending == 0

    @contextlib.contextmanager
    def _in_use(self):
        self._pending += 1
        try:
            yield
        finally:
            self._pending -= 1

    @contextlib.asynccontextmanager
    async def _turn(self):
        with self._in_use():
            async with self._lock:
                yield

    async def init(self, write_key: str, read_key: str) -> bool:
        """
        Create the session record if it does not exist yet.

        Idempotent: a second call leaves keys and messages untouched.

        Returns:
            True if this call created the record
        """
        async with self._turn():
            now = self.clock()
            record = SessionRecord(
                write_key=write_key,
                read_key=read_key,
                created_at=now,
                last_activity=now
            )
            created = await self.store.create(self.session_id, record)

        if created:
            self.log.info("Session initialized")
        else:
            self.log.debug("Session already initialized, init ignored")
        return created

    def _check_postable(self, record: SessionRecord, write_key: str, declared_size: Optional[int]):
        if not keys_match(write_key, record.write_key):
            self.log.info("Rejected post with invalid write key")
            raise invalid_key(self.session_id, 'write')

        if declared_size is not None and declared_size > self.config.max_body_bytes:
            raise PayloadTooLargeError(self.session_id, declared_size, self.config.max_body_bytes)

        if len(record.messages) >= self.config.max_messages:
            raise MessageLimitExceededError(
                self.session_id, len(record.messages), self.config.max_messages
            )

    async def post_message(
        self,
        write_key: str,
        read_body: BodyReader,
        declared_size: Optional[int] = None
    ) -> PostResult:
        """
        Append a message to the session.

        Checks run in a fixed order: existence, expiry, write key, declared
        size, capacity, actual size, JSON validity. The body is only read
        once the caller is authorized and the session has room, and it is
        read without holding the lock. The checks are repeated under the
        lock before the message is appended.

        Args:
            write_key: Capability key supplied by the caller
            read_body: Coroutine function returning the raw body, at most
                ``max_body_bytes + 1`` bytes long
            declared_size: Size hint (Content-Length), if the caller sent one

        Returns:
            Sequence number and acceptance timestamp
        """
        with self._in_use():
            async with self._lock:
                record = await self._load_active(self.clock())
                self._check_postable(record, write_key, declared_size)

            raw = await read_body()
            if len(raw) > self.config.max_body_bytes:
                raise PayloadTooLargeError(self.session_id, len(raw), self.config.max_body_bytes)
            try:
                body = parse_json_body(raw)
            except (ValueError, RecursionError) as e:
                raise MalformedBodyError(self.session_id, reason=str(e)) from e

            async with self._lock:
                return await self._append(write_key, declared_size, body)

    async def _append(self, write_key: str, declared_size: Optional[int], body: Any) -> PostResult:
        for attempt in range(self.config.conflict_retries + 1):
            now = self.clock()
            record = await self._load_active(now)
            self._check_postable(record, write_key, declared_size)

            expected_version = record.version
            seq = len(record.messages) + 1
            timestamp = format_timestamp(now)
            record.messages.append(RelayMessage(seq=seq, body=body, timestamp=timestamp))
            record.touch(now)
            record.version += 1

            try:
                await self.store.save(self.session_id, record, expected_version)
            except ConcurrencyError:
                if attempt >= self.config.conflict_retries:
                    self.log.error(f"Post lost {attempt + 1} write races, giving up")
                    raise
                self.log.warning(f"Post lost write race (attempt {attempt + 1}), reloading")
                continue

            self.log.debug(f"Accepted message seq={seq}")
            return PostResult(seq=seq, timestamp=timestamp)

    async def get_messages(self, read_key: str, since: int = 0) -> MessagePage:
        """
        Return messages with ``seq > since`` in ascending order.

        ``next_since`` is the highest returned seq, or ``since`` unchanged
        when nothing newer exists. A successful read extends the session's
        life just like a write.
        """
        async with self._turn():
            for attempt in range(self.config.conflict_retries + 1):
                now = self.clock()
                record = await self._load_active(now)

                if not keys_match(read_key, record.read_key):
                    self.log.info("Rejected read with invalid read key")
                    raise invalid_key(self.session_id, 'read')

                messages = [m for m in record.messages if m.seq > since]
                next_since = messages[-1].seq if messages else since

                expected_version = record.version
                record.touch(now)
                record.version += 1

                try:
                    await self.store.save(self.session_id, record, expected_version)
                except ConcurrencyError:
                    if attempt >= self.config.conflict_retries:
                        self.log.error(f"Read lost {attempt + 1} write races, giving up")
                        raise
                    self.log.warning(f"Read lost write race (attempt {attempt + 1}), reloading")
                    continue

                return MessagePage(messages=messages, next_since=next_since)

    async def _load_active(self, now: float) -> SessionRecord:
        """Load the record, failing if it is missing or expired"""
        record = await self.store.load(self.session_id)
        if record is None:
            raise session_not_found(self.session_id)

        if record.is_expired(now, self.config.session_ttl):
            self.log.info("Access to expired session rejected")
            raise session_expired(self.session_id, record.last_activity)

        return record
