"""
Session Registry

Maps session identifiers to their actors. Resolution is synchronous, so two
coroutines resolving the same id can never race each other into creating
two actors: whichever runs first inserts the handle and the other finds it.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from tether.config.settings import RelayConfig
from tether.storage.session_store import SessionStore

from .actor import SessionActor

logger = logging.getLogger('tether.sessions.registry')


class SessionRegistry:
    """
    Lazily creates one SessionActor per session id.

    Actors hold no session state, so a handle may be dropped whenever no
    operation is using it. The background sweep does exactly that; the next
    resolve for the same id builds a fresh handle over the same record. The
    sweep also purges store records past their retention period, which only
    ever affects sessions that expired long ago.
    """

    def __init__(
        self,
        store: SessionStore,
        config: RelayConfig,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.config = config
        self.clock = clock

        self._actors: Dict[str, SessionActor] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._cleanup_interval = config.registry_sweep_interval

        logger.info(f"SessionRegistry initialized with {self._cleanup_interval}s sweep interval")

    def resolve(self, session_id: str) -> SessionActor:
        """
        Get the actor for a session, creating an uninitialized one if needed.

        Args:
            session_id: Session identifier

        Returns:
            The single actor handle currently routing this session
        """
        actor = self._actors.get(session_id)
        if actor is None:
            actor = SessionActor(session_id, self.store, self.config, clock=self.clock)
            self._actors[session_id] = actor
            logger.debug(f"Created actor handle for session {session_id}")
        return actor

    def prune_idle(self) -> int:
        """
        Drop actor handles with no running or queued operation.

        Returns:
            Number of handles dropped
        """
        idle_ids = [session_id for session_id, actor in self._actors.items() if actor.idle]
        for session_id in idle_ids:
            del self._actors[session_id]

        if idle_ids:
            logger.info(f"Pruned {len(idle_ids)} idle actor handles")
        return len(idle_ids)

    async def sweep(self) -> Dict[str, int]:
        """
        One pass of the background sweep: drop idle handles, then let the
        store reclaim records past their retention period.

        Returns:
            Counts of pruned handles and purged records
        """
        pruned = self.prune_idle()
        purged = await self.store.purge_expired(self.clock())
        return {'pruned_handles': pruned, 'purged_records': purged}

    async def start(self):
        """Start the background sweep"""
        if not self._cleanup_task:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self):
        """Background task running the sweep every interval"""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in registry sweep: {e}", exc_info=True)

    async def shutdown(self):
        """Stop the sweep and forget all handles"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        self._actors.clear()
        logger.info("SessionRegistry shutdown complete")

    def get_stats(self) -> Dict[str, Any]:
        """Registry statistics for diagnostics"""
        return {
            'actor_handles': len(self._actors),
            'busy_handles': sum(1 for actor in self._actors.values() if not actor.idle),
            'sweep_interval_seconds': self._cleanup_interval,
            'sweep_running': self._cleanup_task is not None and not self._cleanup_task.done()
        }

    def __len__(self) -> int:
        return len(self._actors)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._actors
