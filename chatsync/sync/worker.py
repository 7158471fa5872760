"""Sync worker: periodic Redis -> MongoDB replication passes."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from chatsync.errors import WriteError
from chatsync.observability.metrics import record_pass
from chatsync.sync.discovery import discover_user_index_keys, user_id_from_index_key
from chatsync.sync.loader import load_user_sessions
from chatsync.sync.minimizer import Minimizer, MinimizerOptions, serialized_size
from chatsync.sync.stats import SyncStats

if TYPE_CHECKING:
    from chatsync.config import SyncConfig
    from chatsync.sources.base import SessionSource
    from chatsync.storage.mongo_store import MongoChatStore

logger = logging.getLogger(__name__)


class SyncWorker:
    """Copies every user's chat sessions from the session store to MongoDB.

    One pass runs discovery, then loads, minimizes and upserts the sessions
    of each discovered user. Failures are isolated per user: a user whose
    processing raises is counted as errored and the pass moves on. Within a
    user, a failed upsert only skips that one session.

    Passes never overlap: the interval timer starts once a pass has fully
    finished.
    """

    def __init__(
        self,
        source: SessionSource,
        store: MongoChatStore,
        minimizer: Minimizer | None = None,
        chat_version: str = "v2",
        sync_interval_seconds: float = 60.0,
        optimize_data: bool = True,
        max_concurrent_users: int = 1,
    ) -> None:
        """Initialize worker.

        Args:
            source: Connected session store
            store: Connected MongoDB store
            minimizer: Session minimizer (default policy if omitted)
            chat_version: Version tag of the chat index keys
            sync_interval_seconds: Wait between the end of a pass and the next
            optimize_data: Compute and log space savings
            max_concurrent_users: Users processed concurrently within a pass
        """
        self.source = source
        self.store = store
        self.minimizer = minimizer or Minimizer()
        self.chat_version = chat_version
        self.sync_interval_seconds = sync_interval_seconds
        self.optimize_data = optimize_data
        self.max_concurrent_users = max_concurrent_users
        self.last_stats: SyncStats | None = None
        self._running = False
        self._shutdown: asyncio.Event | None = None

    @classmethod
    def from_config(cls, config: SyncConfig, source: SessionSource, store: MongoChatStore) -> SyncWorker:
        return cls(
            source=source,
            store=store,
            minimizer=Minimizer(MinimizerOptions.from_config(config)),
            chat_version=config.chat_version,
            sync_interval_seconds=config.sync_interval_seconds,
            optimize_data=config.optimize_data,
            max_concurrent_users=config.max_concurrent_users,
        )

    @property
    def running(self) -> bool:
        return self._running

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Run a pass immediately, then one per interval until stopped.

        Args:
            shutdown_event: Event that ends the loop; setting it also cuts
                short the wait between passes
        """
        self._shutdown = shutdown_event or asyncio.Event()
        self._running = True
        logger.info(f"Sync worker started, syncing every {self.sync_interval_seconds:g}s")

        try:
            while self._running and not self._shutdown.is_set():
                await self.run_pass()

                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=self.sync_interval_seconds)
                except TimeoutError:
                    continue
        finally:
            self._running = False
            logger.info("Sync worker stopped")

    def stop(self) -> None:
        """Stop after the user currently being processed and cancel the pending wait."""
        self._running = False
        if self._shutdown is not None:
            self._shutdown.set()

    def _should_continue(self) -> bool:
        return self._shutdown is None or not self._shutdown.is_set()

    async def run_pass(self) -> SyncStats:
        """Execute one complete sync pass.

        Returns:
            Statistics of the pass
        """
        stats = SyncStats.started()
        logger.info(f"[{stats.start_time.isoformat()}] Starting sync: Redis -> MongoDB")

        index_keys = await discover_user_index_keys(self.source, self.chat_version)
        stats.total_users = len(index_keys)
        logger.info(f"Discovered chat history for {len(index_keys)} users")

        if index_keys:
            await self._sync_users(index_keys, stats)

        stats.finish()
        for line in stats.summary_lines(self.optimize_data):
            logger.info(line)
        record_pass(stats)
        self.last_stats = stats
        return stats

    async def _sync_users(self, index_keys: list[str], stats: SyncStats) -> None:
        """Process users with at most `max_concurrent_users` in flight."""
        semaphore = asyncio.Semaphore(self.max_concurrent_users)

        async def sync_with_semaphore(index_key: str) -> None:
            async with semaphore:
                if not self._should_continue():
                    return
                await self._sync_user(index_key, stats)

        results = await asyncio.gather(
            *(sync_with_semaphore(key) for key in index_keys),
            return_exceptions=True,
        )

        for index_key, result in zip(index_keys, results):
            if isinstance(result, Exception):
                stats.error_users += 1
                logger.error(
                    f"Failed to sync chats for user {user_id_from_index_key(index_key)}: {result}",
                    exc_info=result if logger.isEnabledFor(logging.DEBUG) else None,
                )
            elif isinstance(result, BaseException):
                raise result

    async def _sync_user(self, index_key: str, stats: SyncStats) -> None:
        """Load, minimize and upsert every session of one user."""
        user_id = user_id_from_index_key(index_key)
        sessions = await load_user_sessions(self.source, index_key)

        if not sessions:
            stats.skipped_chats += 1
            return

        synced_chats = 0
        synced_messages = 0
        minimized = []
        now = datetime.now(UTC)

        for raw in sessions:
            session = self.minimizer.minimize(raw, now=now)
            minimized.append(session)
            try:
                await self.store.upsert(session, user_id)
            except WriteError as e:
                stats.failed_writes += 1
                logger.error(f"Skipping chat {session.id}: {e}")
                continue
            synced_chats += 1
            synced_messages += session.message_count

        stats.total_chats += synced_chats
        stats.total_messages += synced_messages
        stats.processed_users += 1

        if self.optimize_data:
            original_size = serialized_size([raw.to_document() for raw in sessions])
            optimized_size = serialized_size([session.to_document() for session in minimized])
            stats.original_bytes += original_size
            stats.optimized_bytes += optimized_size
            savings = (original_size - optimized_size) / original_size * 100 if original_size else 0.0
            logger.info(
                f"User {user_id}: {synced_chats} chats, {synced_messages} messages, "
                f"space saved: {savings:.2f}%"
            )
        else:
            logger.info(f"User {user_id}: {synced_chats} chats, {synced_messages} messages")
