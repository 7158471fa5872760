"""chatsync main entry point: service lifecycle."""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import AsyncExitStack
from enum import Enum
from typing import TYPE_CHECKING, Any

from chatsync.config import describe_config
from chatsync.errors import ConfigurationError, DestinationConnectionError, SourceConnectionError
from chatsync.observability.metrics import start_metrics_server
from chatsync.sources import create_source
from chatsync.storage.mongo_store import MongoChatStore
from chatsync.sync.worker import SyncWorker

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chatsync.config import SyncConfig
    from chatsync.sources.base import SessionSource
    from chatsync.sync.stats import SyncStats

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class AppState(Enum):
    """Service lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class SyncApplication:
    """Redis -> MongoDB sync service with lifecycle management.

    Both store connections are opened inside an `AsyncExitStack`, so each is
    released exactly once whichever way the service ends: signal, uncaught
    fault or failed startup.

    Attributes:
        config: Sync configuration
        state: Current lifecycle state
        shutdown_event: Event for graceful shutdown
        worker: Sync worker, available once both stores are connected
    """

    def __init__(
        self,
        config: SyncConfig,
        source_factory: Callable[[SyncConfig], SessionSource] = create_source,
        store_factory: Callable[[SyncConfig], MongoChatStore] | None = None,
    ) -> None:
        """Initialize application.

        Args:
            config: Sync configuration
            source_factory: Builds the session store from configuration
            store_factory: Builds the MongoDB store from configuration
        """
        self.config = config
        self.state = AppState.IDLE
        self.shutdown_event = asyncio.Event()
        self.worker: SyncWorker | None = None
        self._source_factory = source_factory
        self._store_factory = store_factory or self._default_store
        self._loop: asyncio.AbstractEventLoop | None = None
        self._main_task: asyncio.Task[Any] | None = None
        self._previous_handlers: dict[int, Any] = {}
        self._signals_received = 0

    @staticmethod
    def _default_store(config: SyncConfig) -> MongoChatStore:
        return MongoChatStore(
            uri=config.mongodb_uri,
            db_name=config.mongodb_db_name,
            collection_name=config.mongodb_collection,
            timeout_seconds=config.store_timeout_seconds,
        )

    async def run(self) -> int:
        """Run the service until a signal or an uncaught fault.

        Returns:
            Process exit status: 0 after a signal, 1 on startup failure or fault
        """
        logger.info("Redis -> MongoDB sync service starting...")

        try:
            self.config.require_destination()
            source = self._source_factory(self.config)
        except ConfigurationError as e:
            logger.error(f"Error: {e}")
            self.state = AppState.STOPPED
            return EXIT_FAILURE

        for line in describe_config(self.config):
            logger.info(line)

        try:
            return await self._serve(source)
        finally:
            self.state = AppState.STOPPED
            logger.info("Sync service stopped")

    async def _serve(self, source: SessionSource) -> int:
        exit_code = EXIT_OK
        async with AsyncExitStack() as stack:
            self.state = AppState.CONNECTING
            try:
                worker = await self._open(stack, source)
            except (SourceConnectionError, DestinationConnectionError) as e:
                logger.error(f"Failed to start sync service: {e}")
                self.state = AppState.SHUTTING_DOWN
                return EXIT_FAILURE

            if self.config.metrics_port:
                start_metrics_server(self.config.metrics_port)

            self._install_signal_handlers()
            self.state = AppState.RUNNING
            logger.info(
                f"✅ Sync service started, syncing every {self.config.sync_interval_seconds:g}s "
                "(press Ctrl+C to stop)"
            )

            self._main_task = asyncio.create_task(worker.run(self.shutdown_event))
            try:
                await self._main_task
            except asyncio.CancelledError:
                logger.warning("Sync pass cancelled by repeated shutdown signal")
            except Exception:
                logger.exception("Uncaught error in sync service, shutting down")
                exit_code = EXIT_FAILURE
            finally:
                self.state = AppState.SHUTTING_DOWN
                self._restore_signal_handlers()
                logger.info("Closing connections...")

        return exit_code

    async def run_once(self) -> SyncStats | None:
        """Connect, run a single pass and release both connections.

        Returns:
            Statistics of the pass, or None if startup failed
        """
        try:
            self.config.require_destination()
            source = self._source_factory(self.config)
        except ConfigurationError as e:
            logger.error(f"Error: {e}")
            return None

        async with AsyncExitStack() as stack:
            self.state = AppState.CONNECTING
            try:
                worker = await self._open(stack, source)
            except (SourceConnectionError, DestinationConnectionError) as e:
                logger.error(f"Failed to start sync: {e}")
                self.state = AppState.STOPPED
                return None

            self.state = AppState.RUNNING
            try:
                stats = await worker.run_pass()
            finally:
                self.state = AppState.SHUTTING_DOWN

        self.state = AppState.STOPPED
        return stats

    async def _open(self, stack: AsyncExitStack, source: SessionSource) -> SyncWorker:
        """Connect both stores, registering each release as soon as it is opened."""
        stack.push_async_callback(self._release, "Redis", source.close)
        await source.connect()

        store = self._store_factory(self.config)
        stack.push_async_callback(self._release, "MongoDB", store.close)
        await store.connect()
        await store.ensure_indexes()

        self.worker = SyncWorker.from_config(self.config, source, store)
        return self.worker

    @staticmethod
    async def _release(name: str, close: Callable[[], Awaitable[None]]) -> None:
        try:
            await close()
        except Exception as e:
            logger.error(f"Error while closing {name} connection: {e}")

    def _install_signal_handlers(self) -> None:
        logger.debug("Setting up signal handlers for graceful shutdown")
        self._loop = asyncio.get_running_loop()
        self._signals_received = 0
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, self._handle_shutdown)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _handle_shutdown(self, signum: int, _frame: Any = None) -> None:
        """Handle shutdown signal.

        The first signal stops the worker after the user in progress and
        cancels the pending interval wait. A second signal cancels the pass.

        Args:
            signum: Signal number (SIGINT or SIGTERM)
            _frame: Current stack frame (unused)
        """
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        self._signals_received += 1
        if self._loop is None:
            self.request_shutdown()
            return

        if self._signals_received == 1:
            logger.info(f"Received {signal_name} signal, initiating graceful shutdown")
            self._loop.call_soon_threadsafe(self.request_shutdown)
        elif self._main_task is not None:
            logger.warning(f"Received {signal_name} again, cancelling the running pass")
            self._loop.call_soon_threadsafe(self._main_task.cancel)

    def request_shutdown(self) -> None:
        """Stop the worker and wake the service loop."""
        self.shutdown_event.set()
        if self.worker is not None:
            self.worker.stop()
