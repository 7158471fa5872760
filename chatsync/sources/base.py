"""Base interface for the ephemeral session store backends."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from chatsync.errors import SourceConnectionError, SourceError, StoreTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceInfo(BaseModel):
    """Description of a session store backend.

    Attributes:
        name: Backend name (local, upstash)
        description: Human-readable description
        protocol: Wire protocol (resp, rest)
        native_pattern_listing: Whether the backend lists keys by glob directly
    """

    name: str
    description: str
    protocol: str
    native_pattern_listing: bool


class SessionSource(ABC):
    """Uniform read-only view over a Redis-like session store.

    Both backends hold one long-lived connection for the process lifetime.
    There is no reconnect logic: a failing call surfaces as `SourceError`
    and the caller decides how far the failure reaches.

    Attributes:
        timeout: Seconds allowed for a single store call
        info: Typed backend description
    """

    def __init__(self, timeout: float = 30.0) -> None:
        """Initialize source.

        Args:
            timeout: Seconds allowed for a single store call
        """
        self.timeout = timeout
        self.info = self.get_source_info()

    @abstractmethod
    def get_source_info(self) -> SourceInfo:
        """Get backend description.

        Returns:
            SourceInfo for this backend
        """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            SourceConnectionError: If the store cannot be reached
        """

    @abstractmethod
    async def list_index_keys(self, pattern: str) -> list[str]:
        """List every key matching a glob-style pattern.

        Raises:
            SourceError: If enumeration fails
        """

    @abstractmethod
    async def read_ordered_ids(self, index_key: str) -> list[str]:
        """Read all members of a sorted set, highest score (most recent) first.

        Raises:
            SourceError: If the range read fails
        """

    @abstractmethod
    async def read_record(self, session_key: str) -> dict[str, str]:
        """Read a hash as a field map, empty when the key does not exist.

        Raises:
            SourceError: If the read fails
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one store call under the time budget, normalizing failures."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except TimeoutError as e:
            raise StoreTimeoutError(
                f"{self.info.name}: {operation} timed out after {self.timeout}s", operation
            ) from e
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(f"{self.info.name}: {operation} failed: {e}", operation) from e

    async def _connect_call(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await self._call("connect", awaitable)
        except SourceError as e:
            raise SourceConnectionError(str(e), "connect") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.info.name}, protocol={self.info.protocol})"
