"""Pytest configuration and fixtures for chatsync tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from chatsync.config import SyncConfig
from chatsync.errors import SourceError
from chatsync.sources.base import SessionSource, SourceInfo


class InMemorySource(SessionSource):
    """Session store backed by plain dicts.

    Attributes:
        indexes: index key -> session keys, most recent first
        hashes: session key -> field map
        failing_keys: keys whose reads raise SourceError
    """

    def __init__(self) -> None:
        super().__init__(timeout=1.0)
        self.indexes: dict[str, list[str]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.failing_keys: set[str] = set()
        self.list_error: Exception | None = None
        self.connected = False
        self.close_calls = 0

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(
            name="memory",
            description="In-memory test store",
            protocol="none",
            native_pattern_listing=True,
        )

    def add_user(self, user_id: str, sessions: list[dict[str, Any]], version: str = "v2") -> str:
        index_key = f"user:{version}:chat:{user_id}"
        keys = []
        for session in sessions:
            key = f"chat:{session['id']}"
            fields = dict(session)
            if isinstance(fields.get("messages"), list):
                fields["messages"] = json.dumps(fields["messages"])
            self.hashes[key] = fields
            keys.append(key)
        self.indexes[index_key] = keys
        return index_key

    async def connect(self) -> None:
        self.connected = True

    async def list_index_keys(self, pattern: str) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        prefix = pattern.rstrip("*")
        return [key for key in self.indexes if key.startswith(prefix)]

    async def read_ordered_ids(self, index_key: str) -> list[str]:
        if index_key in self.failing_keys:
            raise SourceError(f"simulated read failure for {index_key}", "zrange")
        return list(self.indexes.get(index_key, []))

    async def read_record(self, session_key: str) -> dict[str, str]:
        if session_key in self.failing_keys:
            raise SourceError(f"simulated read failure for {session_key}", "hgetall")
        return dict(self.hashes.get(session_key, {}))

    async def close(self) -> None:
        self.connected = False
        self.close_calls += 1


class InMemoryCollection:
    """Minimal stand-in for an async MongoDB collection."""

    def __init__(self) -> None:
        self.documents: list[dict[str, Any]] = []
        self.fail_ids: set[str] = set()

    @staticmethod
    def _matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
        return all(document.get(k) == v for k, v in query.items())

    async def replace_one(self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False) -> None:
        from pymongo.errors import OperationFailure

        if replacement.get("id") in self.fail_ids:
            raise OperationFailure(f"simulated write failure for {replacement['id']}")

        for i, document in enumerate(self.documents):
            if self._matches(document, query):
                self.documents[i] = dict(replacement)
                return
        if upsert:
            self.documents.append(dict(replacement))

    async def create_indexes(self, indexes: list[Any]) -> list[str]:
        return [index.document["name"] for index in indexes]

    def find(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        return [d for d in self.documents if self._matches(d, query)]


@pytest.fixture
def make_config() -> Callable[..., SyncConfig]:
    """Build a SyncConfig isolated from .env files, MongoDB enabled."""

    def _make(**overrides: Any) -> SyncConfig:
        values: dict[str, Any] = {
            "use_mongodb": True,
            "use_local_redis": True,
            "sync_interval_ms": 60_000,
        }
        values.update(overrides)
        return SyncConfig(_env_file=None, **values)

    return _make


@pytest.fixture
def memory_source() -> InMemorySource:
    """Create an empty in-memory session store."""
    return InMemorySource()


@pytest.fixture
def memory_collection() -> InMemoryCollection:
    """Create an empty in-memory chat collection."""
    return InMemoryCollection()


@pytest.fixture
def chat_store(memory_collection: InMemoryCollection):
    """Create a MongoChatStore writing into the in-memory collection."""
    from chatsync.storage.mongo_store import MongoChatStore

    store = MongoChatStore()
    store._collection = memory_collection  # type: ignore[assignment]
    return store
