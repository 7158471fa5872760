"""Tests for the sync worker."""

from __future__ import annotations

import asyncio

import pytest

from chatsync.sync.minimizer import Minimizer, MinimizerOptions
from chatsync.sync.worker import SyncWorker


def _chat(session_id: str, *messages: tuple[str, str], **fields) -> dict:
    chat = {
        "id": session_id,
        "title": f"Chat {session_id}",
        "createdAt": "2024-01-01T00:00:00Z",
        "messages": [{"role": role, "content": content} for role, content in messages],
    }
    chat.update(fields)
    return chat


@pytest.fixture
def worker(memory_source, chat_store) -> SyncWorker:
    """Create a worker over the in-memory stores."""
    return SyncWorker(memory_source, chat_store, sync_interval_seconds=60.0)


class TestSyncPass:
    """Test suite for a single sync pass."""

    @pytest.mark.asyncio
    async def test_no_users(self, worker: SyncWorker, memory_collection) -> None:
        stats = await worker.run_pass()

        assert stats.total_users == 0
        assert stats.processed_users == 0
        assert stats.total_chats == 0
        assert stats.error_users == 0
        assert stats.end_time is not None
        assert memory_collection.documents == []
        assert worker.last_stats is stats

    @pytest.mark.asyncio
    async def test_syncs_every_user(self, worker: SyncWorker, memory_source, memory_collection) -> None:
        memory_source.add_user("u1", [_chat("s1", ("user", "hi"), ("assistant", "hello"))])
        memory_source.add_user("u2", [_chat("s2", ("user", "a")), _chat("s3", ("user", "b"))])

        stats = await worker.run_pass()

        assert stats.total_users == 2
        assert stats.processed_users == 2
        assert stats.total_chats == 3
        assert stats.total_messages == 4
        assert len(memory_collection.documents) == 3
        assert memory_collection.find({"id": "s1"})[0]["userId"] == "u1"
        assert memory_collection.find({"id": "s1"})[0]["userIdAndDate"] == "u1-2024-01-01"

    @pytest.mark.asyncio
    async def test_failing_user_is_isolated(self, worker: SyncWorker, memory_source, memory_collection) -> None:
        """Test that users after a failing user are still synced."""
        failing = memory_source.add_user("userA", [_chat("a1", ("user", "x"))])
        memory_source.add_user("userB", [_chat("b1", ("user", "y"))])
        memory_source.add_user("userC", [_chat("c1", ("user", "z"))])
        memory_source.failing_keys.add(failing)

        stats = await worker.run_pass()

        assert stats.total_users == 3
        assert stats.error_users == 1
        assert stats.processed_users == 2
        assert {d["userId"] for d in memory_collection.documents} == {"userB", "userC"}

    @pytest.mark.asyncio
    async def test_failing_session_read_fails_user(self, worker: SyncWorker, memory_source) -> None:
        memory_source.add_user("u1", [_chat("s1", ("user", "x"))])
        memory_source.failing_keys.add("chat:s1")

        stats = await worker.run_pass()

        assert stats.error_users == 1
        assert stats.processed_users == 0

    @pytest.mark.asyncio
    async def test_write_failure_skips_one_session(
        self, worker: SyncWorker, memory_source, memory_collection
    ) -> None:
        memory_source.add_user("u1", [_chat("s1", ("user", "x")), _chat("s2", ("user", "y"))])
        memory_collection.fail_ids.add("s1")

        stats = await worker.run_pass()

        assert stats.failed_writes == 1
        assert stats.processed_users == 1
        assert stats.error_users == 0
        assert stats.total_chats == 1
        assert [d["id"] for d in memory_collection.documents] == ["s2"]

    @pytest.mark.asyncio
    async def test_user_without_chats_is_skipped(self, worker: SyncWorker, memory_source) -> None:
        memory_source.add_user("empty", [])
        memory_source.add_user("u1", [_chat("s1", ("user", "x"))])

        stats = await worker.run_pass()

        assert stats.skipped_chats == 1
        assert stats.processed_users == 1

    @pytest.mark.asyncio
    async def test_discovery_failure_yields_empty_pass(self, worker: SyncWorker, memory_source) -> None:
        from chatsync.errors import SourceError

        memory_source.add_user("u1", [_chat("s1", ("user", "x"))])
        memory_source.list_error = SourceError("scan failed", "scan")

        stats = await worker.run_pass()

        assert stats.total_users == 0
        assert stats.error_users == 0

    @pytest.mark.asyncio
    async def test_repeated_passes_are_idempotent(
        self, worker: SyncWorker, memory_source, memory_collection
    ) -> None:
        memory_source.add_user("u1", [_chat("s1", ("user", "x"))])

        await worker.run_pass()
        await worker.run_pass()

        assert len(memory_collection.documents) == 1

    @pytest.mark.asyncio
    async def test_space_savings_recorded(self, memory_source, chat_store, caplog) -> None:
        import logging

        caplog.set_level(logging.INFO, logger="chatsync.sync.worker")
        memory_source.add_user("u1", [_chat("s1", ("assistant", "a" * 5000))])
        worker = SyncWorker(memory_source, chat_store, optimize_data=True)

        stats = await worker.run_pass()

        assert stats.original_bytes > stats.optimized_bytes > 0
        assert stats.savings_percent > 0
        assert "space saved" in caplog.text

    @pytest.mark.asyncio
    async def test_no_size_accounting_without_optimization(self, memory_source, chat_store) -> None:
        memory_source.add_user("u1", [_chat("s1", ("assistant", "a" * 5000))])
        worker = SyncWorker(memory_source, chat_store, optimize_data=False)

        stats = await worker.run_pass()

        assert stats.original_bytes == 0
        assert stats.optimized_bytes == 0

    @pytest.mark.asyncio
    async def test_minimizer_policy_applied(self, memory_source, chat_store, memory_collection) -> None:
        memory_source.add_user("u1", [_chat("s1", ("system", "rules"), ("user", "q"))])
        worker = SyncWorker(
            memory_source, chat_store, minimizer=Minimizer(MinimizerOptions(keep_system_messages=False))
        )

        await worker.run_pass()

        assert [m["role"] for m in memory_collection.documents[0]["messages"]] == ["user"]

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, memory_source, chat_store) -> None:
        for i in range(6):
            memory_source.add_user(f"u{i}", [_chat(f"s{i}", ("user", "x"))])

        in_flight = 0
        peak = 0
        original = memory_source.read_ordered_ids

        async def slow_read(index_key: str) -> list[str]:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await original(index_key)

        memory_source.read_ordered_ids = slow_read
        worker = SyncWorker(memory_source, chat_store, max_concurrent_users=2)

        stats = await worker.run_pass()

        assert stats.processed_users == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_from_config(self, make_config, memory_source, chat_store) -> None:
        config = make_config(sync_interval_ms=2500, optimize_data=False, max_concurrent_users=4)

        worker = SyncWorker.from_config(config, memory_source, chat_store)

        assert worker.sync_interval_seconds == 2.5
        assert worker.optimize_data is False
        assert worker.max_concurrent_users == 4
        assert worker.chat_version == "v2"


class TestSyncLoop:
    """Test suite for the periodic loop."""

    @pytest.mark.asyncio
    async def test_shutdown_cuts_wait_short(self, worker: SyncWorker) -> None:
        """Test that the interval wait ends as soon as shutdown is requested."""
        shutdown = asyncio.Event()
        task = asyncio.create_task(worker.run(shutdown))

        await asyncio.sleep(0.05)
        assert worker.running
        assert worker.last_stats is not None

        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert not worker.running

    @pytest.mark.asyncio
    async def test_stop(self, worker: SyncWorker) -> None:
        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)

        worker.stop()
        await asyncio.wait_for(task, timeout=1.0)

        assert not worker.running

    @pytest.mark.asyncio
    async def test_passes_never_overlap(self, memory_source, chat_store) -> None:
        worker = SyncWorker(memory_source, chat_store, sync_interval_seconds=0.001)
        in_flight = 0
        peak = 0
        passes = 0
        original = worker.run_pass

        async def slow_pass():
            nonlocal in_flight, peak, passes
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            result = await original()
            in_flight -= 1
            passes += 1
            return result

        worker.run_pass = slow_pass
        shutdown = asyncio.Event()
        task = asyncio.create_task(worker.run(shutdown))

        await asyncio.sleep(0.15)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert passes >= 2
        assert peak == 1

    @pytest.mark.asyncio
    async def test_stop_mid_pass_skips_remaining_users(self, memory_source, chat_store) -> None:
        for i in range(3):
            memory_source.add_user(f"u{i}", [_chat(f"s{i}", ("user", "x"))])
        worker = SyncWorker(memory_source, chat_store)
        original = memory_source.read_ordered_ids

        async def stop_after_first(index_key: str) -> list[str]:
            worker.stop()
            return await original(index_key)

        memory_source.read_ordered_ids = stop_after_first
        await worker.run(asyncio.Event())

        assert worker.last_stats is not None
        assert worker.last_stats.processed_users == 1
