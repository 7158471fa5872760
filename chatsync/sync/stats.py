"""Per-pass run statistics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass
class SyncStats:
    """Counters for one sync pass. A new instance is created for every pass."""

    total_users: int = 0
    processed_users: int = 0
    total_chats: int = 0
    total_messages: int = 0
    skipped_chats: int = 0
    error_users: int = 0
    failed_writes: int = 0
    original_bytes: int = 0
    optimized_bytes: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None

    @classmethod
    def started(cls) -> SyncStats:
        return cls(start_time=datetime.now(UTC))

    def finish(self) -> None:
        self.end_time = datetime.now(UTC)

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or datetime.now(UTC)
        return (end - self.start_time).total_seconds()

    @property
    def savings_percent(self) -> float:
        """Space saved by minimization, as a percentage of the raw size."""
        if self.original_bytes <= 0:
            return 0.0
        return (self.original_bytes - self.optimized_bytes) / self.original_bytes * 100

    def summary_lines(self, optimize_data: bool) -> list[str]:
        lines = [
            "===== Sync complete =====",
            f"Total users: {self.total_users}",
            f"Processed users: {self.processed_users}",
            f"Total chats: {self.total_chats}",
            f"Total messages: {self.total_messages}",
            f"Skipped (no chats): {self.skipped_chats}",
            f"Users with errors: {self.error_users}",
        ]
        if self.failed_writes:
            lines.append(f"Failed writes: {self.failed_writes}")
        lines.append(f"Elapsed: {self.duration_seconds:.2f}s")
        if optimize_data:
            lines.append(f"Optimization: on ({self.savings_percent:.2f}% space saved)")
        else:
            lines.append("Optimization: off")
        lines.append("=========================")
        return lines
