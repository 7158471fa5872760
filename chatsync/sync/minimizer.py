"""Minimizer: lossy size reduction of sessions before durable storage.

Per message, in input order:
- user: content kept verbatim
- assistant: content over `max_message_length` characters is cut to
  `summary_length` characters plus a length annotation; function and tool
  call payloads are always kept
- system: kept verbatim only when `keep_system_messages` is set
- anything else: dropped
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from chatsync.models import UNTITLED_CHAT, MinimizedSession, ReducedMessage

if TYPE_CHECKING:
    from chatsync.config import SyncConfig
    from chatsync.models import RawSession

TRUNCATION_SUFFIX = "... [simplified content, original length: {length} characters]"


@dataclass(frozen=True)
class MinimizerOptions:
    """Minimization policy."""

    max_message_length: int = 500
    summary_length: int = 200
    keep_system_messages: bool = True
    keep_metadata: bool = True

    @classmethod
    def from_config(cls, config: SyncConfig) -> MinimizerOptions:
        return cls(
            max_message_length=config.max_message_length,
            summary_length=config.summary_length,
            keep_system_messages=config.keep_system_messages,
            keep_metadata=config.keep_metadata,
        )


def truncate_content(content: str, max_length: int, summary_length: int) -> str:
    """Shorten content longer than max_length, annotating the original length.

    Content is returned unchanged when the annotated form would not be shorter.
    """
    if len(content) <= max_length:
        return content
    truncated = content[:summary_length] + TRUNCATION_SUFFIX.format(length=len(content))
    return truncated if len(truncated) < len(content) else content


def serialized_size(value: Any) -> int:
    """UTF-8 byte size of the JSON serialization of a value."""
    return len(json.dumps(value, default=str, ensure_ascii=False).encode("utf-8"))


class Minimizer:
    """Turns raw sessions into minimized sessions.

    `minimize` is pure and total: malformed messages are dropped rather than
    raising.
    """

    def __init__(self, options: MinimizerOptions | None = None) -> None:
        self.options = options or MinimizerOptions()

    def minimize_message(self, message: Any) -> ReducedMessage | None:
        """Reduce one message, or return None to drop it."""
        if not isinstance(message, dict):
            return None

        role = message.get("role")
        content = message.get("content")

        if role == "user":
            return ReducedMessage(role="user", content=content)

        if role == "assistant":
            if isinstance(content, str):
                content = truncate_content(
                    content, self.options.max_message_length, self.options.summary_length
                )
            return ReducedMessage(
                role="assistant",
                content=content,
                function_call=message.get("function_call"),
                tool_calls=message.get("tool_calls"),
            )

        if role == "system" and self.options.keep_system_messages:
            return ReducedMessage(role="system", content=content)

        return None

    def minimize(self, raw: RawSession, now: datetime | None = None) -> MinimizedSession:
        """Build the durable representation of a session.

        Args:
            raw: Parsed session
            now: Sync timestamp (defaults to the current time)

        Returns:
            MinimizedSession without the writer-owned index field
        """
        messages = [
            reduced
            for reduced in (self.minimize_message(m) for m in raw.messages)
            if reduced is not None
        ]

        session = MinimizedSession(
            id=raw.id,
            title=raw.title or UNTITLED_CHAT,
            created_at=raw.created_at,
            last_modified=raw.updated_at or raw.created_at,
            user_id=raw.user_id,
            messages=messages,
            message_count=len(messages),
            last_synced_at=now or datetime.now(UTC),
        )
        if self.options.keep_metadata and raw.model:
            session.model = raw.model
        return session
