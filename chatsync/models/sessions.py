"""Session record models.

The source store holds untyped hashes whose values are all strings. Those
hashes are turned into `RawSession` objects by a single total parse step
(`RawSession.from_hash`) so nothing downstream deals with malformed input.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

UNTITLED_CHAT = "Untitled Chat"

# Hash fields mapped onto RawSession attributes; everything else lands in `extra`.
_KNOWN_FIELDS = {"id", "title", "createdAt", "userId", "messages", "model", "updatedAt"}


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Returns:
        UTC-aware datetime, or None when the value is absent or unparseable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        digits = text.removeprefix("-")
        if digits.isascii() and digits.isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def parse_messages(value: Any) -> list[Any]:
    """Decode the JSON-encoded `messages` field.

    Any decode failure or non-list payload yields an empty list.
    """
    if isinstance(value, list):
        return value
    if not isinstance(value, (str, bytes)):
        return []
    try:
        decoded = json.loads(value)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return []
    return decoded if isinstance(decoded, list) else []


class RawSession(BaseModel):
    """Full-fidelity session as read from the ephemeral store."""

    key: str  # Redis key the hash was read from
    id: str
    title: str | None = None
    created_at: datetime
    user_id: str | None = None
    messages: list[Any] = Field(default_factory=list)
    model: str | None = None
    updated_at: datetime | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_hash(cls, key: str, fields: dict[str, Any]) -> RawSession:
        """Build a session from a hash field map. Never raises."""
        session_id = _text(fields.get("id")) or key.rsplit(":", 1)[-1]
        created_at = parse_timestamp(fields.get("createdAt"))
        if created_at is None:
            logger.debug(f"Session {key}: missing or invalid createdAt, using current time")
            created_at = datetime.now(UTC)

        return cls(
            key=key,
            id=session_id,
            title=_text(fields.get("title")),
            created_at=created_at,
            user_id=_text(fields.get("userId")),
            messages=parse_messages(fields.get("messages")),
            model=_text(fields.get("model")),
            updated_at=parse_timestamp(fields.get("updatedAt")),
            extra={k: v for k, v in fields.items() if k not in _KNOWN_FIELDS},
        )

    def to_document(self) -> dict[str, Any]:
        """Serialize with the source field names, as the chat application stores them."""
        doc: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "userId": self.user_id,
            "messages": self.messages,
        }
        if self.model is not None:
            doc["model"] = self.model
        if self.updated_at is not None:
            doc["updatedAt"] = self.updated_at
        doc.update(self.extra)
        return doc


class ReducedMessage(BaseModel):
    """One message of a minimized session."""

    role: str
    content: Any = None
    function_call: Any = None
    tool_calls: Any = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"role": self.role}
        if self.content is not None:
            doc["content"] = self.content
        if self.function_call is not None:
            doc["function_call"] = self.function_call
        if self.tool_calls is not None:
            doc["tool_calls"] = self.tool_calls
        return doc


class MinimizedSession(BaseModel):
    """Durable representation of a session."""

    id: str
    title: str = UNTITLED_CHAT
    created_at: datetime
    last_modified: datetime
    user_id: str | None = None
    messages: list[ReducedMessage] = Field(default_factory=list)
    message_count: int = 0
    model: str | None = None
    last_synced_at: datetime
    user_id_and_date: str | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize to the MongoDB document shape.

        `model` and `userIdAndDate` are left out entirely when unset.
        """
        doc: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
            "userId": self.user_id,
            "messages": [m.to_document() for m in self.messages],
            "messageCount": self.message_count,
            "lastSyncedAt": self.last_synced_at,
        }
        if self.model is not None:
            doc["model"] = self.model
        if self.user_id_and_date is not None:
            doc["userIdAndDate"] = self.user_id_and_date
        return doc
