"""chatsync data models."""

from chatsync.models.sessions import (
    UNTITLED_CHAT,
    MinimizedSession,
    RawSession,
    ReducedMessage,
    parse_messages,
    parse_timestamp,
)

__all__ = [
    "MinimizedSession",
    "RawSession",
    "ReducedMessage",
    "UNTITLED_CHAT",
    "parse_messages",
    "parse_timestamp",
]
