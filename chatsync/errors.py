"""Exception taxonomy for chatsync.

Only configuration and startup connection errors terminate the process.
Everything else is contained at the narrowest boundary that lets unaffected
users keep syncing.
"""

from __future__ import annotations


class ChatSyncError(Exception):
    """Base class for all chatsync errors."""


class ConfigurationError(ChatSyncError):
    """Raised when a required setting is missing or inconsistent."""


class SourceError(ChatSyncError):
    """Raised when a call against the ephemeral session store fails."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class SourceConnectionError(SourceError):
    """Raised when the session store cannot be reached at startup."""


class StoreTimeoutError(SourceError):
    """Raised when a session store call exceeds its time budget."""


class DestinationConnectionError(ChatSyncError):
    """Raised when MongoDB cannot be reached at startup."""


class WriteError(ChatSyncError):
    """Raised when persisting a minimized session fails."""

    def __init__(self, message: str, session_id: str | None = None, user_id: str | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.user_id = user_id
