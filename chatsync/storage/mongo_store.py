"""Destination store: minimized chat sessions in a MongoDB collection."""

from __future__ import annotations

import logging
from datetime import UTC
from typing import TYPE_CHECKING, Any

from pymongo import ASCENDING, AsyncMongoClient, IndexModel
from pymongo.errors import PyMongoError

from chatsync.errors import DestinationConnectionError, WriteError

if TYPE_CHECKING:
    from datetime import datetime

    from pymongo.asynchronous.collection import AsyncCollection

    from chatsync.models import MinimizedSession

logger = logging.getLogger(__name__)


def user_id_and_date(user_id: str, created_at: datetime) -> str:
    """Composite index value `<userId>-<YYYY-MM-DD>` (UTC date of creation)."""
    return f"{user_id}-{created_at.astimezone(UTC).date().isoformat()}"


class MongoChatStore:
    """Idempotent writer for minimized sessions.

    Documents are keyed by `(id, userId)` so two users can never collide on
    a session id. An upsert replaces the whole document.
    """

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "morphic",
        collection_name: str = "chats",
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize store.

        Args:
            uri: MongoDB connection string
            db_name: Database name
            collection_name: Collection holding chat documents
            timeout_seconds: Server selection timeout
        """
        self.uri = uri
        self.db_name = db_name
        self.collection_name = collection_name
        self.timeout_seconds = timeout_seconds
        self.client: AsyncMongoClient[dict[str, Any]] | None = None
        self._collection: AsyncCollection[dict[str, Any]] | None = None

    async def connect(self) -> None:
        """Connect and verify the server answers.

        Raises:
            DestinationConnectionError: If MongoDB is unreachable
        """
        logger.info(f"Connecting to MongoDB (database: {self.db_name})")
        self.client = AsyncMongoClient(
            self.uri,
            serverSelectionTimeoutMS=int(self.timeout_seconds * 1000),
            tz_aware=True,
        )
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            raise DestinationConnectionError(f"MongoDB connection failed: {e}") from e

        self._collection = self.client[self.db_name][self.collection_name]
        logger.info(f"Connected to MongoDB database: {self.db_name}")

    @property
    def collection(self) -> AsyncCollection[dict[str, Any]]:
        if self._collection is None:
            raise RuntimeError("MongoDB store not connected")
        return self._collection

    async def ensure_indexes(self) -> None:
        """Create the lookup indexes if they do not exist yet."""
        try:
            await self.collection.create_indexes(
                [
                    IndexModel([("id", ASCENDING), ("userId", ASCENDING)], name="id_user", unique=True),
                    IndexModel([("userIdAndDate", ASCENDING)], name="user_date"),
                ]
            )
        except PyMongoError as e:
            logger.warning(f"Index creation failed: {e}")

    async def upsert(self, session: MinimizedSession, user_id: str) -> None:
        """Insert or fully replace the document for `(session.id, user_id)`.

        Sets the composite `userIdAndDate` field on the session before
        writing.

        Raises:
            WriteError: If the write fails
        """
        session.user_id_and_date = user_id_and_date(user_id, session.created_at)
        document = session.to_document()
        document["userId"] = user_id

        try:
            await self.collection.replace_one(
                {"id": session.id, "userId": user_id},
                document,
                upsert=True,
            )
        except PyMongoError as e:
            raise WriteError(
                f"Failed to save chat {session.id} for user {user_id}: {e}",
                session_id=session.id,
                user_id=user_id,
            ) from e

    async def close(self) -> None:
        """Close the client."""
        if self.client is not None:
            await self.client.close()
            self.client = None
            self._collection = None
            logger.info("MongoDB connection closed")
