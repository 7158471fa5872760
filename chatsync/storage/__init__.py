"""chatsync storage layer."""

from chatsync.storage.mongo_store import MongoChatStore, user_id_and_date

__all__ = [
    "MongoChatStore",
    "user_id_and_date",
]
