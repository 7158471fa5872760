"""chatsync - Redis to MongoDB chat history replication."""

__version__ = "0.1.0"
