"""Message-board building blocks: response codes, in-memory post ranking, a guide crawler, RAG chat and vector search helpers."""

__version__ = "0.1.0"

__all__ = ["codes", "redis_store", "crawler", "ragchat", "vector_search"]