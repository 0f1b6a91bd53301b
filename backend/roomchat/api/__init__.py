"""REST endpoints backed directly by the chat store."""

from .router import router

__all__ = ["router"]
