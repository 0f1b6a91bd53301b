"""In-memory presence tracking."""

from .registry import PresenceRegistry

__all__ = ["PresenceRegistry"]
