"""SQLite storage for interactions, notes and quotas."""

from .models import ChannelKind, InteractionRecord, NoteRecord, UserQuota
from .store import Store

__all__ = [
    "ChannelKind",
    "InteractionRecord",
    "NoteRecord",
    "Store",
    "UserQuota",
]
