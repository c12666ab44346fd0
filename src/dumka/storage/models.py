"""Records kept in the SQLite store."""

from dataclasses import dataclass
from enum import Enum


class ChannelKind(str, Enum):
    """How a message travelled: typed text or a voice note."""

    TEXT = "text"
    VOICE = "voice"


@dataclass(frozen=True)
class InteractionRecord:
    """One successfully delivered exchange.

    Attributes:
        user_id: Telegram user id of the sender.
        username: Sender's display name.
        input_kind: Whether the user typed or spoke.
        input_text: The raw text (or transcript) the user sent.
        output_kind: How the answer was delivered.
        output_text: The answer text.
        id: Database ID, None for new records.
        timestamp: UTC timestamp assigned by the store.
    """

    user_id: int
    username: str
    input_kind: ChannelKind
    input_text: str
    output_kind: ChannelKind
    output_text: str
    id: int | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class NoteRecord:
    """A note captured by the owner."""

    text: str
    category: str = "general"
    id: int | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class UserQuota:
    """Requests consumed by a user within one calendar day."""

    user_id: int
    username: str
    window_date: str
    count: int
