"""Intent classification by leading keyword."""

from dataclasses import dataclass

NOTE_KEYWORD = "мысль"
QUERY_KEYWORD = "база"


@dataclass(frozen=True)
class NoteCapture:
    """Save the remainder as a note. May be empty."""

    text: str


@dataclass(frozen=True)
class StructuredQuery:
    """Answer a question from the history database. Empty means "everything"."""

    question: str


@dataclass(frozen=True)
class Chat:
    """Anything else, passed to the model as typed."""

    text: str


Intent = NoteCapture | StructuredQuery | Chat


def intent_name(intent: Intent) -> str:
    """Short name for logs."""
    if isinstance(intent, NoteCapture):
        return "note"
    if isinstance(intent, StructuredQuery):
        return "query"
    return "chat"


def classify(text: str) -> Intent:
    """Pick a branch for a message.

    The text is trimmed and lower-cased. The note keyword is checked before
    the query keyword, so "мысль база ..." is a note. Remainders come from
    the normalized text; Chat keeps the original text untouched.
    """
    normalized = text.strip().lower()

    if normalized.startswith(NOTE_KEYWORD):
        return NoteCapture(normalized[len(NOTE_KEYWORD):].strip())

    if normalized.startswith(QUERY_KEYWORD):
        return StructuredQuery(normalized[len(QUERY_KEYWORD):].strip())

    return Chat(text)
