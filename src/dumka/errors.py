"""Exception hierarchy for Dumka.

Library errors (sqlite3, groq, httpx, telegram) are wrapped into these at the
component boundary so the pipeline can map each one to its own reply.
"""


class DumkaError(Exception):
    """Base class for all Dumka errors."""


class ConfigError(DumkaError):
    """Required configuration is missing or invalid."""


class StorageError(DumkaError):
    """The SQLite store failed."""


class LLMError(DumkaError):
    """The language model call failed or produced no completion."""


class TranslationError(DumkaError):
    """A question could not be turned into a query."""


class ExecutionError(DumkaError):
    """A translated query could not be executed."""


class QueryRejectedError(ExecutionError):
    """The query is not a read-only SELECT and was never run."""


class CompressionError(DumkaError):
    """Query results could not be turned into a spoken answer."""


class ChatError(DumkaError):
    """The open conversation call failed."""


class SpeechError(DumkaError):
    """Transcription or synthesis failed."""


class ChannelError(DumkaError):
    """The messaging channel failed."""


class DeliveryError(ChannelError):
    """The messaging channel did not accept an outbound message."""
