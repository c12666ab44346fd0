"""Runtime configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError

DEFAULT_MODEL = "llama-3.1-70b-versatile"
DEFAULT_DB_PATH = Path.home() / ".dumka" / "history.db"
DEFAULT_LOG_DIR = Path.home() / ".dumka" / "logs"

OWNER_USERNAME = "roman8890"
DAILY_LIMIT = 2
VOICE_ID = "3EuKHIEZbSzrHGNmdYsx"
TTS_MODEL = "eleven_multilingual_v2"
STT_MODEL = "scribe_v2"
MAX_VOICE_CHARS = 500

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class Settings:
    """Configuration for the bot and its collaborators.

    Attributes:
        telegram_token: Bot token for the Telegram API.
        groq_api_key: API key for Groq chat completions.
        elevenlabs_api_key: API key for ElevenLabs speech services.
        model: Chat model used for translation, compression and chat.
        db_path: SQLite file holding messages, notes and quotas.
        log_dir: Directory for the JSONL event log.
        quota_fail_open: Allow requests when the quota lookup fails.
        free_first_contact: A user's very first request does not count.
        owner_username: Telegram username exempt from quotas, the only one
            allowed to save notes.
        daily_limit: Requests per user per calendar day.
        voice_id: ElevenLabs voice used for every answer.
        max_voice_chars: Longer answers are sent as text only.
    """

    telegram_token: str | None = None
    groq_api_key: str | None = None
    elevenlabs_api_key: str | None = None
    model: str = DEFAULT_MODEL
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    log_dir: Path = field(default_factory=lambda: DEFAULT_LOG_DIR)
    quota_fail_open: bool = True
    free_first_contact: bool = True
    owner_username: str = OWNER_USERNAME
    daily_limit: int = DAILY_LIMIT
    voice_id: str = VOICE_ID
    tts_model: str = TTS_MODEL
    stt_model: str = STT_MODEL
    max_voice_chars: int = MAX_VOICE_CHARS

    def __post_init__(self) -> None:
        if self.daily_limit < 1:
            raise ConfigError("daily_limit must be at least 1")
        if self.max_voice_chars < 1:
            raise ConfigError("max_voice_chars must be at least 1")

    def validate(self) -> None:
        """Fail if any service credential is missing."""
        missing = [
            name
            for name, value in (
                ("TELEGRAM_TOKEN", self.telegram_token),
                ("GROQ_API_KEY", self.groq_api_key),
                ("ELEVENLABS_API_KEY", self.elevenlabs_api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    db_path = os.getenv("DUMKA_DB_PATH")
    log_dir = os.getenv("DUMKA_LOG_DIR")

    return Settings(
        telegram_token=os.getenv("TELEGRAM_TOKEN"),
        groq_api_key=os.getenv("GROQ_API_KEY"),
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
        model=os.getenv("GROQ_MODEL") or DEFAULT_MODEL,
        db_path=Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH,
        log_dir=Path(log_dir).expanduser() if log_dir else DEFAULT_LOG_DIR,
        quota_fail_open=_env_flag("DUMKA_QUOTA_FAIL_OPEN", True),
        free_first_contact=_env_flag("DUMKA_FREE_FIRST_CONTACT", True),
    )
