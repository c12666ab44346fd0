"""Shared fixtures."""

from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from dumka.access import AccessController
from dumka.errors import ChannelError, DeliveryError
from dumka.logging import JSONLLogger, configure_logger
from dumka.pipeline import AnswerComposer, AnswerPipeline
from dumka.query import QueryExecutor, QueryTranslator
from dumka.storage import Store

OWNER = "roman8890"


@pytest.fixture(autouse=True)
def event_log(tmp_path: Path) -> JSONLLogger:
    """Keep the JSONL event log inside the test's temp dir."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def store(tmp_path: Path) -> Store:
    """Create a Store with a temporary database."""
    store = Store(tmp_path / "history.db")
    store.init_db()
    yield store
    store.close()


class Clock:
    """Settable replacement for date.today."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def clock() -> Clock:
    return Clock(date(2024, 3, 1))


class FakeChannel:
    """Records everything the pipeline sends."""

    def __init__(self, audio: bytes = b"OggS-fake") -> None:
        self.notices: list[str] = []
        self.texts: list[str] = []
        self.voices: list[tuple[bytes, str]] = []
        self.voice_paths: list[Path] = []
        self.audio = audio
        self.fail_voice = False
        self.fail_download = False

    async def notify(self, text: str) -> None:
        self.notices.append(text)

    async def send_text(self, text: str) -> None:
        self.texts.append(text)

    async def send_voice(self, audio_path: Path, caption: str) -> None:
        self.voice_paths.append(audio_path)
        if self.fail_voice:
            raise DeliveryError("Forbidden: bot was blocked by the user")
        self.voices.append((audio_path.read_bytes(), caption))

    async def download_voice(self) -> bytes:
        if self.fail_download:
            raise ChannelError("file is too big")
        return self.audio


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def llm() -> AsyncMock:
    """Mock LLMClient; set ``complete.side_effect`` per test."""
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value="Короткий ответ.")
    return mock


@pytest.fixture
def speech() -> AsyncMock:
    mock = AsyncMock()
    mock.transcribe = AsyncMock(return_value="привет")
    mock.synthesize = AsyncMock(return_value=b"ID3-fake-mp3")
    return mock


@pytest.fixture
def access(store: Store, clock: Clock) -> AccessController:
    return AccessController(store, owner_username=OWNER, daily_limit=2, today=clock)


@pytest.fixture
def pipeline(
    store: Store, access: AccessController, llm: AsyncMock, speech: AsyncMock
) -> AnswerPipeline:
    return AnswerPipeline(
        store=store,
        access=access,
        translator=QueryTranslator(llm),
        executor=QueryExecutor(store),
        composer=AnswerComposer(llm),
        speech=speech,
    )
