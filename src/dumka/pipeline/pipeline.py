"""Per-message answer pipeline.

One inbound message goes through:

    RECEIVED -> GATED -> CLASSIFIED -> ANSWERED -> SYNTHESIZED -> DELIVERED -> PERSISTED

or stops early as REJECTED (quota, permission, usage) or FAILED (an external
call failed). An interaction is written to the history only after the voice
answer was accepted by the channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from ..access import AccessController, QuotaDecision
from ..config import MAX_VOICE_CHARS
from ..errors import (
    ChannelError,
    ChatError,
    CompressionError,
    DeliveryError,
    ExecutionError,
    SpeechError,
    StorageError,
    TranslationError,
)
from ..intent import Chat, Intent, NoteCapture, StructuredQuery, classify, intent_name
from ..logging import get_logger
from ..query import QueryExecutor, QueryTranslator
from ..speech import temporary_audio
from ..storage import ChannelKind, InteractionRecord, NoteRecord, Store
from .answers import AnswerComposer

logger = logging.getLogger(__name__)

NOTE_SAVED = "Мысль сохранена"
NOTE_CATEGORY = "general"

NO_ACCESS_MESSAGE = "❌ У вас нет доступа к этой функции"
EMPTY_NOTE_MESSAGE = "❌ Укажите текст мысли после слова 'мысль'"
VOICE_SEND_FAILED = "❌ Ошибка отправки голосового сообщения"


def quota_message(limit: int) -> str:
    """Reply sent when a user is over the daily limit."""
    return (
        f"⏳ Вы достигли дневного лимита запросов ({limit} запроса в день).\n\n"
        "Лимит обновляется каждый день в 00:00.\n"
        "Спасибо за понимание! 🙏"
    )


class Stage(Enum):
    """Where a message ended up."""

    RECEIVED = "received"
    GATED = "gated"
    CLASSIFIED = "classified"
    ANSWERED = "answered"
    SYNTHESIZED = "synthesized"
    DELIVERED = "delivered"
    PERSISTED = "persisted"
    REJECTED = "rejected"
    FAILED = "failed"


class Channel(Protocol):
    """The conversation a message came from and answers go back to."""

    async def notify(self, text: str) -> None:
        """Send a progress notice. Failures are not reported."""
        ...

    async def send_text(self, text: str) -> None:
        """Send a text reply. Raises DeliveryError."""
        ...

    async def send_voice(self, audio_path: Path, caption: str) -> None:
        """Send an audio file as a voice message. Raises DeliveryError."""
        ...

    async def download_voice(self) -> bytes:
        """Fetch the inbound voice message. Raises ChannelError."""
        ...


class SpeechService(Protocol):
    async def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> str: ...

    async def synthesize(self, text: str) -> bytes: ...


@dataclass(frozen=True)
class InboundMessage:
    """A user message as the pipeline sees it.

    For voice messages ``text`` is empty until the audio is transcribed.
    """

    user_id: int
    username: str
    chat_id: str
    kind: ChannelKind = ChannelKind.TEXT
    text: str = ""


@dataclass
class PipelineResult:
    """What happened to one message."""

    stage: Stage
    input_text: str = ""
    intent: Intent | None = None
    answer: str | None = None
    output_kind: ChannelKind | None = None
    record: InteractionRecord | None = None

    @property
    def persisted(self) -> bool:
        return self.record is not None


class _Refusal(Exception):
    """The branch declined to answer; the message is a user-facing reply."""


class AnswerPipeline:
    """Drives gating, classification, answering, speech and persistence."""

    def __init__(
        self,
        store: Store,
        access: AccessController,
        translator: QueryTranslator,
        executor: QueryExecutor,
        composer: AnswerComposer,
        speech: SpeechService,
        max_voice_chars: int = MAX_VOICE_CHARS,
    ) -> None:
        self.store = store
        self.access = access
        self.translator = translator
        self.executor = executor
        self.composer = composer
        self.speech = speech
        self.max_voice_chars = max_voice_chars
        self.json_logger = get_logger()

    async def admit(self, message: InboundMessage, channel: Channel) -> bool:
        """Apply the daily quota. Sends the quota notice when denied."""
        decision = self.access.check_and_consume(message.user_id, message.username)
        if decision is QuotaDecision.DENIED:
            logger.info("Request from %s rejected: over the limit", message.username)
            await self._reply(channel, quota_message(self.access.daily_limit))
            return False
        return True

    async def handle(self, message: InboundMessage, channel: Channel) -> PipelineResult:
        """Process one message to completion."""
        if not await self.admit(message, channel):
            return PipelineResult(Stage.REJECTED, input_text=message.text)

        text = message.text
        if message.kind is ChannelKind.VOICE:
            transcript = await self._transcribe(message, channel)
            if transcript is None:
                return PipelineResult(Stage.FAILED)
            text = transcript

        intent = classify(text)
        self.json_logger.log(
            "intent",
            chat_id=message.chat_id,
            user_id=message.user_id,
            intent=intent_name(intent),
        )
        result = PipelineResult(Stage.CLASSIFIED, input_text=text, intent=intent)

        try:
            answer = await self._answer(intent, message, channel)
        except _Refusal as e:
            await self._reply(channel, str(e))
            result.stage = Stage.REJECTED
            return result
        except (
            TranslationError,
            ExecutionError,
            CompressionError,
            ChatError,
            StorageError,
        ) as e:
            self.json_logger.log_stage_failed(
                type(e).__name__,
                str(e),
                chat_id=message.chat_id,
                user_id=message.user_id,
                intent=intent_name(intent),
            )
            await self._reply(channel, _error_reply(e))
            result.stage = Stage.FAILED
            return result

        result.answer = answer
        result.stage = Stage.ANSWERED
        logger.info("Answer: %s", answer)

        await self._deliver(message, text, answer, channel, result)
        return result

    async def speak(self, text: str, channel: Channel) -> bool:
        """Voice arbitrary text without touching the history."""
        await channel.notify("🎤 Генерирую голосовое сообщение...")
        try:
            audio = await self.speech.synthesize(text)
        except SpeechError as e:
            logger.warning("Synthesis failed: %s", e)
            await self._reply(channel, f"❌ Ошибка генерации голоса: {e}")
            return False

        with temporary_audio(".mp3", audio) as path:
            try:
                await channel.send_voice(path, f"🔊 {text}")
            except DeliveryError as e:
                logger.warning("Failed to send voice: %s", e)
                await self._reply(channel, VOICE_SEND_FAILED)
                return False
        return True

    async def _transcribe(self, message: InboundMessage, channel: Channel) -> str | None:
        await channel.notify("🎧 Распознаю голос...")
        try:
            audio = await channel.download_voice()
        except ChannelError as e:
            logger.warning("Failed to get voice file: %s", e)
            await self._reply(channel, "❌ Ошибка получения голосового файла")
            return None

        try:
            text = await self.speech.transcribe(audio)
        except SpeechError as e:
            logger.warning("Transcription failed: %s", e)
            self.json_logger.log_stage_failed(
                "transcription", str(e), chat_id=message.chat_id, user_id=message.user_id
            )
            await self._reply(channel, f"❌ Ошибка распознавания: {e}")
            return None

        logger.info("Recognized: %s", text)
        return text

    async def _answer(self, intent: Intent, message: InboundMessage, channel: Channel) -> str:
        if isinstance(intent, NoteCapture):
            return self._capture_note(intent, message)

        if isinstance(intent, StructuredQuery):
            await channel.notify("💾 Обрабатываю запрос к базе данных...")
            sql = await self.translator.translate(intent.question)
            rows = self.executor.execute(sql)
            return await self.composer.summarize(intent.question, rows)

        if not isinstance(intent, Chat):
            raise TypeError(f"unknown intent: {intent!r}")

        if message.kind is ChannelKind.VOICE:
            await channel.notify(f'🤖 Вы сказали: "{intent.text}"\n\nДумаю над ответом...')
        else:
            await channel.notify("🤖 Думаю над ответом...")
        return await self.composer.chat(intent.text)

    def _capture_note(self, intent: NoteCapture, message: InboundMessage) -> str:
        if not self.access.is_owner(message.username):
            logger.warning("Note attempt from %s", message.username)
            raise _Refusal(NO_ACCESS_MESSAGE)
        if not intent.text:
            raise _Refusal(EMPTY_NOTE_MESSAGE)

        logger.info("Saving note: %s", intent.text)
        self.store.save_note(NoteRecord(text=intent.text, category=NOTE_CATEGORY))
        return NOTE_SAVED

    async def _deliver(
        self,
        message: InboundMessage,
        input_text: str,
        answer: str,
        channel: Channel,
        result: PipelineResult,
    ) -> None:
        if len(answer) > self.max_voice_chars:
            sent = await self._reply(
                channel,
                f"📝 {answer}\n\n⚠️ Ответ слишком длинный для озвучивания "
                f"(макс. {self.max_voice_chars} символов)",
            )
            result.output_kind = ChannelKind.TEXT
            result.stage = Stage.DELIVERED if sent else Stage.FAILED
            return

        await channel.notify("🎤 Генерирую голосовое сообщение...")
        try:
            audio = await self.speech.synthesize(answer)
        except SpeechError as e:
            logger.warning("Synthesis failed: %s", e)
            self.json_logger.log_stage_failed(
                "synthesis", str(e), chat_id=message.chat_id, user_id=message.user_id
            )
            await self._reply(channel, f"📝 {answer}\n\n❌ Ошибка генерации голоса: {e}")
            result.output_kind = ChannelKind.TEXT
            result.stage = Stage.FAILED
            return

        with temporary_audio(".mp3", audio) as path:
            result.stage = Stage.SYNTHESIZED
            try:
                await channel.send_voice(path, f"🔊 {answer}")
            except DeliveryError as e:
                logger.warning("Failed to send voice: %s", e)
                self.json_logger.log_delivery(
                    False, chat_id=message.chat_id, user_id=message.user_id, error=str(e)
                )
                await self._reply(channel, VOICE_SEND_FAILED)
                result.stage = Stage.FAILED
                return

        result.stage = Stage.DELIVERED
        result.output_kind = ChannelKind.VOICE
        self.json_logger.log_delivery(
            True,
            chat_id=message.chat_id,
            user_id=message.user_id,
            output_kind=ChannelKind.VOICE.value,
        )

        try:
            result.record = self.store.save_interaction(
                InteractionRecord(
                    user_id=message.user_id,
                    username=message.username,
                    input_kind=message.kind,
                    input_text=input_text,
                    output_kind=ChannelKind.VOICE,
                    output_text=answer,
                )
            )
        except StorageError as e:
            logger.error("Delivered but not recorded: %s", e)
            return

        result.stage = Stage.PERSISTED
        logger.info("Saved to history: user=%s, type=%s", message.username, message.kind.value)
        self.json_logger.log("persisted", chat_id=message.chat_id, user_id=message.user_id)

    async def _reply(self, channel: Channel, text: str) -> bool:
        try:
            await channel.send_text(text)
        except DeliveryError as e:
            logger.warning("Failed to send reply: %s", e)
            return False
        return True


def _error_reply(error: Exception) -> str:
    """User-facing text for a failed stage."""
    if isinstance(error, TranslationError):
        return f"❌ Ошибка генерации SQL: {error}"
    if isinstance(error, ExecutionError):
        return f"❌ Ошибка выполнения запроса: {error}"
    if isinstance(error, CompressionError):
        return f"❌ Ошибка форматирования: {error}"
    if isinstance(error, ChatError):
        return f"❌ Ошибка получения ответа: {error}"
    return f"❌ Ошибка сохранения: {error}"
