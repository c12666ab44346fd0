"""Telegram bot integration for Dumka."""

import logging
from pathlib import Path

from groq import AsyncGroq
from telegram import Message, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..access import AccessController
from ..config import Settings, load_settings
from ..errors import ChannelError, DeliveryError
from ..intent import NOTE_KEYWORD, QUERY_KEYWORD
from ..llm_client import GroqLLMClient
from ..logging import get_logger
from ..pipeline import AnswerComposer, AnswerPipeline, InboundMessage
from ..query import QueryExecutor, QueryTranslator
from ..speech import ElevenLabsClient, temporary_audio
from ..storage import ChannelKind, Store

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024

WELCOME_MESSAGE = f"""🎙️ Привет! Я голосовой бот.

✨ Что я умею:
🎤 Голос → ответ голосом
📝 Текст → ответ голосом
💾 «{QUERY_KEYWORD} ...» → отвечу на вопрос по истории сообщений и мыслей
💭 «{NOTE_KEYWORD} ...» → сохраню мысль (только для владельца)

Команды:
/voice [текст] - просто озвучить текст
/help - помощь

Пишите или говорите - я отвечу голосом! 🤖🔊"""

HELP_TEMPLATE = """🎙️ Как я работаю:

1️⃣ 🎤 ГОЛОСОВОЕ сообщение:
   → распознавание → ответ → озвучивание

2️⃣ 📝 ТЕКСТ:
   → ответ → озвучивание

3️⃣ 🔊 /voice [текст]:
   → просто озвучиваю текст

Ответы длиннее {max_chars} символов приходят текстом.

⏳ Лимит: {limit} запроса в день"""

USAGE_LINE = "📊 Сегодня использовано: {used} из {limit}"

VOICE_USAGE = "Укажите текст после команды:\n/voice Ваш текст здесь"
UNKNOWN_COMMAND = "Неизвестная команда. Используйте /help"


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [обрезано]"


def command_argument(text: str | None) -> str:
    """Text after the leading /command token."""
    if not text:
        return ""
    parts = text.strip().split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def inbound_from_update(update: Update, kind: ChannelKind) -> InboundMessage:
    """Build the pipeline's view of a Telegram update."""
    assert update.effective_user is not None
    assert update.effective_chat is not None
    assert update.message is not None

    user = update.effective_user
    return InboundMessage(
        user_id=user.id,
        username=user.username or "",
        chat_id=str(update.effective_chat.id),
        kind=kind,
        text=(update.message.text or "") if kind is ChannelKind.TEXT else "",
    )


class TelegramChannel:
    """Replies to a single Telegram message."""

    def __init__(self, message: Message) -> None:
        self._message = message

    async def notify(self, text: str) -> None:
        try:
            await self._message.reply_text(truncate_message(text))
        except TelegramError as e:
            logger.warning("Failed to send notice: %s", e)

    async def send_text(self, text: str) -> None:
        try:
            await self._message.reply_text(truncate_message(text))
        except TelegramError as e:
            raise DeliveryError(str(e)) from e

    async def send_voice(self, audio_path: Path, caption: str) -> None:
        try:
            with open(audio_path, "rb") as audio:
                await self._message.reply_voice(
                    voice=audio,
                    caption=truncate_message(caption, MAX_CAPTION_LENGTH),
                )
        except TelegramError as e:
            raise DeliveryError(str(e)) from e

    async def download_voice(self) -> bytes:
        voice = self._message.voice
        if voice is None:
            raise ChannelError("message has no voice attachment")

        try:
            tg_file = await voice.get_file()
            with temporary_audio(".ogg") as path:
                await tg_file.download_to_drive(path)
                return path.read_bytes()
        except TelegramError as e:
            raise ChannelError(str(e)) from e


class TelegramBot:
    """Telegram bot for Dumka."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: Store | None = None,
        pipeline: AnswerPipeline | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.settings.validate()
        assert self.settings.telegram_token is not None
        self.token = self.settings.telegram_token

        self.store = store or Store(self.settings.db_path)
        self.store.init_db()

        self.pipeline = pipeline or self._build_pipeline()
        self.json_logger = get_logger()
        self._app: Application | None = None

    def _build_pipeline(self) -> AnswerPipeline:
        settings = self.settings
        llm = GroqLLMClient(AsyncGroq(api_key=settings.groq_api_key), model=settings.model)
        logger.info("Using model %s", llm.model)
        speech = ElevenLabsClient(
            api_key=settings.elevenlabs_api_key or "",
            voice_id=settings.voice_id,
            tts_model=settings.tts_model,
            stt_model=settings.stt_model,
        )
        access = AccessController(
            self.store,
            owner_username=settings.owner_username,
            daily_limit=settings.daily_limit,
            free_first_contact=settings.free_first_contact,
            fail_open=settings.quota_fail_open,
        )
        return AnswerPipeline(
            store=self.store,
            access=access,
            translator=QueryTranslator(llm),
            executor=QueryExecutor(self.store),
            composer=AnswerComposer(llm),
            speech=speech,
            max_voice_chars=settings.max_voice_chars,
        )

    async def _handle_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /start command."""
        assert update.message is not None
        assert update.effective_chat is not None

        self.json_logger.log("telegram_start", chat_id=str(update.effective_chat.id))
        await update.message.reply_text(WELCOME_MESSAGE)

    async def _handle_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /help command."""
        assert update.message is not None
        assert update.effective_user is not None

        text = HELP_TEMPLATE.format(
            max_chars=self.settings.max_voice_chars,
            limit=self.settings.daily_limit,
        )
        access = self.pipeline.access
        if not access.is_owner(update.effective_user.username):
            used = access.used_today(update.effective_user.id)
            if used is not None:
                text += "\n" + USAGE_LINE.format(used=used, limit=self.settings.daily_limit)
        await update.message.reply_text(text)

    async def _handle_voice_command(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /voice: speak the given text as is."""
        assert update.message is not None
        channel = TelegramChannel(update.message)
        inbound = inbound_from_update(update, ChannelKind.TEXT)

        if not await self.pipeline.admit(inbound, channel):
            return

        text = command_argument(update.message.text)
        if not text:
            await update.message.reply_text(VOICE_USAGE)
            return

        await self.pipeline.speak(text, channel)

    async def _handle_unknown_command(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Reply to commands we don't know."""
        assert update.message is not None
        channel = TelegramChannel(update.message)
        inbound = inbound_from_update(update, ChannelKind.TEXT)

        if not await self.pipeline.admit(inbound, channel):
            return
        await update.message.reply_text(UNKNOWN_COMMAND)

    async def _handle_text(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle plain text messages."""
        await self._process(update, ChannelKind.TEXT)

    async def _handle_voice(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle voice messages."""
        await self._process(update, ChannelKind.VOICE)

    async def _process(self, update: Update, kind: ChannelKind) -> None:
        assert update.message is not None
        inbound = inbound_from_update(update, kind)
        logger.info("[%s] %s message", inbound.username, kind.value)

        try:
            result = await self.pipeline.handle(inbound, TelegramChannel(update.message))
            logger.info("Message from %s finished at %s", inbound.username, result.stage.value)
        except Exception as e:
            logger.exception("Error processing message")
            self.json_logger.log(
                "telegram_error",
                chat_id=inbound.chat_id,
                user_id=inbound.user_id,
                error=str(e),
            )
            await update.message.reply_text(f"❌ Ошибка: {e}")

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        self.store.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        self._app.add_handler(CommandHandler("start", self._handle_start))
        self._app.add_handler(CommandHandler("help", self._handle_help))
        self._app.add_handler(CommandHandler("voice", self._handle_voice_command))
        self._app.add_handler(MessageHandler(filters.COMMAND, self._handle_unknown_command))
        self._app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_text)
        )
        self._app.add_handler(MessageHandler(filters.VOICE, self._handle_voice))

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot with model %s", self.settings.model)
        app.run_polling()
