"""Tests for AnswerPipeline."""

from unittest.mock import AsyncMock

import pytest

from dumka.access import AccessController
from dumka.errors import LLMError, SpeechError
from dumka.intent import Chat, NoteCapture, StructuredQuery
from dumka.pipeline import AnswerComposer, AnswerPipeline, InboundMessage, Stage, quota_message
from dumka.pipeline.pipeline import (
    EMPTY_NOTE_MESSAGE,
    NO_ACCESS_MESSAGE,
    NOTE_SAVED,
    VOICE_SEND_FAILED,
)
from dumka.query import QueryExecutor, QueryTranslator
from dumka.storage import ChannelKind, Store

OWNER = "roman8890"


def text_message(text: str, username: str = "bob", user_id: int = 7) -> InboundMessage:
    return InboundMessage(user_id=user_id, username=username, chat_id="100", text=text)


def voice_message(username: str = "bob", user_id: int = 7) -> InboundMessage:
    return InboundMessage(
        user_id=user_id, username=username, chat_id="100", kind=ChannelKind.VOICE
    )


class TestGate:
    @pytest.mark.asyncio
    async def test_denied_after_limit(self, pipeline: AnswerPipeline, channel, llm: AsyncMock):
        for _ in range(3):
            result = await pipeline.handle(text_message("привет"), channel)
            assert result.stage is Stage.PERSISTED

        llm.complete.reset_mock()
        result = await pipeline.handle(text_message("привет"), channel)

        assert result.stage is Stage.REJECTED
        assert channel.texts[-1] == quota_message(2)
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_denied_request_not_recorded(self, pipeline: AnswerPipeline, channel, store: Store):
        for _ in range(4):
            await pipeline.handle(text_message("привет"), channel)
        assert len(store.get_interactions()) == 3

    @pytest.mark.asyncio
    async def test_owner_unlimited(self, pipeline: AnswerPipeline, channel):
        for _ in range(5):
            result = await pipeline.handle(text_message("привет", username=OWNER), channel)
            assert result.stage is Stage.PERSISTED

    @pytest.mark.asyncio
    async def test_denied_voice_not_downloaded(self, pipeline: AnswerPipeline, channel, speech):
        for _ in range(3):
            await pipeline.handle(text_message("привет"), channel)
        result = await pipeline.handle(voice_message(), channel)
        assert result.stage is Stage.REJECTED
        speech.transcribe.assert_not_called()


class TestNoteCapture:
    @pytest.mark.asyncio
    async def test_owner_saves_note(self, pipeline: AnswerPipeline, channel, store: Store, speech):
        result = await pipeline.handle(
            text_message("Мысль купить молоко", username=OWNER), channel
        )

        assert result.intent == NoteCapture("купить молоко")
        assert result.answer == NOTE_SAVED
        assert result.stage is Stage.PERSISTED
        notes = store.get_notes()
        assert [(n.text, n.category) for n in notes] == [("купить молоко", "general")]
        speech.synthesize.assert_awaited_once_with(NOTE_SAVED)
        assert channel.voices[0][1] == f"🔊 {NOTE_SAVED}"

    @pytest.mark.asyncio
    async def test_non_owner_refused(self, pipeline: AnswerPipeline, channel, store: Store, speech):
        result = await pipeline.handle(text_message("мысль купить молоко"), channel)

        assert result.stage is Stage.REJECTED
        assert channel.texts == [NO_ACCESS_MESSAGE]
        assert store.get_notes() == []
        assert store.get_interactions() == []
        speech.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_note(self, pipeline: AnswerPipeline, channel, store: Store):
        result = await pipeline.handle(text_message("мысль   ", username=OWNER), channel)

        assert result.stage is Stage.REJECTED
        assert channel.texts == [EMPTY_NOTE_MESSAGE]
        assert store.get_notes() == []

    @pytest.mark.asyncio
    async def test_note_write_failure(self, pipeline: AnswerPipeline, channel, store: Store):
        store.run_query("DROP TABLE notes")

        result = await pipeline.handle(text_message("мысль идея", username=OWNER), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts[0].startswith("❌ Ошибка сохранения")
        assert store.get_interactions() == []


class TestStructuredQuery:
    @pytest.mark.asyncio
    async def test_query_answered_and_persisted(
        self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock
    ):
        llm.complete.side_effect = [
            "```sql\nSELECT COUNT(*) as count FROM messages\n```",
            "Сообщений пока нет.",
        ]

        result = await pipeline.handle(text_message("база сколько сообщений"), channel)

        assert result.intent == StructuredQuery("сколько сообщений")
        assert result.stage is Stage.PERSISTED
        assert "💾 Обрабатываю запрос к базе данных..." in channel.notices
        compress_prompt = llm.complete.call_args_list[1].args[0]
        assert "count: 0" in compress_prompt

        [record] = store.get_interactions()
        assert record.input_text == "база сколько сообщений"
        assert record.output_text == "Сообщений пока нет."
        assert record.input_kind is ChannelKind.TEXT
        assert record.output_kind is ChannelKind.VOICE

    @pytest.mark.asyncio
    async def test_empty_result_uses_sentinel(self, pipeline: AnswerPipeline, channel, llm: AsyncMock):
        llm.complete.side_effect = ["SELECT note_text FROM notes", "Мыслей нет."]
        await pipeline.handle(text_message("база мои мысли"), channel)
        assert "результатов не найдено" in llm.complete.call_args_list[1].args[0]

    @pytest.mark.asyncio
    async def test_translation_failure(
        self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock, speech
    ):
        llm.complete.side_effect = LLMError("rate limited")

        result = await pipeline.handle(text_message("база сколько"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == ["❌ Ошибка генерации SQL: rate limited"]
        assert store.get_interactions() == []
        speech.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_query(
        self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock
    ):
        llm.complete.side_effect = ["DROP TABLE messages"]

        result = await pipeline.handle(text_message("база удали всё"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts[0].startswith("❌ Ошибка выполнения запроса")
        assert llm.complete.await_count == 1
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_execution_failure(self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock):
        llm.complete.side_effect = ["SELECT nope FROM messages"]

        result = await pipeline.handle(text_message("база что-то"), channel)

        assert result.stage is Stage.FAILED
        assert "no such column" in channel.texts[0]
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_compression_failure(self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock):
        llm.complete.side_effect = ["SELECT 1", LLMError("overloaded")]

        result = await pipeline.handle(text_message("база тест"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == ["❌ Ошибка форматирования: overloaded"]
        assert store.get_interactions() == []


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_answered(self, pipeline: AnswerPipeline, channel, store: Store):
        result = await pipeline.handle(text_message("Как дела?"), channel)

        assert result.intent == Chat("Как дела?")
        assert result.stage is Stage.PERSISTED
        assert result.persisted
        assert "🤖 Думаю над ответом..." in channel.notices
        assert channel.voices == [(b"ID3-fake-mp3", "🔊 Короткий ответ.")]
        assert store.get_interactions()[0].output_text == "Короткий ответ."

    @pytest.mark.asyncio
    async def test_chat_failure(self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock):
        llm.complete.side_effect = LLMError("down")

        result = await pipeline.handle(text_message("hi"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == ["❌ Ошибка получения ответа: down"]
        assert store.get_interactions() == []


class TestVoiceLimit:
    @pytest.mark.asyncio
    async def test_at_limit_is_spoken(self, pipeline: AnswerPipeline, channel, llm: AsyncMock, speech):
        llm.complete.return_value = "а" * 500

        result = await pipeline.handle(text_message("hi"), channel)

        assert result.stage is Stage.PERSISTED
        speech.synthesize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_over_limit_sent_as_text(
        self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock, speech
    ):
        answer = "а" * 501
        llm.complete.return_value = answer

        result = await pipeline.handle(text_message("hi"), channel)

        speech.synthesize.assert_not_called()
        assert result.stage is Stage.DELIVERED
        assert result.output_kind is ChannelKind.TEXT
        assert not result.persisted
        assert channel.texts[0].startswith(f"📝 {answer}")
        assert "слишком длинный" in channel.texts[0]
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_limit_counts_characters(self, store, access, llm: AsyncMock, speech, channel):
        pipeline = AnswerPipeline(
            store=store,
            access=access,
            translator=QueryTranslator(llm),
            executor=QueryExecutor(store),
            composer=AnswerComposer(llm),
            speech=speech,
            max_voice_chars=5,
        )
        # five Cyrillic characters, ten bytes in UTF-8
        llm.complete.return_value = "пятьс"
        result = await pipeline.handle(text_message("hi"), channel)
        assert result.stage is Stage.PERSISTED


class TestDelivery:
    @pytest.mark.asyncio
    async def test_synthesis_failure_falls_back_to_text(
        self, pipeline: AnswerPipeline, channel, store: Store, speech
    ):
        speech.synthesize.side_effect = SpeechError("API error (status 401): unauthorized")

        result = await pipeline.handle(text_message("hi"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == [
            "📝 Короткий ответ.\n\n❌ Ошибка генерации голоса: API error (status 401): unauthorized"
        ]
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_synthesis_failure_after_query(
        self, pipeline: AnswerPipeline, channel, store: Store, llm: AsyncMock, speech
    ):
        llm.complete.side_effect = ["SELECT 1", "Один."]
        speech.synthesize.side_effect = SpeechError("quota exceeded")

        result = await pipeline.handle(text_message("база тест"), channel)

        assert result.answer == "Один."
        assert result.stage is Stage.FAILED
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_send_failure_not_recorded(self, pipeline: AnswerPipeline, channel, store: Store):
        channel.fail_voice = True

        result = await pipeline.handle(text_message("hi"), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == [VOICE_SEND_FAILED]
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_temp_file_removed_after_send(self, pipeline: AnswerPipeline, channel):
        await pipeline.handle(text_message("hi"), channel)
        [path] = channel.voice_paths
        assert path.suffix == ".mp3"
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_temp_file_removed_after_failed_send(self, pipeline: AnswerPipeline, channel):
        channel.fail_voice = True
        await pipeline.handle(text_message("hi"), channel)
        [path] = channel.voice_paths
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_history_failure_keeps_delivery(self, pipeline: AnswerPipeline, channel, store: Store):
        store.run_query("DROP TABLE messages")

        result = await pipeline.handle(text_message("hi"), channel)

        assert result.stage is Stage.DELIVERED
        assert not result.persisted
        assert len(channel.voices) == 1


class TestVoiceInput:
    @pytest.mark.asyncio
    async def test_transcribed_and_recorded(
        self, pipeline: AnswerPipeline, channel, store: Store, speech, llm: AsyncMock
    ):
        llm.complete.side_effect = ["SELECT COUNT(*) AS count FROM notes", "Мыслей пока нет."]
        speech.transcribe.return_value = "База сколько мыслей"
        result = await pipeline.handle(voice_message(), channel)

        speech.transcribe.assert_awaited_once_with(b"OggS-fake")
        assert channel.notices[0] == "🎧 Распознаю голос..."
        assert result.intent == StructuredQuery("сколько мыслей")
        [record] = store.get_interactions()
        assert record.input_kind is ChannelKind.VOICE
        assert record.input_text == "База сколько мыслей"
        assert record.output_text == "Мыслей пока нет."

    @pytest.mark.asyncio
    async def test_chat_echoes_transcript(self, pipeline: AnswerPipeline, channel):
        await pipeline.handle(voice_message(), channel)
        assert any('Вы сказали: "привет"' in notice for notice in channel.notices)

    @pytest.mark.asyncio
    async def test_transcription_failure(
        self, pipeline: AnswerPipeline, channel, store: Store, speech, llm: AsyncMock
    ):
        speech.transcribe.side_effect = SpeechError("API error (status 500): oops")

        result = await pipeline.handle(voice_message(), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == ["❌ Ошибка распознавания: API error (status 500): oops"]
        llm.complete.assert_not_called()
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_download_failure(self, pipeline: AnswerPipeline, channel, speech):
        channel.fail_download = True

        result = await pipeline.handle(voice_message(), channel)

        assert result.stage is Stage.FAILED
        assert channel.texts == ["❌ Ошибка получения голосового файла"]
        speech.transcribe.assert_not_called()


class TestSpeak:
    @pytest.mark.asyncio
    async def test_speaks_without_recording(
        self, pipeline: AnswerPipeline, channel, store: Store, speech
    ):
        assert await pipeline.speak("Привет всем", channel) is True
        speech.synthesize.assert_awaited_once_with("Привет всем")
        assert channel.voices == [(b"ID3-fake-mp3", "🔊 Привет всем")]
        assert store.get_interactions() == []

    @pytest.mark.asyncio
    async def test_synthesis_failure(self, pipeline: AnswerPipeline, channel, speech):
        speech.synthesize.side_effect = SpeechError("bad voice")
        assert await pipeline.speak("x", channel) is False
        assert channel.texts == ["❌ Ошибка генерации голоса: bad voice"]


class TestAdmit:
    @pytest.mark.asyncio
    async def test_fail_closed_store_error(self, store: Store, llm, speech, channel, clock):
        store.run_query("DROP TABLE user_limits")
        access = AccessController(store, owner_username=OWNER, fail_open=False, today=clock)
        pipeline = AnswerPipeline(
            store=store,
            access=access,
            translator=QueryTranslator(llm),
            executor=QueryExecutor(store),
            composer=AnswerComposer(llm),
            speech=speech,
        )
        assert await pipeline.admit(text_message("hi"), channel) is False
        assert channel.texts == [quota_message(2)]


class TestUnknownIntent:
    @pytest.mark.asyncio
    async def test_rejects_foreign_intent(self, pipeline: AnswerPipeline, channel):
        with pytest.raises(TypeError, match="unknown intent"):
            await pipeline._answer(object(), text_message("hi"), channel)
