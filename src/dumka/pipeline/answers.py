"""Model calls that produce the final spoken answer."""

import logging

from ..errors import ChatError, CompressionError, LLMError
from ..llm_client import LLMClient
from ..query.prompts import CHAT_PROMPT, COMPRESS_PROMPT, compress_input

logger = logging.getLogger(__name__)


class AnswerComposer:
    """Turns query results or a chat message into a short answer."""

    def __init__(
        self,
        llm: LLMClient,
        compress_prompt: str = COMPRESS_PROMPT,
        chat_prompt: str = CHAT_PROMPT,
    ) -> None:
        self.llm = llm
        self.compress_prompt = compress_prompt
        self.chat_prompt = chat_prompt

    async def summarize(self, question: str, rendered_rows: str) -> str:
        """Compress rendered rows into a spoken-style answer to the question.

        Raises:
            CompressionError: If the model fails or answers with nothing.
        """
        logger.info("Formatting answer for the user")
        try:
            answer = await self.llm.complete(
                compress_input(question, rendered_rows),
                system=self.compress_prompt,
            )
        except LLMError as e:
            raise CompressionError(str(e)) from e

        answer = answer.strip()
        if not answer:
            raise CompressionError("model returned an empty answer")
        return answer

    async def chat(self, text: str) -> str:
        """Answer a free-form message.

        Raises:
            ChatError: If the model fails or answers with nothing.
        """
        try:
            answer = await self.llm.complete(text, system=self.chat_prompt)
        except LLMError as e:
            raise ChatError(str(e)) from e

        answer = answer.strip()
        if not answer:
            raise ChatError("model returned an empty answer")
        logger.info("Chat answer received (length: %d)", len(answer))
        return answer
