"""Natural-language question to SQL."""

import logging
import re
import time

from ..errors import LLMError, TranslationError
from ..llm_client import LLMClient
from ..logging import get_logger
from .prompts import TRANSLATE_PROMPT

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:sql)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence wrapped around model output."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


class QueryTranslator:
    """Turns a question into a single SQLite query with one model call.

    The output is only a candidate: nothing here checks it is read-only.
    That is the executor's job.
    """

    def __init__(self, llm: LLMClient, system_prompt: str = TRANSLATE_PROMPT) -> None:
        self.llm = llm
        self.system_prompt = system_prompt

    async def translate(self, question: str) -> str:
        """Translate a question into a query string.

        Raises:
            TranslationError: If the model call fails or returns nothing.
        """
        logger.info("Generating SQL for: %s", question)
        started = time.monotonic()

        try:
            raw = await self.llm.complete(question, system=self.system_prompt)
        except LLMError as e:
            raise TranslationError(str(e)) from e

        sql = strip_code_fence(raw)
        if not sql:
            raise TranslationError("model returned an empty query")

        logger.info("Generated SQL: %s", sql)
        get_logger().log_query(
            question,
            sql,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return sql
