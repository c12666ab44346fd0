"""Chat completion client.

Wraps AsyncGroq behind a single ``complete`` call so the translator and the
answer composer can be tested with a plain mock.
"""

from typing import Any, Protocol

from groq import AsyncGroq, GroqError

from .config import DEFAULT_MODEL
from .errors import LLMError


class LLMClient(Protocol):
    """Anything that turns a system + user message pair into text."""

    async def complete(self, prompt: str, system: str | None = None) -> str: ...


class GroqLLMClient:
    """LLMClient implementation that wraps AsyncGroq.

    Example:
        from groq import AsyncGroq
        from dumka.llm_client import GroqLLMClient

        groq = AsyncGroq(api_key="...")
        llm = GroqLLMClient(groq, model="llama-3.1-70b-versatile")
        answer = await llm.complete("сколько сообщений", system="...")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
    ) -> None:
        """Initialize the Groq LLM client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
        """
        self._client = client
        self._model = model

    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Complete a prompt and return the text response.

        Args:
            prompt: The user prompt to complete.
            system: Optional system prompt to set context.

        Returns:
            The LLM's text response.

        Raises:
            LLMError: If the API call fails or returns no choices.
        """
        messages: list[dict[str, Any]] = []

        if system:
            messages.append({"role": "system", "content": system})

        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
            )
        except GroqError as e:
            raise LLMError(str(e)) from e

        if not response.choices:
            raise LLMError("model returned no completion")

        return response.choices[0].message.content or ""

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model
