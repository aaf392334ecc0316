"""
Multi-turn chat on top of MistralClient.

ChatSession keeps the conversation history, builds each request from it and
records the assistant's replies, for both one-shot and streamed completions.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import aclosing
from typing import TYPE_CHECKING

from .llm.models import MODELS, ChatCompletionRequest, Message
from .llm.streaming import ChatDelta
from .logging_utils import logger

if TYPE_CHECKING:
    from .client import MistralClient


class ChatSession:
    """
    Conversation history plus completion calls.

    ``system_prompt`` is prepended to every request and kept out of
    ``messages``. Replies are appended to the history only when non-empty.
    """

    def __init__(
        self,
        client: MistralClient,
        model: str = MODELS["small"],
        max_tokens: int | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ):
        if client is None:
            raise ValueError("A MistralClient is required.")
        self.client = client
        self.model = model or MODELS["small"]
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt
        self._messages: list[Message] = []

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def add_user(self, content: str) -> ChatSession:
        if not content or not content.strip():
            raise ValueError("User message content is required.")
        self._messages.append(Message.user(content))
        return self

    def add_assistant(self, content: str | None) -> ChatSession:
        self._messages.append(Message.assistant(content or ""))
        return self

    def add_system(self, content: str) -> ChatSession:
        if not content or not content.strip():
            raise ValueError("System message content is required.")
        self._messages.append(Message.system(content))
        return self

    def clear(self, keep_system_prompt: bool = False) -> None:
        """Forget the history, optionally re-adding the system prompt as a message."""
        self._messages.clear()
        if keep_system_prompt and self.system_prompt and self.system_prompt.strip():
            self.add_system(self.system_prompt)

    def build_request(self) -> ChatCompletionRequest:
        """
        Build a request from the system prompt and the history.

        Raises:
            ValueError: If the conversation has no messages.
        """
        messages: list[Message] = []
        if self.system_prompt and self.system_prompt.strip():
            messages.append(Message.system(self.system_prompt))
        messages.extend(self._messages)

        if not messages:
            raise ValueError(
                "No messages in the conversation. Add at least one user message first."
            )

        return ChatCompletionRequest(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    async def complete(self, add_to_history: bool = True) -> str:
        """
        Send the conversation and return the reply text.

        An unsuccessful response yields ``""`` and leaves the history as-is.
        """
        response = await self.client.chat_completion(self.build_request())
        if not response.is_success:
            logger.warning(
                "Chat session completion failed",
                status_code=response.status_code,
                error_message=response.message,
            )
            return ""

        if add_to_history and response.message:
            self.add_assistant(response.message)
        return response.message

    async def complete_stream(
        self, *, cancel_event: asyncio.Event | None = None
    ) -> AsyncGenerator[str]:
        """
        Stream the reply as text pieces.

        The full reply is added to the history once the stream has been
        consumed to the end.
        """
        request = self.build_request()
        parts: list[str] = []

        async with aclosing(
            self.client.chat_completion_stream(request, cancel_event=cancel_event)
        ) as events:
            async for event in events:
                if isinstance(event, ChatDelta) and event.text:
                    parts.append(event.text)
                    yield event.text

        if parts:
            self.add_assistant("".join(parts))
