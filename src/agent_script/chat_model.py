# chat_model.py
# Chat model adapters. The engine only depends on ChatModel.chat_completion;
# OpenAIChatModel talks to any OpenAI-compatible endpoint (OpenRouter by
# default).

import asyncio
import logging

from openai import AsyncOpenAI

from agent_script.config import ModelSettings
from agent_script.errors import ChatCompletionError
from agent_script.models import ChatMessage, ChatResponse, TokenUsage
from agent_script.utils import to_openai_messages

logger = logging.getLogger(__name__)


class ChatModel:
    """Interface consumed by the agent and the planner."""

    model_id: str = ""

    async def chat_completion(self, messages: list[ChatMessage], stop: list[str] | None = None) -> ChatResponse:
        raise NotImplementedError


class OpenAIChatModel(ChatModel):
    """
    chat.completions client with exponential backoff on transient failures.

    Example:
        model = OpenAIChatModel(ModelSettings(model="anthropic/claude-3.5-haiku"))
        response = await model.chat_completion([ChatMessage(role="user", content="hi")])
    """

    def __init__(self, settings: ModelSettings | None = None, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings or ModelSettings.from_env()
        self.model_id = self.settings.model
        self._client = client or AsyncOpenAI(
            base_url=self.settings.base_url,
            api_key=self.settings.api_key,
        )

    async def _create(self, messages: list[ChatMessage], stop: list[str] | None):
        request: dict = {
            "model": self.settings.model,
            "messages": to_openai_messages(messages),
            "temperature": self.settings.temperature,
        }
        if stop:
            request["stop"] = stop
        return await self._client.chat.completions.create(**request)

    async def chat_completion(self, messages: list[ChatMessage], stop: list[str] | None = None) -> ChatResponse:
        last_error: Exception | None = None

        for attempt in range(1, self.settings.max_attempts + 1):
            try:
                response = await self._create(messages, stop)
                break
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "chat completion attempt %d/%d failed: %s: %s",
                    attempt,
                    self.settings.max_attempts,
                    type(exc).__name__,
                    exc,
                )
                if attempt < self.settings.max_attempts:
                    await asyncio.sleep(self.settings.backoff_seconds * (2 ** (attempt - 1)))
        else:
            raise ChatCompletionError(
                f"Chat completion failed after {self.settings.max_attempts} attempts", last_error
            ) from last_error

        choice = response.choices[0] if response.choices else None
        if choice is None or choice.message is None:
            raise ChatCompletionError("No message returned from chat completion")

        usage = response.usage
        return ChatResponse(
            message=ChatMessage(role="assistant", content=choice.message.content or ""),
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
        )
