from __future__ import annotations

import asyncio
import contextlib
import random
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from workbench.infra.errors import LLMError, TurnAborted
from workbench.session.models import ToolCall, UsageInfo

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class ModelResponse:
    """One complete model reply: text, proposed tool calls, token usage."""

    content: str | None
    tool_calls: tuple[ToolCall, ...] = ()
    usage: UsageInfo | None = None


class ModelClient(ABC):
    """Abstract base class for LLM model clients."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict] | None = None,
    ) -> ModelResponse:
        """Non-streaming call. The reply may contain content, tool_calls or both."""
        ...


async def chat_until_cancelled(
    client: ModelClient,
    messages: list[dict[str, Any]],
    cancel: asyncio.Event,
    *,
    tools: list[dict] | None = None,
) -> ModelResponse:
    """Race one chat call against the cancel event. Raises TurnAborted if cancel wins."""
    call = asyncio.create_task(client.chat(messages, tools=tools))
    cancelled = asyncio.create_task(cancel.wait())
    try:
        await asyncio.wait({call, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (call, cancelled):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    if not call.done() or call.cancelled() or cancel.is_set():
        raise TurnAborted()
    return call.result()


def _first_choice(response, *, context: str = ""):
    """Extract first choice from response, raising LLMError if empty."""
    if not response.choices:
        raise LLMError(f"Empty choices from provider ({context})")
    return response.choices[0]


def _usage(response) -> UsageInfo | None:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return UsageInfo(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


class OpenAICompatModelClient(ModelClient):
    """Model client using the OpenAI SDK.

    Works with OpenAI and any OpenAI-compatible endpoint (set base_url).
    Includes exponential backoff retry for transient errors.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        *,
        temperature: float | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        self._temperature = temperature
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def model(self) -> str:
        return self._model

    def _backoff(self, attempt: int) -> float:
        return self._base_delay * (2**attempt) + random.uniform(0, 0.5)

    async def _retry_call(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        *,
        context: str = "",
    ) -> T:
        """Await coro_factory(), retrying transient provider failures.

        Connection errors, timeouts, rate limits and 5xx responses are retried
        up to max_retries times. Other API errors fail immediately. Every
        failure surfaces as LLMError.
        """
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                return await coro_factory()
            except APIStatusError as e:
                if e.status_code < 500 and not isinstance(e, RateLimitError):
                    raise LLMError(f"LLM API error: {e.status_code} {e.message}") from e
                error: Exception = e
            except (APIConnectionError, APITimeoutError) as e:
                error = e

            if attempt + 1 == attempts:
                raise LLMError(f"LLM call failed after {attempts} attempts: {error}") from error
            delay = self._backoff(attempt)
            logger.warning(
                "model_call_retry",
                attempt=attempt + 1,
                of=attempts,
                delay=round(delay, 2),
                error=str(error),
                context=context,
            )
            await asyncio.sleep(delay)
        raise LLMError("Retry loop exhausted")  # pragma: no cover

    async def chat(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict] | None = None,
    ) -> ModelResponse:
        logger.debug(
            "chat_request",
            model=self._model,
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )
        response = await self._retry_call(
            lambda: self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                tools=tools if tools else NOT_GIVEN,
                **(
                    {"temperature": self._temperature}
                    if self._temperature is not None
                    else {}
                ),
            ),
            context="chat",
        )
        message = _first_choice(response, context="chat").message
        tool_calls = tuple(
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "",
            )
            for tc in (message.tool_calls or [])
        )
        logger.debug(
            "chat_response",
            has_content=bool(message.content),
            tool_calls=len(tool_calls),
        )
        return ModelResponse(
            content=message.content,
            tool_calls=tool_calls,
            usage=_usage(response),
        )
