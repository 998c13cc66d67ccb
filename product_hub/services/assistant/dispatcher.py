import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from product_hub.core.config import ModelParameters
from product_hub.core.exceptions import (
    APITimeoutError,
    AuthenticationError,
    EmptyResponseError,
    RateLimitError,
)
from product_hub.core.llm_client import ChatTransport
from product_hub.schemas.assistant import (
    BuiltPrompt,
    ChatMessage,
    CompletionResult,
    MessageMetadata,
)
from product_hub.services.assistant.constants import (
    AUTH_ERROR_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    RATE_LIMIT_MESSAGE,
    TIMEOUT_MESSAGE,
)
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


def classify_failure(error: BaseException) -> tuple[str, str]:
    """Map a dispatch failure to (error kind, user-facing message).

    Typed errors from the transports are checked first; untyped errors are
    recognised by the status code or wording in their message.
    """
    text = str(error)
    if isinstance(error, RateLimitError) or "429" in text:
        return "rate_limited", RATE_LIMIT_MESSAGE
    if isinstance(error, AuthenticationError) or "401" in text:
        return "auth", AUTH_ERROR_MESSAGE
    if isinstance(error, (APITimeoutError, asyncio.TimeoutError)) or "timeout" in text.lower():
        return "timeout", TIMEOUT_MESSAGE
    if isinstance(error, EmptyResponseError):
        return "empty", GENERIC_ERROR_MESSAGE
    return "generic", GENERIC_ERROR_MESSAGE


@dataclass
class DispatchOutcome:
    """Either a completion or an error reply, never both."""

    completion: Optional[CompletionResult]
    error_message: Optional[ChatMessage]
    elapsed_ms: int


class ResponseDispatcher:
    """Sends a built prompt to the chat transport.

    Only the proxy transport is retried, and only on timeouts: a fixed
    number of extra attempts with a fixed delay. Every failure is turned
    into an assistant message so callers never see an exception.
    """

    def __init__(
        self,
        transport: ChatTransport,
        timeout_retries: int = 2,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.timeout_retries = timeout_retries if transport.name == "proxy" else 0
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def dispatch(self, prompt: BuiltPrompt, params: ModelParameters) -> CompletionResult:
        """Send the prompt; raises on failure."""
        options = params.to_request_options()
        attempts = self.timeout_retries + 1

        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(
                    self.transport.complete(
                        prompt.messages, options, timeout=params.timeout_seconds
                    ),
                    timeout=params.timeout_seconds,
                )
            except (asyncio.TimeoutError, APITimeoutError) as e:
                LOGGER.warning(
                    f"Chat completion timeout (Attempt {attempt + 1}/{attempts})",
                    extra={"category": "AI", "model": params.model},
                )
                if attempt == attempts - 1:
                    raise APITimeoutError(
                        f"Chat completion timeout after {attempts} attempts", e
                    ) from e
                await self._sleep(self.retry_delay)

        # unreachable: the loop either returns or raises
        raise APITimeoutError("Chat completion timeout")

    async def respond(
        self, prompt: BuiltPrompt, params: ModelParameters, query: str = ""
    ) -> DispatchOutcome:
        """Send the prompt and convert any failure into an assistant message."""
        start_time = time.monotonic()
        try:
            completion = await self.dispatch(prompt, params)
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            LOGGER.info(
                "Chat completion received",
                extra={
                    "category": "AI",
                    "model": completion.model or params.model,
                    "query": query[:100],
                    "response": completion.content[:100],
                    "tokens_used": completion.total_tokens,
                    "duration_ms": elapsed_ms,
                },
            )
            return DispatchOutcome(completion=completion, error_message=None, elapsed_ms=elapsed_ms)

        except Exception as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            error_kind, message = classify_failure(e)
            LOGGER.error(
                "AI request failed",
                exc_info=error_kind in ("generic", "empty"),
                extra={
                    "category": "AI",
                    "query": query[:100],
                    "duration_ms": elapsed_ms,
                    "model": params.model,
                    "error_type": type(e).__name__,
                    "error_kind": error_kind,
                    "error_message": str(e)[:200],
                },
            )
            reply = ChatMessage(
                role="assistant",
                content=message,
                metadata=MessageMetadata(
                    query_type=prompt.query_type,
                    processing_time_ms=elapsed_ms,
                    model=params.model,
                    error_kind=error_kind,
                ),
            )
            return DispatchOutcome(completion=None, error_message=reply, elapsed_ms=elapsed_ms)
