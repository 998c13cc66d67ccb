import asyncio
from typing import Any, Dict, List, Optional, Protocol

import httpx
from httpx import HTTPStatusError, TimeoutException

from product_hub.core.config import LLMSettings, Settings
from product_hub.core.exceptions import (
    APIClientError,
    APITimeoutError,
    AuthenticationError,
    ConfigurationError,
    EmptyResponseError,
    RateLimitError,
)
from product_hub.schemas.assistant import CompletionResult, ProviderMessage
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class BaseLLMClient:
    """Base client for JSON-over-HTTP upstreams.

    Handles bearer auth, status-code mapping, timeouts and exponential
    backoff between attempts. Chat transports use a single attempt; feed
    clients use the backoff.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token; omitted from headers when empty
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.transport = transport
        self.logger = LOGGER

    async def call_api(
        self,
        endpoint: str = "",
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Call the API with retry logic.

        Returns:
            Parsed JSON response

        Raises:
            AuthenticationError: On HTTP 401, never retried
            RateLimitError: On HTTP 429, never retried; carries Retry-After
            APITimeoutError: If every attempt timed out
            APIClientError: Any other failure
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {"Content-Type": "application/json"}
        if self.api_key:
            default_headers["Authorization"] = f"Bearer {self.api_key}"
        if headers:
            default_headers.update(headers)

        async with httpx.AsyncClient(
            timeout=timeout or self.timeout, transport=self.transport
        ) as client:
            for attempt in range(self.max_retries):
                try:
                    if method.upper() == "GET":
                        response = await client.get(url, headers=default_headers, params=payload)
                    else:
                        response = await client.post(url, headers=default_headers, json=payload)

                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.HTTPError as e:
                    await self._handle_transport_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500],
                "category": "API",
            },
        )

        if status_code == 401:
            raise AuthenticationError(f"API Client Error 401: {error_body[:200]}", error) from error
        if status_code == 429:
            raise RateLimitError(
                f"API Client Error 429: rate limited",
                retry_after=parse_retry_after(error.response.headers.get("retry-after")),
                original_error=error,
            ) from error
        if status_code in (408, 504):
            if attempt < self.max_retries - 1:
                await self._wait_before_retry(attempt)
                return
            raise APITimeoutError(f"API timeout: upstream answered {status_code}", error) from error
        if 400 <= status_code < 500:
            raise APIClientError(f"API Client Error {status_code}: {error_body[:200]}", error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries", error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "category": "API"},
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API timeout after {self.max_retries} attempts", error) from error

    async def _handle_transport_error(self, error: httpx.HTTPError, attempt: int, url: str):
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error), "category": "API"},
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {error}", error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class ChatTransport(Protocol):
    """Anything that turns a message list into one assistant reply."""

    name: str

    async def complete(
        self,
        messages: List[ProviderMessage],
        options: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> CompletionResult:
        ...


class ChatProxyClient:
    """Calls the server-side chat-completion proxy.

    The provider key never leaves the proxy; this client only carries an
    optional proxy token. Request and response use the callable's shape:
    ``{messages, model, maxTokens, temperature, ...}`` in and
    ``{success, content, usage}`` out.
    """

    name = "proxy"

    def __init__(
        self,
        proxy_url: str,
        proxy_token: str = "",
        timeout: float = 45,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.proxy_url = proxy_url
        self.client = BaseLLMClient(
            api_key=proxy_token,
            base_url=proxy_url,
            timeout=timeout,
            max_retries=1,
            transport=transport,
        )
        LOGGER.info(f"Initialized chat proxy client for {proxy_url}")

    async def complete(
        self,
        messages: List[ProviderMessage],
        options: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> CompletionResult:
        payload: Dict[str, Any] = {
            "messages": [m.model_dump() for m in messages],
            "model": options.get("model"),
            "maxTokens": options.get("max_tokens"),
            "temperature": options.get("temperature"),
        }
        for key, alias in (
            ("top_p", "topP"),
            ("frequency_penalty", "frequencyPenalty"),
            ("presence_penalty", "presencePenalty"),
        ):
            if options.get(key) is not None:
                payload[alias] = options[key]

        response = await self.client.call_api(payload=payload, timeout=timeout)

        if not response.get("success"):
            raise APIClientError("Failed to generate chat response")

        content = (response.get("content") or "").strip()
        if not content:
            raise EmptyResponseError("No response from AI")

        usage = response.get("usage") or {}
        return CompletionResult(
            content=content,
            total_tokens=usage.get("total_tokens"),
            model=options.get("model"),
            usage=usage,
        )


class OpenAIChatClient:
    """Direct chat-completion client holding the provider key.

    Used server-side by the proxy endpoint. Also selectable as the pipeline
    transport outside production.
    """

    name = "direct"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("OpenAI API key not configured")
        self.api_url = api_url
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=api_url,
            timeout=timeout,
            max_retries=1,
            transport=transport,
        )

    async def complete(
        self,
        messages: List[ProviderMessage],
        options: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> CompletionResult:
        payload = {"messages": [m.model_dump() for m in messages], **options}

        response = await self.client.call_api(payload=payload, timeout=timeout)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(
                "Unexpected chat-completion response format",
                extra={"keys": list(response.keys()), "category": "AI"},
            )
            raise EmptyResponseError("Invalid response format from provider")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content.strip():
            raise EmptyResponseError("No response from AI")

        usage = response.get("usage") or {}
        return CompletionResult(
            content=content.strip(),
            total_tokens=usage.get("total_tokens"),
            model=response.get("model") or options.get("model"),
            usage=usage,
        )


def create_chat_transport(
    app_settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChatTransport:
    """Build the pipeline's chat transport from settings.

    Raises:
        ConfigurationError: For an unknown transport, or ``direct`` in production
    """
    llm: LLMSettings = app_settings.llm
    kind = llm.transport.lower()

    if kind == "proxy":
        return ChatProxyClient(
            proxy_url=llm.chat_proxy_url,
            proxy_token=llm.chat_proxy_token,
            timeout=llm.timeout_seconds,
            transport=transport,
        )
    if kind == "direct":
        if app_settings.is_production:
            raise ConfigurationError(
                "Direct chat transport exposes the provider key; use LLM_TRANSPORT=proxy in production"
            )
        return OpenAIChatClient(
            api_key=llm.openai_api_key,
            api_url=llm.openai_api_url,
            timeout=llm.timeout_seconds,
            transport=transport,
        )
    raise ConfigurationError(f"Unsupported chat transport: {llm.transport}")
