"""Unit tests for the HTTP chat transports."""

import json
from types import SimpleNamespace

import httpx
import pytest

from product_hub.core.config import LLMSettings
from product_hub.core.exceptions import (
    APIClientError,
    APITimeoutError,
    AuthenticationError,
    ConfigurationError,
    EmptyResponseError,
    RateLimitError,
)
from product_hub.core.llm_client import (
    BaseLLMClient,
    ChatProxyClient,
    OpenAIChatClient,
    create_chat_transport,
    parse_retry_after,
)
from product_hub.schemas.assistant import ProviderMessage

MESSAGES = [
    ProviderMessage(role="system", content="You are helpful."),
    ProviderMessage(role="user", content="List products"),
]
OPTIONS = {"model": "gpt-4o-mini", "max_tokens": 400, "temperature": 0.3, "top_p": 0.9}


def _proxy(handler, token: str = "") -> ChatProxyClient:
    return ChatProxyClient(
        "https://app.test/api/v1/ai/chat-completion",
        proxy_token=token,
        transport=httpx.MockTransport(handler),
    )


class TestChatProxyClient:
    @pytest.mark.asyncio
    async def test_request_shape_and_result(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(
                200,
                json={"success": True, "content": " Two products. ", "usage": {"total_tokens": 77}},
            )

        result = await _proxy(handler, token="proxy-secret").complete(MESSAGES, OPTIONS)

        assert result.content == "Two products."
        assert result.total_tokens == 77
        assert captured["auth"] == "Bearer proxy-secret"
        assert captured["body"]["maxTokens"] == 400
        assert captured["body"]["topP"] == 0.9
        assert "frequencyPenalty" not in captured["body"]
        assert captured["body"]["messages"][1] == {"role": "user", "content": "List products"}

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert "authorization" not in request.headers
            return httpx.Response(200, json={"success": True, "content": "ok"})

        await _proxy(handler).complete(MESSAGES, OPTIONS)

    @pytest.mark.asyncio
    async def test_unsuccessful_response(self):
        client = _proxy(lambda request: httpx.Response(200, json={"success": False}))
        with pytest.raises(APIClientError, match="Failed to generate chat response"):
            await client.complete(MESSAGES, OPTIONS)

    @pytest.mark.asyncio
    async def test_empty_content(self):
        client = _proxy(lambda request: httpx.Response(200, json={"success": True, "content": "  "}))
        with pytest.raises(EmptyResponseError):
            await client.complete(MESSAGES, OPTIONS)

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        client = _proxy(lambda request: httpx.Response(429, headers={"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc_info:
            await client.complete(MESSAGES, OPTIONS)
        assert "429" in str(exc_info.value)
        assert exc_info.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        client = _proxy(lambda request: httpx.Response(401, text="bad token"))
        with pytest.raises(AuthenticationError, match="401"):
            await client.complete(MESSAGES, OPTIONS)

    @pytest.mark.asyncio
    async def test_gateway_timeout(self):
        client = _proxy(lambda request: httpx.Response(504, text="upstream timeout"))
        with pytest.raises(APITimeoutError):
            await client.complete(MESSAGES, OPTIONS)

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(APITimeoutError):
            await _proxy(handler).complete(MESSAGES, OPTIONS)


class TestOpenAIChatClient:
    @pytest.mark.asyncio
    async def test_parses_choices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["max_tokens"] == 400
            assert request.headers["authorization"] == "Bearer sk-test"
            return httpx.Response(
                200,
                json={
                    "model": "gpt-4o-mini-2024-07-18",
                    "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
                    "usage": {"total_tokens": 12},
                },
            )

        client = OpenAIChatClient("sk-test", transport=httpx.MockTransport(handler))
        result = await client.complete(MESSAGES, OPTIONS)

        assert result.content == "Hello"
        assert result.total_tokens == 12
        assert result.model == "gpt-4o-mini-2024-07-18"

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client = OpenAIChatClient(
            "sk-test", transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
        )
        with pytest.raises(EmptyResponseError):
            await client.complete(MESSAGES, OPTIONS)

    def test_requires_key(self):
        with pytest.raises(ConfigurationError):
            OpenAIChatClient("")


class TestBaseLLMClient:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        responses = [httpx.Response(503), httpx.Response(200, json={"ok": True})]
        client = BaseLLMClient(
            api_key="",
            base_url="https://svc.test",
            max_retries=2,
            retry_delay=0,
            transport=httpx.MockTransport(lambda request: responses.pop(0)),
        )

        assert await client.call_api(method="GET") == {"ok": True}

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad request")

        client = BaseLLMClient("", "https://svc.test", max_retries=3, retry_delay=0, transport=httpx.MockTransport(handler))
        with pytest.raises(APIClientError, match="400"):
            await client.call_api(payload={})
        assert len(calls) == 1


@pytest.mark.parametrize("value, expected", [("120", 120.0), ("", None), (None, None), ("soon", None)])
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected


class TestCreateChatTransport:
    def test_proxy_by_default(self):
        transport = create_chat_transport(SimpleNamespace(llm=LLMSettings(LLM_TRANSPORT="proxy"), is_production=True))
        assert transport.name == "proxy"

    def test_direct_refused_in_production(self):
        llm = LLMSettings(LLM_TRANSPORT="direct", OPENAI_API_KEY="sk-test")
        with pytest.raises(ConfigurationError):
            create_chat_transport(SimpleNamespace(llm=llm, is_production=True))

    def test_direct_allowed_in_development(self):
        llm = LLMSettings(LLM_TRANSPORT="direct", OPENAI_API_KEY="sk-test")
        transport = create_chat_transport(SimpleNamespace(llm=llm, is_production=False))
        assert transport.name == "direct"

    def test_unknown_transport(self):
        with pytest.raises(ConfigurationError):
            create_chat_transport(SimpleNamespace(llm=LLMSettings(LLM_TRANSPORT="carrier-pigeon"), is_production=False))
