"""Server-side chat-completion proxy.

Browsers never hold the provider key: they post the callable's
``{messages, model, maxTokens, ...}`` body here and receive
``{success, content, usage}`` back. Upstream 401/429 statuses are passed
through so callers can tell them apart.
"""

import secrets
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from product_hub.core.config import settings
from product_hub.core.exceptions import (
    APIClientError,
    APITimeoutError,
    AuthenticationError,
    ConfigurationError,
    EmptyResponseError,
    RateLimitError,
)
from product_hub.core.llm_client import OpenAIChatClient
from product_hub.schemas.assistant import ProxyChatRequest, ProxyChatResponse
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def verify_proxy_token(authorization: Annotated[Optional[str], Header()] = None) -> None:
    expected = settings.llm.chat_proxy_token
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid proxy token",
        )


async def get_provider_client(request: Request) -> OpenAIChatClient:
    client = getattr(request.app.state, "provider_client", None)
    if client is not None:
        return client
    try:
        client = OpenAIChatClient(
            api_key=settings.llm.openai_api_key,
            api_url=settings.llm.openai_api_url,
            timeout=settings.llm.timeout_seconds,
        )
    except ConfigurationError as e:
        LOGGER.error("Chat proxy misconfigured", extra={"category": "AI", "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Chat provider is not configured",
        )
    request.app.state.provider_client = client
    return client


@router.post(
    "/chat-completion",
    response_model=ProxyChatResponse,
    summary="Proxy a chat completion",
    operation_id="proxy_chat_completion",
    dependencies=[Depends(verify_proxy_token)],
)
async def chat_completion(
    request: ProxyChatRequest,
    client: Annotated[OpenAIChatClient, Depends(get_provider_client)],
) -> ProxyChatResponse:
    try:
        params = request.to_model_parameters()
        result = await client.complete(request.messages, params.to_request_options())
    except EmptyResponseError:
        return ProxyChatResponse(success=True, content="", usage={})
    except RateLimitError as e:
        headers = {"Retry-After": str(int(e.retry_after))} if e.retry_after is not None else None
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers=headers,
        )
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Provider authentication failed",
        )
    except APITimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Provider timeout",
        )
    except APIClientError as e:
        LOGGER.error(
            "Chat proxy upstream failure",
            extra={"category": "AI", "error": str(e), "model": request.model},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate chat response",
        )

    LOGGER.info(
        "Chat completion proxied",
        extra={"category": "AI", "model": result.model, "total_tokens": result.total_tokens},
    )
    return ProxyChatResponse(success=True, content=result.content, usage=result.usage)
