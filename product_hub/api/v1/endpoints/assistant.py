from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from product_hub.core.exceptions import (
    ContextSerializationError,
    DatabaseError,
    PipelineBusyError,
    ValidationError,
)
from product_hub.schemas.assistant import (
    ChatRequest,
    ChatResponse,
    ClassifyRequest,
    ClassifyResponse,
)
from product_hub.services.assistant.pipeline import AssistantPipeline
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_assistant_pipeline(request: Request) -> AssistantPipeline:
    pipeline = getattr(request.app.state, "assistant_pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant is not available",
        )
    return pipeline


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask the product assistant",
    operation_id="submit_assistant_chat",
)
async def submit_chat(
    request: ChatRequest,
    pipeline: Annotated[AssistantPipeline, Depends(get_assistant_pipeline)],
) -> ChatResponse:
    """
    Answer one question against the current catalog.

    Provider failures come back as an assistant message with
    ``metadata.error_kind`` set, not as an HTTP error.
    """
    try:
        turn = await pipeline.submit(request.query, request.history, preset=request.preset)
    except PipelineBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DatabaseError as e:
        LOGGER.error(
            "Catalog unavailable for chat",
            extra={"category": "DATA", "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog data is unavailable",
        )
    except ContextSerializationError as e:
        LOGGER.error(
            "Context serialization failed",
            extra={"category": "AI", "query": request.query[:100]},
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Context could not be built: {str(e)}",
        )

    return ChatResponse(
        messages=[turn.user_message, turn.assistant_message],
        html=turn.formatted.html if turn.formatted else None,
        metadata=turn.assistant_message.metadata,
    )


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    summary="Classify a question",
    operation_id="classify_assistant_query",
)
async def classify_query(
    request: ClassifyRequest,
    pipeline: Annotated[AssistantPipeline, Depends(get_assistant_pipeline)],
) -> ClassifyResponse:
    return ClassifyResponse(query_type=pipeline.classify(request.query))
