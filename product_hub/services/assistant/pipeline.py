"""
Assistant pipeline orchestration.

One submission runs strictly in sequence:

    idle -> building_context -> awaiting_response -> rendering -> idle

A dispatcher failure moves awaiting_response -> error -> idle, with the
failure surfaced as an assistant message. Only one submission may be
outstanding at a time.
"""

import time
from datetime import date
from typing import Any, Awaitable, Callable, Optional, Sequence

from product_hub.core.config import LLMSettings
from product_hub.core.exceptions import PipelineBusyError, ValidationError
from product_hub.schemas.assistant import (
    ChatMessage,
    ChatTurn,
    MessageMetadata,
    PipelineState,
    QueryType,
)
from product_hub.schemas.catalog import CatalogSnapshot
from product_hub.services.assistant.aggregator import ContextAggregator
from product_hub.services.assistant.classifier import QueryClassifier
from product_hub.services.assistant.constants import CLASSIFICATION_CONFIDENCE
from product_hub.services.assistant.dispatcher import ResponseDispatcher
from product_hub.services.assistant.formatter import ResponseFormatter
from product_hub.services.assistant.prompt_builder import PromptBuilder
from product_hub.services.assistant.summarizer import ContextSummarizer
from product_hub.services.cache import ValueMemo
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

SnapshotProvider = Callable[[], Awaitable[CatalogSnapshot]]


class AssistantPipeline:
    """Runs user questions through the context-aware chat pipeline."""

    def __init__(
        self,
        snapshot_provider: SnapshotProvider,
        dispatcher: ResponseDispatcher,
        summarizer: ContextSummarizer,
        prompt_builder: PromptBuilder,
        llm_settings: LLMSettings,
        classifier: Optional[QueryClassifier] = None,
        formatter: Optional[ResponseFormatter] = None,
        aggregator: Optional[ContextAggregator] = None,
        today: Callable[[], date] = date.today,
    ):
        self.snapshot_provider = snapshot_provider
        self.dispatcher = dispatcher
        self.summarizer = summarizer
        self.prompt_builder = prompt_builder
        self.llm_settings = llm_settings
        self.classifier = classifier or QueryClassifier()
        self.formatter = formatter or ResponseFormatter()
        self.aggregator = aggregator or ContextAggregator()
        self._today = today

        self._summary = ValueMemo(self._summarize)
        self._state = PipelineState.IDLE
        self._busy = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    def _summarize(self, snapshot: CatalogSnapshot, as_of: date) -> dict[str, Any]:
        return self.summarizer.summarize(self.aggregator.aggregate(snapshot), as_of)

    async def build_summary(self) -> dict[str, Any]:
        """Context summary for the current snapshot, recomputed only when it changes."""
        snapshot = await self.snapshot_provider()
        return self._summary(snapshot, self._today())

    def classify(self, query: str) -> QueryType:
        return self.classifier.classify(query)

    def _transition(self, state: PipelineState, trail: list[PipelineState]) -> None:
        LOGGER.debug(
            f"Pipeline {self._state.value} -> {state.value}",
            extra={"category": "AI"},
        )
        self._state = state
        trail.append(state)

    async def submit(
        self,
        query: str,
        history: Optional[Sequence[Any]] = None,
        preset: str = "HOME_CHAT",
    ) -> ChatTurn:
        """Answer one question.

        Dispatcher failures come back as an assistant error message. Failures
        while building the context propagate to the caller.

        Raises:
            ValidationError: If the query is blank
            PipelineBusyError: If another submission is still outstanding
            ContextSerializationError: If the context cannot be serialized
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query must not be empty")
        if self._busy:
            raise PipelineBusyError("A request is already in progress")

        self._busy = True
        trail: list[PipelineState] = []
        start_time = time.monotonic()
        params = self.llm_settings.preset(preset)

        try:
            self._transition(PipelineState.BUILDING_CONTEXT, trail)
            query_type = self.classify(query)
            user_message = ChatMessage(
                role="user", content=query, metadata=MessageMetadata(query_type=query_type)
            )
            summary = await self.build_summary()
            prompt = self.prompt_builder.build(query, query_type, summary, history)

            LOGGER.info(
                "Chat query submitted",
                extra={
                    "category": "AI",
                    "query": query[:100],
                    "query_type": query_type.value,
                    "model": params.model,
                    "estimated_tokens": prompt.estimated_tokens,
                },
            )

            self._transition(PipelineState.AWAITING_RESPONSE, trail)
            outcome = await self.dispatcher.respond(prompt, params, query=query)

            if outcome.completion is None:
                self._transition(PipelineState.ERROR, trail)
                return ChatTurn(
                    user_message=user_message,
                    assistant_message=outcome.error_message,
                    states=trail,
                )

            self._transition(PipelineState.RENDERING, trail)
            formatted = self.formatter.format(outcome.completion.content)
            assistant_message = ChatMessage(
                role="assistant",
                content=formatted.markdown,
                metadata=MessageMetadata(
                    query_type=query_type,
                    tokens_used=outcome.completion.total_tokens,
                    processing_time_ms=int((time.monotonic() - start_time) * 1000),
                    confidence=CLASSIFICATION_CONFIDENCE,
                    model=outcome.completion.model or params.model,
                ),
            )
            return ChatTurn(
                user_message=user_message,
                assistant_message=assistant_message,
                formatted=formatted,
                states=trail,
            )
        finally:
            self._transition(PipelineState.IDLE, trail)
            self._busy = False
