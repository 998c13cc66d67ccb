"""System prompt assembly.

The prompt is a pure function of (query, query type, context summary,
history): no clocks, ids or random values are read here, so identical
inputs produce byte-identical prompts.
"""

from typing import Any, Optional, Sequence

from product_hub.core.exceptions import ContextSerializationError
from product_hub.schemas.assistant import BuiltPrompt, ProviderMessage, QueryType
from product_hub.services.assistant.constants import (
    RESPONSE_FORMAT,
    SYSTEM_PERSONA,
    TYPE_INSTRUCTIONS,
)
from product_hub.services.assistant.token_budget import TokenCounterProtocol, dump_json
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


def classification_label(query_type: QueryType) -> str:
    # "coverage_analysis" -> "COVERAGE ANALYSIS"
    return query_type.value.replace("_", " ", 1).upper()


class PromptBuilder:
    def __init__(self, counter: TokenCounterProtocol, history_window: int = 5):
        self.counter = counter
        self.history_window = history_window

    def build_system_prompt(
        self, query: str, query_type: QueryType, summary: dict[str, Any]
    ) -> str:
        """Persona, context block, intent protocol and reply format, in that order.

        Raises:
            ContextSerializationError: If the summary cannot be serialized
        """
        try:
            context_json = dump_json(summary)
        except (TypeError, ValueError) as e:
            LOGGER.error(
                "Context summary serialization failed",
                extra={"category": "AI", "error": str(e)},
            )
            raise ContextSerializationError("Context summary could not be serialized", e) from e

        base_context = (
            f"{SYSTEM_PERSONA}\n\n"
            f"# CURRENT SYSTEM STATE\n{context_json}\n\n"
            f"# QUERY CLASSIFICATION\n"
            f"This query has been classified as: **{classification_label(query_type)}**\n\n"
        )
        return (
            base_context
            + TYPE_INSTRUCTIONS[query_type]
            + RESPONSE_FORMAT.format(query=query)
        )

    def recent_history(self, history: Optional[Sequence[Any]]) -> list[ProviderMessage]:
        """Last ``history_window`` turns, skipping error replies."""
        usable = [m for m in (history or []) if not getattr(m, "is_error", False)]
        recent = usable[-self.history_window:] if self.history_window > 0 else []
        return [ProviderMessage(role=m.role, content=m.content) for m in recent]

    def build(
        self,
        query: str,
        query_type: QueryType,
        summary: dict[str, Any],
        history: Optional[Sequence[Any]] = None,
    ) -> BuiltPrompt:
        system_prompt = self.build_system_prompt(query, query_type, summary)
        messages = [
            ProviderMessage(role="system", content=system_prompt),
            *self.recent_history(history),
            ProviderMessage(role="user", content=query),
        ]
        estimated = sum(self.counter.count_tokens(m.content) for m in messages)
        LOGGER.debug(
            "Prompt built",
            extra={
                "category": "AI",
                "query_type": query_type.value,
                "messages": len(messages),
                "estimated_tokens": estimated,
            },
        )
        return BuiltPrompt(
            query_type=query_type,
            system_prompt=system_prompt,
            messages=messages,
            estimated_tokens=estimated,
        )
