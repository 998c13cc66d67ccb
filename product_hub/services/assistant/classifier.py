import re
from typing import Optional, Pattern

from product_hub.schemas.assistant import QueryType
from product_hub.services.assistant.constants import QUERY_PATTERNS
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


class QueryClassifier:
    """Labels a free-text question with a coarse intent.

    Patterns are tried in order and the first match wins; anything that
    matches none of them is ``general``.
    """

    def __init__(self, patterns: Optional[list[tuple[QueryType, str]]] = None):
        self._patterns: list[tuple[QueryType, Pattern[str]]] = [
            (query_type, re.compile(pattern, re.IGNORECASE))
            for query_type, pattern in (patterns or QUERY_PATTERNS)
        ]

    def classify(self, query: str) -> QueryType:
        text = (query or "").lower()
        for query_type, pattern in self._patterns:
            if pattern.search(text):
                LOGGER.info(
                    f"Query classified as {query_type.value}",
                    extra={"category": "AI", "query": text[:100]},
                )
                return query_type
        return QueryType.GENERAL
