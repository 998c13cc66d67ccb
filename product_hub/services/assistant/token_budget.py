"""Token accounting for prompt context.

Context size is measured with the provider's tokenizer rather than word or
character heuristics, so the summary can be held to a real input budget.
"""

import json
from typing import Any, Optional, Protocol

import tiktoken

from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TokenCounterProtocol(Protocol):
    def count_tokens(self, text: str) -> int:
        ...


class TokenCounter:
    """tiktoken-backed counter.

    The encoding is resolved lazily on first use; models tiktoken does not
    know fall back to ``cl100k_base``.
    """

    FALLBACK_ENCODING = "cl100k_base"

    def __init__(self, model: str = "gpt-4o-mini"):
        self.model = model
        self._encoder: Optional[tiktoken.Encoding] = None

    @property
    def encoder(self) -> tiktoken.Encoding:
        if self._encoder is None:
            try:
                self._encoder = tiktoken.encoding_for_model(self.model)
                LOGGER.debug(f"Initialized tiktoken encoder for model: {self.model}")
            except KeyError:
                self._encoder = tiktoken.get_encoding(self.FALLBACK_ENCODING)
                LOGGER.debug(f"Model {self.model} not found, using {self.FALLBACK_ENCODING} encoding")
        return self._encoder

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoder.encode(text))


def dump_json(value: Any, indent: Optional[int] = 2) -> str:
    """Serialize context the way it is embedded in the prompt."""
    return json.dumps(value, indent=indent, ensure_ascii=False, default=str)


class TokenBudget:
    """Running token total against a hard limit.

    Attributes:
        limit: Maximum tokens that may be spent
        used: Tokens spent so far
    """

    def __init__(self, counter: TokenCounterProtocol, limit: int):
        if limit <= 0:
            raise ValueError("Token budget must be positive")
        self.counter = counter
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    def cost(self, value: Any) -> int:
        """Token cost of ``value`` once serialized into the context block."""
        text = value if isinstance(value, str) else dump_json(value)
        return self.counter.count_tokens(text)

    def try_spend(self, value: Any, ceiling: Optional[int] = None) -> bool:
        """Charge ``value`` if it fits; returns whether it was charged.

        ``ceiling`` caps the running total below ``limit`` for this charge.
        """
        tokens = self.cost(value)
        cap = self.limit if ceiling is None else min(ceiling, self.limit)
        if self.used + tokens > cap:
            return False
        self.used += tokens
        return True
