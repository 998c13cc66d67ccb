"""Unit tests for token accounting."""

from unittest.mock import MagicMock, patch

import pytest
import tiktoken

from product_hub.services.assistant.token_budget import TokenBudget, TokenCounter, dump_json


class TestTokenCounter:
    def test_known_model_uses_its_encoding(self):
        encoder = MagicMock()
        encoder.encode.return_value = [1, 2, 3]
        with patch.object(tiktoken, "encoding_for_model", return_value=encoder) as for_model, \
                patch.object(tiktoken, "get_encoding") as get_encoding:
            counter = TokenCounter(model="gpt-4o-mini")

            assert counter.count_tokens("three token text") == 3

        for_model.assert_called_once_with("gpt-4o-mini")
        get_encoding.assert_not_called()

    def test_unknown_model_falls_back_to_cl100k(self):
        encoder = MagicMock()
        encoder.encode.return_value = [7, 8]
        with patch.object(tiktoken, "encoding_for_model", side_effect=KeyError("no-such-model")), \
                patch.object(tiktoken, "get_encoding", return_value=encoder) as get_encoding:
            counter = TokenCounter(model="no-such-model")

            assert counter.count_tokens("hello") == 2
            assert counter.count_tokens("again") == 2

        get_encoding.assert_called_once_with(TokenCounter.FALLBACK_ENCODING)
        assert counter.encoder is encoder

    def test_empty_text_is_free(self):
        with patch.object(tiktoken, "encoding_for_model") as for_model:
            assert TokenCounter().count_tokens("") == 0
        for_model.assert_not_called()


class TestTokenBudget:
    def test_try_spend(self, token_counter):
        budget = TokenBudget(token_counter, limit=10)

        assert budget.try_spend("x" * 24) is True
        assert budget.used == 6
        assert budget.try_spend("x" * 24) is False
        assert budget.used == 6
        assert budget.remaining == 4

    def test_ceiling_caps_below_limit(self, token_counter):
        budget = TokenBudget(token_counter, limit=100)

        assert budget.try_spend("x" * 40, ceiling=12) is True
        assert budget.try_spend("x" * 40, ceiling=12) is False
        assert budget.try_spend("x" * 40, ceiling=500) is True
        assert budget.used == 20

    def test_cost_of_structures(self, token_counter):
        budget = TokenBudget(token_counter, limit=100)
        value = {"name": "Building"}
        assert budget.cost(value) == token_counter.count_tokens(dump_json(value))

    def test_rejects_non_positive_limit(self, token_counter):
        with pytest.raises(ValueError):
            TokenBudget(token_counter, limit=0)


def test_dump_json_keeps_unicode_and_dates():
    from datetime import date

    text = dump_json({"name": "Über", "asOf": date(2024, 6, 1)}, indent=None)
    assert text == '{"name": "Über", "asOf": "2024-06-01"}'
