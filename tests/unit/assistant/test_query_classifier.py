"""Unit tests for keyword intent classification."""

import pytest

from product_hub.schemas.assistant import QueryType
from product_hub.services.assistant.classifier import QueryClassifier


class TestQueryClassifier:
    @pytest.fixture
    def classifier(self) -> QueryClassifier:
        return QueryClassifier()

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("Summarize our product portfolio", QueryType.PRODUCT_ANALYSIS),
            ("What deductible options exist?", QueryType.COVERAGE_ANALYSIS),
            ("Why did the premium go up?", QueryType.PRICING_ANALYSIS),
            ("Is this compliant in Texas?", QueryType.COMPLIANCE_CHECK),
            ("Which deadline is at risk?", QueryType.TASK_MANAGEMENT),
            ("Recommend where to grow next year", QueryType.STRATEGIC_INSIGHT),
            ("How many items do we have?", QueryType.DATA_QUERY),
            ("Walk me through subrogation", QueryType.CLAIMS_ANALYSIS),
            ("Explain this endorsement", QueryType.FORM_ANALYSIS),
        ],
    )
    def test_each_intent(self, classifier, query, expected):
        assert classifier.classify(query) == expected

    def test_first_match_wins(self, classifier):
        # Matches both the product and pricing patterns.
        assert classifier.classify("Compare product pricing") == QueryType.PRODUCT_ANALYSIS
        assert classifier.classify("coverage rates by state") == QueryType.COVERAGE_ANALYSIS

    def test_case_insensitive(self, classifier):
        assert classifier.classify("PRODUCT LINEUP") == QueryType.PRODUCT_ANALYSIS

    @pytest.mark.parametrize("query", ["", "hello there", "good morning"])
    def test_unmatched_is_general(self, classifier, query):
        assert classifier.classify(query) == QueryType.GENERAL

    def test_form_pattern_needs_whole_word(self, classifier):
        assert classifier.classify("platform uptime") == QueryType.GENERAL

    def test_most_common_coverages_question(self, classifier):
        result = classifier.classify("What coverages are most common?")
        assert result in (QueryType.COVERAGE_ANALYSIS, QueryType.DATA_QUERY)

    def test_custom_patterns(self):
        classifier = QueryClassifier(patterns=[(QueryType.CLAIMS_ANALYSIS, r"hail")])
        assert classifier.classify("Hail damage") == QueryType.CLAIMS_ANALYSIS
        assert classifier.classify("product") == QueryType.GENERAL

    def test_always_returns_enum_member(self, classifier):
        for query in ["task list", "??", "rate filing approval", "x" * 500]:
            assert isinstance(classifier.classify(query), QueryType)
