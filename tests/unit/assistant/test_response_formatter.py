"""Unit tests for markdown rendering and truncation."""

import pytest

from product_hub.services.assistant.formatter import (
    MIN_TRUNCATION_LIMIT,
    TRUNCATION_NOTICE,
    ResponseFormatter,
    describe_structure,
    truncate_markdown,
)


@pytest.fixture
def formatter() -> ResponseFormatter:
    return ResponseFormatter(max_chars=8000)


FIXTURE = """# Portfolio Summary

Two products carry **Building** coverage, see `BP 00 03`.

- Businessowners Policy
- Homeowners Special Form

| Product | States |
|---------|--------|
| BOP     | 3      |
"""


class TestResponseFormatter:
    def test_semantic_html(self, formatter):
        result = formatter.format(FIXTURE)

        assert "<h1>Portfolio Summary</h1>" in result.html
        assert "<strong>Building</strong>" in result.html
        assert "<code>BP 00 03</code>" in result.html
        assert "<li>Businessowners Policy</li>" in result.html
        assert "<table>" in result.html
        assert result.truncated is False

    def test_structure(self, formatter):
        result = formatter.format(FIXTURE)

        assert result.structure == {"headings": 1, "list_items": 2, "tables": 1, "code_blocks": 0}

    def test_raw_html_is_not_passed_through(self, formatter):
        result = formatter.format("<script>alert('x')</script>\n\nHello <b onclick=\"steal()\">there</b>")

        assert "<script>" not in result.html
        assert "<b " not in result.html

    def test_unsafe_links_lose_their_target(self, formatter):
        result = formatter.format("[click](javascript:alert(1)) and [docs](https://example.com)")

        assert "javascript:" not in result.html
        assert 'href="https://example.com"' in result.html

    def test_fenced_code(self, formatter):
        result = formatter.format("```python\nprint('hi')\n```")

        assert "<pre><code" in result.html
        assert result.structure["code_blocks"] == 1

    def test_long_response_truncated_with_closed_fence(self, formatter):
        text = "Intro paragraph.\n\n```python\n" + "value = compute(1)\n" * 1000

        result = formatter.format(text)

        assert result.truncated is True
        assert len(result.markdown) <= 8000
        assert result.markdown.endswith(TRUNCATION_NOTICE)
        fences = [line for line in result.markdown.splitlines() if line.strip().startswith("```")]
        assert len(fences) % 2 == 0
        assert "</code></pre>" in result.html
        assert "Response truncated" in result.html


class TestTruncateMarkdown:
    def test_short_text_untouched(self):
        assert truncate_markdown("short", 100) == ("short", False)

    def test_prefers_paragraph_boundary(self):
        text = ("First paragraph. " * 20) + "\n\n" + ("Second paragraph. " * 20)
        result, truncated = truncate_markdown(text, 400)

        assert truncated is True
        assert len(result) <= 400
        assert "Second" not in result

    def test_limit_below_minimum_rejected(self):
        with pytest.raises(ValueError):
            truncate_markdown("x" * 500, MIN_TRUNCATION_LIMIT - 1)

    @pytest.mark.parametrize(
        "opening, closing",
        [
            ("```python", "```"),
            ("~~~python", "~~~"),
            ("````", "````"),
            ("~~~~~ sql", "~~~~~"),
        ],
    )
    def test_open_fence_closed_with_same_fence(self, opening, closing):
        text = f"Intro paragraph.\n\n{opening}\n" + "value = compute(1)\n" * 1000

        result, truncated = truncate_markdown(text, 8000)

        assert truncated is True
        assert len(result) <= 8000
        body = result[: -len(TRUNCATION_NOTICE)]
        assert body.splitlines()[-1] == closing

    @pytest.mark.parametrize("opening", ["~~~python", "````"])
    def test_truncated_fence_renders_as_code_block(self, formatter, opening):
        text = f"Intro paragraph.\n\n{opening}\n" + "value = compute(1)\n" * 1000

        result = formatter.format(text)

        assert "<pre><code" in result.html
        assert "</code></pre>" in result.html
        assert "Response truncated" in result.html
        assert result.structure["code_blocks"] == 1

    def test_shorter_fence_inside_block_is_code(self):
        text = "````\n```\nnested\n```\n" + "line of code\n" * 500

        result, _ = truncate_markdown(text, 1000)

        assert result[: -len(TRUNCATION_NOTICE)].splitlines()[-1] == "````"


def test_describe_structure_ignores_code():
    text = "## Title\n```\n# not a heading\n- not an item\n```\n1. first"
    assert describe_structure(text) == {"headings": 1, "list_items": 1, "tables": 0, "code_blocks": 1}


def test_tilde_fence_structure():
    text = "~~~\n# not a heading\n```\n- not an item\n~~~\n- item"
    assert describe_structure(text) == {"headings": 0, "list_items": 1, "tables": 0, "code_blocks": 1}


def test_formatter_rejects_tiny_ceiling():
    with pytest.raises(ValueError):
        ResponseFormatter(max_chars=MIN_TRUNCATION_LIMIT - 1)
