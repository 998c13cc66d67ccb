"""
Response formatting.

Turns the model's markdown into sanitized HTML in a single pass:
- truncate to the character ceiling on a line boundary, closing any open
  code fence so the remainder still renders
- render with Python-Markdown (tables and fenced code)
- drop raw HTML from the input and links with unsafe schemes
- report the structure found (headings, list items, tables, code blocks)
"""

import re
from typing import Optional
from urllib.parse import urlparse
from xml.etree.ElementTree import Element

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from product_hub.schemas.assistant import FormattedResponse
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

TRUNCATION_NOTICE = "\n\n*[Response truncated]*"
# Smallest ceiling that still leaves room for text, a closing fence and the notice.
MIN_TRUNCATION_LIMIT = 100
FENCE_PATTERN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
HEADING_PATTERN = re.compile(r"^#{1,6}\s+\S")
LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\S")
TABLE_DIVIDER_PATTERN = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")

SAFE_SCHEMES = {"", "http", "https", "mailto"}


class _UnsafeLinkStripper(Treeprocessor):
    """Removes href/src attributes whose scheme is not allowed."""

    def run(self, root: Element) -> None:
        for element in root.iter():
            for attr in ("href", "src"):
                value = element.get(attr)
                if value is not None and urlparse(value.strip()).scheme.lower() not in SAFE_SCHEMES:
                    del element.attrib[attr]


class SanitizeExtension(Extension):
    """Disables raw HTML passthrough and strips unsafe link targets."""

    def extendMarkdown(self, md: markdown.Markdown) -> None:
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        md.treeprocessors.register(_UnsafeLinkStripper(md), "unsafe_links", 0)


class _FenceTracker:
    """Follows fenced code blocks line by line.

    A block is closed only by a bare fence of the same character that is at
    least as long as the one that opened it; other fence-like lines inside
    the block are code.
    """

    def __init__(self):
        self.open_fence: Optional[str] = None
        self.blocks = 0

    def feed(self, line: str) -> bool:
        """Consume one line; True if it opened or closed a block."""
        match = FENCE_PATTERN.match(line)
        if not match:
            return False
        fence = match.group("fence")
        if self.open_fence is None:
            self.open_fence = fence
            self.blocks += 1
            return True
        if (
            fence[0] == self.open_fence[0]
            and len(fence) >= len(self.open_fence)
            and not match.group("info").strip()
        ):
            self.open_fence = None
            return True
        return False


def _open_fence(text: str) -> Optional[str]:
    tracker = _FenceTracker()
    for line in text.splitlines():
        tracker.feed(line)
    return tracker.open_fence


def _cut(text: str, room: int) -> str:
    head = text[:room]
    # Prefer a paragraph break, then a line break, then a word break.
    for boundary in ("\n\n", "\n", " "):
        cut = head.rfind(boundary)
        if cut >= room // 2:
            head = head[:cut]
            break
    return head.rstrip()


def truncate_markdown(text: str, limit: int) -> tuple[str, bool]:
    """Cut ``text`` to at most ``limit`` characters of renderable markdown.

    A code block left open by the cut is closed with the same fence that
    opened it. Returns the (possibly shortened) text and whether it was cut.

    Raises:
        ValueError: If ``limit`` is below ``MIN_TRUNCATION_LIMIT``
    """
    if limit < MIN_TRUNCATION_LIMIT:
        raise ValueError(f"limit must be at least {MIN_TRUNCATION_LIMIT}")
    if len(text) <= limit:
        return text, False

    room = limit - len(TRUNCATION_NOTICE)
    head = _cut(text, room)

    fence = _open_fence(head)
    if fence is not None:
        head = _cut(head, room - len(fence) - 1)
        fence = _open_fence(head)
        if fence is not None:
            head += "\n" + fence
    return head + TRUNCATION_NOTICE, True


def describe_structure(text: str) -> dict[str, int]:
    headings = list_items = tables = 0
    tracker = _FenceTracker()
    for line in text.splitlines():
        if tracker.feed(line) or tracker.open_fence is not None:
            continue
        if HEADING_PATTERN.match(line):
            headings += 1
        elif TABLE_DIVIDER_PATTERN.match(line) and "|" in line:
            tables += 1
        elif LIST_ITEM_PATTERN.match(line):
            list_items += 1
    return {
        "headings": headings,
        "list_items": list_items,
        "tables": tables,
        "code_blocks": tracker.blocks,
    }


class ResponseFormatter:
    """Renders assistant markdown to sanitized HTML."""

    def __init__(self, max_chars: int = 8000):
        if max_chars < MIN_TRUNCATION_LIMIT:
            raise ValueError(f"max_chars must be at least {MIN_TRUNCATION_LIMIT}")
        self.max_chars = max_chars

    def to_html(self, text: str) -> str:
        # A fresh Markdown instance per call; instances keep parser state.
        renderer = markdown.Markdown(
            extensions=["tables", "fenced_code", SanitizeExtension()],
            output_format="html",
        )
        return renderer.convert(text)

    def format(self, text: str) -> FormattedResponse:
        body, truncated = truncate_markdown(text or "", self.max_chars)
        if truncated:
            LOGGER.info(
                "Response truncated",
                extra={"category": "AI", "original_chars": len(text), "max_chars": self.max_chars},
            )
        return FormattedResponse(
            markdown=body,
            html=self.to_html(body),
            truncated=truncated,
            structure=describe_structure(body),
        )
