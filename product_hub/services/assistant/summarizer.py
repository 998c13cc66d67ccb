"""
Context summarization.

Reduces an aggregated context to the JSON block embedded in the system
prompt. Three tiers are emitted, cheapest first:

- statistics: counts and filtered sub-counts
- sampleData: the first few records of the main collections
- fullData: records with a reduced field set, each collection drawing a
  fair share of the remaining budget

Every tier is charged against a token budget measured with the model's
tokenizer. Records that do not fit are dropped and reported under
``omitted``; the serialized summary never exceeds ``max_tokens`` tokens or
``max_chars`` characters.
"""

from datetime import date
from typing import Any, Callable

from product_hub.services.assistant.aggregator import AggregatedContext, Row
from product_hub.services.assistant.constants import (
    DATA_DICTIONARY_LIMIT,
    TASK_PHASES,
    TASK_PRIORITIES,
)
from product_hub.services.assistant.token_budget import (
    TokenBudget,
    TokenCounterProtocol,
    dump_json,
)
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

MIN_TOKEN_BUDGET = 256
MIN_CHAR_BUDGET = 1024

# Distinct-value lists in the statistics tier are capped at this length.
MAX_DISTINCT_VALUES = 25

# Share of the budget available to record-by-record accounting; the rest
# absorbs nesting whitespace before the final exact check.
EFFECTIVE_BUDGET_RATIO = 0.95


def _pick(*keys: str) -> Callable[[Row], Row]:
    def project(row: Row) -> Row:
        return {k: row.get(k) for k in keys if row.get(k) not in (None, [], "")}

    return project


def _distinct(values) -> list:
    seen: list = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen[:MAX_DISTINCT_VALUES]


# Full-data projections, in the order collections are admitted.
FULL_DATA_FIELDS: list[tuple[str, str, Callable[[Row], Row]]] = [
    ("products", "products", _pick("name", "productCode", "status", "category", "availableStates", "description", "coverageCount")),
    ("coverages", "coverages", _pick("coverageName", "coverageCode", "productName", "category", "parentCoverageName", "limits", "deductibles", "description")),
    ("forms", "forms", _pick("name", "formNumber", "category", "productNames", "coverageNames")),
    ("pricing_steps", "pricingSteps", _pick("productName", "order", "stepName", "stepType", "operand", "value", "table")),
    ("rules", "rules", _pick("name", "productName", "category", "proprietary")),
    ("tasks", "tasks", _pick("title", "status", "priority", "phase", "dueDate", "assignee")),
    ("data_dictionary", "dataDictionary", _pick("fieldName", "description")),
    ("news", "news", _pick("title", "source", "publishedAt")),
    ("earnings", "earnings", _pick("symbol", "period", "epsActual", "epsEstimate")),
]

SAMPLE_FIELDS: list[tuple[str, str, Callable[[Row], Row]]] = [
    ("products", "products", lambda p: {"name": p["name"], "code": p["productCode"], "states": len(p["availableStates"])}),
    ("coverages", "coverages", lambda c: {"name": c["coverageName"], "code": c["coverageCode"], "category": c["category"]}),
    ("tasks", "tasks", lambda t: {"title": t["title"], "phase": t["phase"], "priority": t["priority"]}),
]


class ContextSummarizer:
    """Builds the bounded context summary."""

    def __init__(
        self,
        counter: TokenCounterProtocol,
        max_tokens: int = 12000,
        max_chars: int = 60000,
        sample_size: int = 5,
        include_full_data: bool = True,
    ):
        if max_tokens < MIN_TOKEN_BUDGET:
            raise ValueError(f"max_tokens must be at least {MIN_TOKEN_BUDGET}")
        if max_chars < MIN_CHAR_BUDGET:
            raise ValueError(f"max_chars must be at least {MIN_CHAR_BUDGET}")
        self.counter = counter
        self.max_tokens = max_tokens
        self.max_chars = max_chars
        self.sample_size = sample_size
        self.include_full_data = include_full_data

    def statistics(self, context: AggregatedContext, as_of: date) -> dict[str, Any]:
        products, coverages, tasks = context.products, context.coverages, context.tasks
        return {
            "products": {
                "total": len(products),
                "withForms": sum(1 for p in products if p["hasFormDocument"]),
                "statesRepresented": len({s for p in products for s in p["availableStates"]}),
                "topProducts": [
                    {"name": p["name"], "code": p["productCode"], "states": len(p["availableStates"])}
                    for p in products[:5]
                ],
            },
            "coverages": {
                "total": len(coverages),
                "subCoverages": sum(1 for c in coverages if c["parentCoverageId"]),
                "categories": _distinct(c["category"] for c in coverages),
            },
            "forms": {
                "total": len(context.forms),
                "categories": _distinct(f["category"] for f in context.forms),
                "withDocuments": sum(1 for f in context.forms if f["hasDocument"]),
            },
            "rules": {
                "total": len(context.rules),
                "proprietary": sum(1 for r in context.rules if r["proprietary"]),
            },
            "pricing": {
                "totalSteps": len(context.pricing_steps),
                "stepTypes": _distinct(s["stepType"] for s in context.pricing_steps),
            },
            "tasks": {
                "total": len(tasks),
                "byPhase": {phase: sum(1 for t in tasks if t["phase"] == phase) for phase in TASK_PHASES},
                "byPriority": {
                    priority: sum(1 for t in tasks if t["priority"] == priority)
                    for priority in TASK_PRIORITIES
                },
                "overdue": sum(
                    1
                    for t in tasks
                    if t["dueDate"] and t["status"] != "done" and t["dueDate"] < as_of.isoformat()
                ),
            },
            "dataDictionary": {"total": len(context.data_dictionary)},
            "formCoverageMappings": {"total": len(context.form_coverages)},
            "news": {"total": len(context.news)},
            "earnings": {"total": len(context.earnings)},
        }

    def summarize(self, context: AggregatedContext, as_of: date) -> dict[str, Any]:
        """Build the summary for ``context`` as of ``as_of``.

        ``as_of`` is the only date the summary depends on, so identical
        inputs always serialize identically.
        """
        budget = TokenBudget(self.counter, int(self.max_tokens * EFFECTIVE_BUDGET_RATIO))
        omitted: dict[str, int] = {}

        summary: dict[str, Any] = {
            "asOf": as_of.isoformat(),
            "systemOverview": {
                "description": "Comprehensive P&C insurance product management platform",
                "dataAvailable": "products, coverages, forms, pricing, rules, tasks, compliance data",
            },
            "statistics": self.statistics(context, as_of),
        }
        budget.try_spend(summary)

        sample: dict[str, list[Row]] = {}
        for attr, key, project in SAMPLE_FIELDS:
            sample[key] = []
            for row in getattr(context, attr)[: self.sample_size]:
                entry = project(row)
                if not budget.try_spend(entry):
                    break
                sample[key].append(entry)
        summary["sampleData"] = sample

        if self.include_full_data:
            summary["fullData"] = self._full_data(context, budget, omitted)

        if omitted:
            summary["omitted"] = omitted

        summary = self._enforce_bounds(summary, context)
        LOGGER.info(
            "Context summary built",
            extra={
                "category": "AI",
                "estimated_tokens": budget.used,
                "omitted": summary.get("omitted", {}),
            },
        )
        return summary

    def _full_data(
        self, context: AggregatedContext, budget: TokenBudget, omitted: dict[str, int]
    ) -> dict[str, list[Row]]:
        """Admit full records so that no collection crowds out the others.

        First pass: each collection may spend an equal share of the budget
        still remaining when its turn comes, so what a small collection
        leaves unused passes on to the ones after it. Second pass: whatever
        is left goes back to the collections that were cut, in order.
        """
        queues: list[tuple[str, list[Row]]] = []
        for attr, key, project in FULL_DATA_FIELDS:
            rows = getattr(context, attr)
            if attr == "data_dictionary" and len(rows) > DATA_DICTIONARY_LIMIT:
                omitted[key] = len(rows) - DATA_DICTIONARY_LIMIT
                rows = rows[:DATA_DICTIONARY_LIMIT]
            if rows:
                queues.append((key, [project(row) for row in rows]))

        full: dict[str, list[Row]] = {key: [] for key, _ in queues}
        for index, (key, entries) in enumerate(queues):
            ceiling = budget.used + budget.remaining // (len(queues) - index)
            for entry in entries:
                if not budget.try_spend(entry, ceiling=ceiling):
                    break
                full[key].append(entry)

        for key, entries in queues:
            for entry in entries[len(full[key]):]:
                if not budget.try_spend(entry):
                    break
                full[key].append(entry)

        for key, entries in queues:
            dropped = len(entries) - len(full[key])
            if dropped:
                omitted[key] = omitted.get(key, 0) + dropped
            if not full[key]:
                del full[key]
        return full

    def measure(self, summary: dict[str, Any]) -> tuple[int, int]:
        """(tokens, characters) of the summary as embedded in the prompt."""
        text = dump_json(summary)
        return self.counter.count_tokens(text), len(text)

    def fits(self, summary: dict[str, Any]) -> bool:
        tokens, chars = self.measure(summary)
        return tokens <= self.max_tokens and chars <= self.max_chars

    def _enforce_bounds(self, summary: dict[str, Any], context: AggregatedContext) -> dict[str, Any]:
        """Drop trailing records of the largest collection until the exact serialized size fits."""
        if self.fits(summary):
            return summary

        full: dict[str, list[Row]] = summary.get("fullData", {})
        omitted: dict[str, int] = summary.setdefault("omitted", {})
        while full:
            key = max(full, key=lambda name: len(full[name]))
            rows = full[key]
            drop = max(1, len(rows) // 10)
            del rows[-drop:]
            omitted[key] = omitted.get(key, 0) + drop
            if not rows:
                del full[key]
            if self.fits(summary):
                return summary

        summary.pop("fullData", None)
        for key in list(summary.get("sampleData", {})):
            if self.fits(summary):
                return summary
            summary["sampleData"][key] = []
        if self.fits(summary):
            return summary

        LOGGER.warning(
            "Context summary reduced to collection counts",
            extra={"category": "AI", "max_tokens": self.max_tokens, "max_chars": self.max_chars},
        )
        return {
            "asOf": summary["asOf"],
            "counts": {
                name: len(getattr(context, name))
                for name in AggregatedContext.__dataclass_fields__
            },
        }

