"""
Context aggregation.

Flattens a catalog snapshot into plain dictionaries keyed the way the
context block presents them, resolving foreign keys to names so the model
never has to join ids itself.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from product_hub.schemas.catalog import CatalogSnapshot, CoverageRecord
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class AggregatedContext:
    """Denormalized view of every collection, in snapshot order."""

    products: list[Row] = field(default_factory=list)
    coverages: list[Row] = field(default_factory=list)
    forms: list[Row] = field(default_factory=list)
    form_coverages: list[Row] = field(default_factory=list)
    pricing_steps: list[Row] = field(default_factory=list)
    rules: list[Row] = field(default_factory=list)
    data_dictionary: list[Row] = field(default_factory=list)
    tasks: list[Row] = field(default_factory=list)
    news: list[Row] = field(default_factory=list)
    earnings: list[Row] = field(default_factory=list)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def coverage_path(coverage_id: str, coverages_by_id: dict[str, CoverageRecord]) -> list[str]:
    """Names from the root coverage down to ``coverage_id``.

    Stops at a repeated id so rows written before parent validation existed
    cannot loop forever.
    """
    path: list[str] = []
    seen: set[str] = set()
    current = coverages_by_id.get(coverage_id)
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.append(current.coverage_name)
        parent_id = current.parent_coverage_id
        current = coverages_by_id.get(parent_id) if parent_id else None
    return list(reversed(path))


class ContextAggregator:
    """Builds an :class:`AggregatedContext` from a snapshot. Pure; never mutates input."""

    def aggregate(self, snapshot: CatalogSnapshot) -> AggregatedContext:
        product_names = {p.id: p.name for p in snapshot.products}
        coverages_by_id = {c.id: c for c in snapshot.coverages}
        form_names = {f.id: f.name for f in snapshot.forms}

        coverage_ids_by_form: dict[str, list[str]] = {}
        form_ids_by_coverage: dict[str, list[str]] = {}
        for link in snapshot.form_coverages:
            coverage_ids_by_form.setdefault(link.form_id, []).append(link.coverage_id)
            form_ids_by_coverage.setdefault(link.coverage_id, []).append(link.form_id)

        coverage_counts: dict[str, int] = {}
        for coverage in snapshot.coverages:
            coverage_counts[coverage.product_id] = coverage_counts.get(coverage.product_id, 0) + 1

        products = [
            {
                "id": p.id,
                "name": p.name,
                "productCode": p.product_code,
                "formNumber": p.form_number,
                "effectiveDate": _iso(p.effective_date),
                "availableStates": list(p.available_states),
                "status": p.status,
                "category": p.category,
                "description": p.description,
                "hasFormDocument": bool(p.form_download_url),
                "coverageCount": coverage_counts.get(p.id, 0),
            }
            for p in snapshot.products
        ]

        coverages = []
        for c in snapshot.coverages:
            parent = coverages_by_id.get(c.parent_coverage_id) if c.parent_coverage_id else None
            coverages.append(
                {
                    "id": c.id,
                    "productId": c.product_id,
                    "productName": product_names.get(c.product_id),
                    "coverageName": c.coverage_name,
                    "coverageCode": c.coverage_code,
                    "category": c.category,
                    "description": c.description,
                    "parentCoverageId": c.parent_coverage_id,
                    "parentCoverageName": parent.coverage_name if parent else None,
                    "path": coverage_path(c.id, coverages_by_id),
                    "limits": list(c.limits),
                    "deductibles": list(c.deductibles),
                    "states": list(c.states),
                    "formNames": [
                        form_names[fid] for fid in form_ids_by_coverage.get(c.id, []) if fid in form_names
                    ],
                }
            )

        forms = [
            {
                "id": f.id,
                "name": f.name,
                "formNumber": f.form_number,
                "category": f.category,
                "description": f.description,
                "hasDocument": bool(f.download_url),
                "productNames": [product_names[pid] for pid in f.product_ids if pid in product_names],
                "coverageNames": [
                    coverages_by_id[cid].coverage_name
                    for cid in coverage_ids_by_form.get(f.id, [])
                    if cid in coverages_by_id
                ],
            }
            for f in snapshot.forms
        ]

        form_coverages = [
            {
                "formId": link.form_id,
                "coverageId": link.coverage_id,
                "productId": link.product_id,
                "formName": form_names.get(link.form_id),
                "coverageName": (
                    coverages_by_id[link.coverage_id].coverage_name
                    if link.coverage_id in coverages_by_id
                    else None
                ),
            }
            for link in snapshot.form_coverages
        ]

        pricing_steps = [
            {
                "id": s.id,
                "productId": s.product_id,
                "productName": product_names.get(s.product_id),
                "order": s.order,
                "stepName": s.step_name,
                "stepType": s.step_type,
                "operand": s.operand,
                "value": s.value,
                "table": s.table_name,
                "description": s.description,
            }
            for s in sorted(snapshot.pricing_steps, key=lambda s: (s.product_id, s.order))
        ]

        rules = [
            {
                "id": r.id,
                "name": r.name,
                "productName": product_names.get(r.product_id) if r.product_id else None,
                "category": r.category,
                "ruleText": r.rule_text,
                "proprietary": r.proprietary,
            }
            for r in snapshot.rules
        ]

        data_dictionary = [
            {"fieldName": d.field_name, "description": d.description, "category": d.category}
            for d in snapshot.data_dictionary
        ]

        tasks = [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "assignee": t.assignee,
                "dueDate": _iso(t.due_date),
                "status": t.status,
                "priority": t.priority,
                "phase": t.phase,
            }
            for t in snapshot.tasks
        ]

        news = [
            {
                "title": n.title,
                "source": n.source,
                "category": n.category,
                "summary": n.summary,
                "publishedAt": _iso(n.published_at),
            }
            for n in snapshot.news
        ]

        earnings = [
            {
                "symbol": e.symbol,
                "companyName": e.company_name,
                "period": e.period,
                "epsActual": e.eps_actual,
                "epsEstimate": e.eps_estimate,
                "revenue": e.revenue,
                "reportedAt": _iso(e.reported_at),
            }
            for e in snapshot.earnings
        ]

        context = AggregatedContext(
            products=products,
            coverages=coverages,
            forms=forms,
            form_coverages=form_coverages,
            pricing_steps=pricing_steps,
            rules=rules,
            data_dictionary=data_dictionary,
            tasks=tasks,
            news=news,
            earnings=earnings,
        )
        LOGGER.debug(
            "Aggregated catalog context",
            extra={"category": "DATA", "counts": snapshot.counts()},
        )
        return context
