"""
Catalog snapshot records.

Plain pydantic views of the catalog tables. They are what the assistant
pipeline reads: repositories build them from ORM rows and the aggregator
denormalizes them into flat summaries. Equality is by value, which is what
the snapshot memoization relies on.
"""

from datetime import date, datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _as_str(value: Any) -> Any:
    return str(value) if value is not None else value


RecordId = Annotated[str, BeforeValidator(_as_str)]


class CatalogRecord(BaseModel):
    """Base for catalog records built from ORM rows."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: RecordId


class ProductRecord(CatalogRecord):
    name: str
    product_code: Optional[str] = None
    form_number: Optional[str] = None
    effective_date: Optional[date] = None
    available_states: list[str] = Field(default_factory=list)
    status: str = "draft"
    description: Optional[str] = None
    category: Optional[str] = None
    form_download_url: Optional[str] = None


class CoverageRecord(CatalogRecord):
    product_id: RecordId
    coverage_name: str
    coverage_code: Optional[str] = None
    parent_coverage_id: Optional[RecordId] = None
    category: Optional[str] = None
    description: Optional[str] = None
    limits: list[float] = Field(default_factory=list)
    deductibles: list[float] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)


class FormRecord(CatalogRecord):
    name: str
    form_number: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    product_ids: list[RecordId] = Field(default_factory=list)
    download_url: Optional[str] = None


class FormCoverageRecord(CatalogRecord):
    form_id: RecordId
    coverage_id: RecordId
    product_id: Optional[RecordId] = None


class PricingStepRecord(CatalogRecord):
    product_id: RecordId
    step_name: str
    order: int = 0
    step_type: Optional[str] = None
    operand: Optional[str] = None
    value: Optional[float] = None
    table_name: Optional[str] = None
    description: Optional[str] = None


class RuleRecord(CatalogRecord):
    name: str
    product_id: Optional[RecordId] = None
    rule_text: Optional[str] = None
    category: Optional[str] = None
    proprietary: bool = False


class DataDictionaryRecord(CatalogRecord):
    field_name: str
    description: Optional[str] = None
    category: Optional[str] = None


class TaskRecord(CatalogRecord):
    title: str
    description: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    status: str = "todo"
    priority: str = "medium"
    phase: str = "research"


class NewsArticleRecord(CatalogRecord):
    title: str
    link: Optional[str] = None
    source: Optional[str] = None
    summary: Optional[str] = None
    category: Optional[str] = None
    published_at: Optional[datetime] = None


class EarningsReportRecord(CatalogRecord):
    symbol: str
    company_name: Optional[str] = None
    period: Optional[str] = None
    eps_actual: Optional[float] = None
    eps_estimate: Optional[float] = None
    revenue: Optional[float] = None
    reported_at: Optional[datetime] = None


class CatalogSnapshot(BaseModel):
    """Every collection the assistant can see, as read at one point in time."""

    model_config = ConfigDict(frozen=True)

    products: tuple[ProductRecord, ...] = ()
    coverages: tuple[CoverageRecord, ...] = ()
    forms: tuple[FormRecord, ...] = ()
    form_coverages: tuple[FormCoverageRecord, ...] = ()
    pricing_steps: tuple[PricingStepRecord, ...] = ()
    rules: tuple[RuleRecord, ...] = ()
    data_dictionary: tuple[DataDictionaryRecord, ...] = ()
    tasks: tuple[TaskRecord, ...] = ()
    news: tuple[NewsArticleRecord, ...] = ()
    earnings: tuple[EarningsReportRecord, ...] = ()

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in type(self).model_fields}


class CoverageCreate(BaseModel):
    """Payload for creating a coverage under a product."""

    coverage_name: str = Field(min_length=1)
    coverage_code: Optional[str] = None
    parent_coverage_id: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    limits: list[float] = Field(default_factory=list)
    deductibles: list[float] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)


class CoverageParentUpdate(BaseModel):
    """Payload for re-parenting a coverage; ``None`` detaches it."""

    parent_coverage_id: Optional[str] = None
