"""Per-collection repositories for the product catalog and feed tables."""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from product_hub.database.models import (
    Coverage,
    DataDictionaryEntry,
    EarningsReport,
    Form,
    FormCoverage,
    NewsSummary,
    PricingStep,
    Product,
    Rule,
    Task,
)
from product_hub.repositories.base_repository import BaseRepository, as_uuid
from product_hub.schemas.catalog import (
    CoverageRecord,
    DataDictionaryRecord,
    EarningsReportRecord,
    FormCoverageRecord,
    FormRecord,
    NewsArticleRecord,
    PricingStepRecord,
    ProductRecord,
    RuleRecord,
    TaskRecord,
)


class ProductRepository(BaseRepository[Product, ProductRecord]):
    record_type = ProductRecord
    order_by = ("name",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, Product)


class CoverageRepository(BaseRepository[Coverage, CoverageRecord]):
    """Coverages are owned by products; ``list_records`` reads them all."""

    record_type = CoverageRecord
    order_by = ("product_id", "coverage_name")

    def __init__(self, session: AsyncSession):
        super().__init__(session, Coverage)

    async def list_for_product(self, product_id: Union[str, UUID]) -> List[CoverageRecord]:
        key = as_uuid(product_id)
        if key is None:
            return []
        return await self.list_records({"product_id": key})


class FormRepository(BaseRepository[Form, FormRecord]):
    record_type = FormRecord
    order_by = ("name",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, Form)


class FormCoverageRepository(BaseRepository[FormCoverage, FormCoverageRecord]):
    record_type = FormCoverageRecord

    def __init__(self, session: AsyncSession):
        super().__init__(session, FormCoverage)


class PricingStepRepository(BaseRepository[PricingStep, PricingStepRecord]):
    record_type = PricingStepRecord
    order_by = ("product_id", "order")

    def __init__(self, session: AsyncSession):
        super().__init__(session, PricingStep)


class RuleRepository(BaseRepository[Rule, RuleRecord]):
    record_type = RuleRecord
    order_by = ("name",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, Rule)


class DataDictionaryRepository(BaseRepository[DataDictionaryEntry, DataDictionaryRecord]):
    record_type = DataDictionaryRecord
    order_by = ("field_name",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, DataDictionaryEntry)


class TaskRepository(BaseRepository[Task, TaskRecord]):
    record_type = TaskRecord
    order_by = ("due_date",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, Task)


class NewsRepository(BaseRepository[NewsSummary, NewsArticleRecord]):
    """Cached news summaries; expired rows are hidden from reads."""

    record_type = NewsArticleRecord

    def __init__(self, session: AsyncSession):
        super().__init__(session, NewsSummary)

    async def list_records(self, filters=None) -> List[NewsArticleRecord]:
        now = datetime.now(timezone.utc)
        try:
            query = (
                select(NewsSummary)
                .where((NewsSummary.expires_at.is_(None)) | (NewsSummary.expires_at > now))
                .order_by(NewsSummary.published_at.desc())
            )
            result = await self.session.execute(query)
            return [self.to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._fail("listing", e) from e

    async def save_articles(
        self, articles: Iterable[NewsArticleRecord], expires_at: Optional[datetime] = None
    ) -> int:
        """Upsert articles keyed by their upstream id."""
        rows = [
            {
                "article_id": article.id,
                "title": article.title,
                "link": article.link,
                "source": article.source,
                "summary": article.summary,
                "category": article.category,
                "published_at": article.published_at,
                "expires_at": expires_at,
            }
            for article in articles
        ]
        if not rows:
            return 0
        try:
            stmt = insert(NewsSummary).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[NewsSummary.article_id],
                set_={
                    "title": stmt.excluded.title,
                    "summary": stmt.excluded.summary,
                    "expires_at": stmt.excluded.expires_at,
                },
            )
            await self.session.execute(stmt)
            await self.session.commit()
            return len(rows)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("saving", e) from e


class EarningsRepository(BaseRepository[EarningsReport, EarningsReportRecord]):
    record_type = EarningsReportRecord
    order_by = ("symbol",)

    def __init__(self, session: AsyncSession):
        super().__init__(session, EarningsReport)

    async def save_reports(self, reports: Iterable[EarningsReportRecord]) -> int:
        """Upsert reports keyed by symbol and reporting period."""
        rows = [
            {
                "report_id": report.id,
                "symbol": report.symbol,
                "company_name": report.company_name,
                "period": report.period,
                "eps_actual": report.eps_actual,
                "eps_estimate": report.eps_estimate,
                "revenue": report.revenue,
                "reported_at": report.reported_at,
            }
            for report in reports
        ]
        if not rows:
            return 0
        try:
            stmt = insert(EarningsReport).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[EarningsReport.report_id],
                set_={
                    "eps_actual": stmt.excluded.eps_actual,
                    "eps_estimate": stmt.excluded.eps_estimate,
                    "revenue": stmt.excluded.revenue,
                    "reported_at": stmt.excluded.reported_at,
                },
            )
            await self.session.execute(stmt)
            await self.session.commit()
            return len(rows)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("saving", e) from e
