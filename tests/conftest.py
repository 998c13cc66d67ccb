"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_AUTO_MIGRATE", "false")
os.environ.setdefault("LLM_TRANSPORT", "proxy")

from datetime import date

import pytest
from fastapi.testclient import TestClient

from product_hub.core.config import ModelParameters
from product_hub.main import app
from product_hub.schemas.catalog import (
    CatalogSnapshot,
    CoverageRecord,
    DataDictionaryRecord,
    FormCoverageRecord,
    FormRecord,
    PricingStepRecord,
    ProductRecord,
    RuleRecord,
    TaskRecord,
)


class FakeTokenCounter:
    """Roughly four characters per token, without loading a tokenizer."""

    def count_tokens(self, text: str) -> int:
        return len(text) // 4 if text else 0


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def token_counter() -> FakeTokenCounter:
    return FakeTokenCounter()


@pytest.fixture
def as_of() -> date:
    return date(2024, 6, 1)


@pytest.fixture
def fast_params() -> ModelParameters:
    return ModelParameters(model="gpt-4o-mini", max_tokens=500, temperature=0.3, timeout_seconds=1.0)


@pytest.fixture
def sample_snapshot() -> CatalogSnapshot:
    """Two products with a small coverage tree, forms, pricing and tasks."""
    return CatalogSnapshot(
        products=(
            ProductRecord(
                id="p-bop",
                name="Businessowners Policy",
                product_code="BOP",
                available_states=["TX", "CA", "NY"],
                status="active",
                category="commercial",
                form_download_url="https://example.com/bop.pdf",
            ),
            ProductRecord(
                id="p-ho3",
                name="Homeowners Special Form",
                product_code="HO3",
                available_states=["TX"],
                category="personal",
            ),
        ),
        coverages=(
            CoverageRecord(
                id="c-bldg",
                product_id="p-bop",
                coverage_name="Building",
                coverage_code="BLDG",
                category="property",
                limits=[500000, 1000000],
                deductibles=[1000],
            ),
            CoverageRecord(
                id="c-glass",
                product_id="p-bop",
                coverage_name="Glass Breakage",
                coverage_code="GLS",
                parent_coverage_id="c-bldg",
                category="property",
            ),
            CoverageRecord(
                id="c-liab",
                product_id="p-bop",
                coverage_name="General Liability",
                coverage_code="GL",
                category="liability",
            ),
            CoverageRecord(
                id="c-dwel",
                product_id="p-ho3",
                coverage_name="Dwelling",
                coverage_code="COV-A",
                category="property",
            ),
        ),
        forms=(
            FormRecord(
                id="f-bp0003",
                name="Businessowners Coverage Form",
                form_number="BP 00 03",
                category="base",
                product_ids=["p-bop"],
                download_url="https://example.com/bp0003.pdf",
            ),
        ),
        form_coverages=(
            FormCoverageRecord(id="fc-1", form_id="f-bp0003", coverage_id="c-bldg", product_id="p-bop"),
        ),
        pricing_steps=(
            PricingStepRecord(id="s-2", product_id="p-bop", step_name="Territory Factor", order=2, step_type="factor", operand="*", value=1.1),
            PricingStepRecord(id="s-1", product_id="p-bop", step_name="Base Rate", order=1, step_type="base", value=250.0),
        ),
        rules=(
            RuleRecord(id="r-1", name="Minimum Premium", product_id="p-bop", category="underwriting", proprietary=True),
        ),
        data_dictionary=(
            DataDictionaryRecord(id="d-1", field_name="policy_number", description="Policy identifier"),
        ),
        tasks=(
            TaskRecord(id="t-1", title="File BOP rates in TX", due_date=date(2024, 5, 1), priority="high", phase="compliance"),
            TaskRecord(id="t-2", title="Review glass endorsement", due_date=date(2024, 5, 1), status="done"),
            TaskRecord(id="t-3", title="Draft HO3 refresh", due_date=date(2024, 7, 1), phase="develop"),
        ),
    )
