"""Unit tests for snapshot denormalization."""

from product_hub.schemas.catalog import CatalogSnapshot, CoverageRecord
from product_hub.services.assistant.aggregator import ContextAggregator, coverage_path


class TestContextAggregator:
    def test_resolves_names(self, sample_snapshot):
        context = ContextAggregator().aggregate(sample_snapshot)

        glass = next(c for c in context.coverages if c["id"] == "c-glass")
        assert glass["productName"] == "Businessowners Policy"
        assert glass["parentCoverageName"] == "Building"
        assert glass["path"] == ["Building", "Glass Breakage"]

        building = next(c for c in context.coverages if c["id"] == "c-bldg")
        assert building["formNames"] == ["Businessowners Coverage Form"]

        form = context.forms[0]
        assert form["productNames"] == ["Businessowners Policy"]
        assert form["coverageNames"] == ["Building"]
        assert form["hasDocument"] is True

    def test_product_flags(self, sample_snapshot):
        context = ContextAggregator().aggregate(sample_snapshot)

        bop, ho3 = context.products
        assert bop["hasFormDocument"] is True
        assert bop["coverageCount"] == 3
        assert ho3["hasFormDocument"] is False
        assert ho3["coverageCount"] == 1

    def test_pricing_steps_in_order(self, sample_snapshot):
        context = ContextAggregator().aggregate(sample_snapshot)

        assert [s["stepName"] for s in context.pricing_steps] == ["Base Rate", "Territory Factor"]

    def test_snapshot_unchanged(self, sample_snapshot):
        before = sample_snapshot.model_copy(deep=True)
        ContextAggregator().aggregate(sample_snapshot)
        assert sample_snapshot == before

    def test_empty_snapshot(self):
        context = ContextAggregator().aggregate(CatalogSnapshot())
        assert context.products == []
        assert context.coverages == []


class TestCoveragePath:
    def test_stops_on_existing_loop(self):
        coverages = {
            "a": CoverageRecord(id="a", product_id="p", coverage_name="A", parent_coverage_id="b"),
            "b": CoverageRecord(id="b", product_id="p", coverage_name="B", parent_coverage_id="a"),
        }
        assert coverage_path("a", coverages) == ["B", "A"]

    def test_unknown_id(self):
        assert coverage_path("missing", {}) == []
