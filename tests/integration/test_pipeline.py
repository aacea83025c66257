"""
Integration Tests - Warehouse Pipeline
"""
import json
from datetime import date, datetime, timedelta, timezone

import pytest
import polars as pl

from warehouse.cli import main
from warehouse.data import StagingDataGenerator
from warehouse.exceptions import DataContractError, StagingUnavailableError
from warehouse.pipeline import WarehousePipeline, resolve_reference_time
from warehouse.schemas import Entity, GoldTable, gold_columns, silver_columns
from warehouse.transformation import DEDUP_POLICIES


@pytest.fixture
def pipeline(test_settings, reference_time) -> WarehousePipeline:
    return WarehousePipeline(settings=test_settings, reference_time=reference_time)


class TestReferenceTime:
    """The run's single 'now'"""

    def test_explicit_value_wins(self, test_settings, reference_time):
        assert resolve_reference_time(reference_time, test_settings) == reference_time

    def test_aware_values_become_naive_utc(self, test_settings):
        aware = datetime(2024, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        assert resolve_reference_time(aware, test_settings) == datetime(2024, 1, 15, 12, 0)

    def test_settings_value_used_when_not_given(self, test_settings):
        test_settings.pipeline.reference_time = datetime(2023, 6, 1)

        assert resolve_reference_time(None, test_settings) == datetime(2023, 6, 1)


class TestRunFrames:
    """Staging to gold in memory"""

    @pytest.mark.asyncio
    async def test_end_to_end(self, pipeline, staging_tables, reference_time):
        silver, gold, result = await pipeline.run_frames(staging_tables)

        for entity in Entity:
            assert silver[entity].columns == silver_columns(entity)
            assert silver[entity]["dwh_load_time"].unique().to_list() == [reference_time]
        for table, df in gold.tables().items():
            assert df.columns == gold_columns(table)

        assert result.gold_rows == {"dim_customers": 3, "dim_products": 3, "fact_sales": 5}
        assert result.completed_at is not None
        assert result.warning_count > 0

    @pytest.mark.asyncio
    async def test_latest_customer_version_kept(self, pipeline, staging_tables):
        silver, _, _ = await pipeline.run_frames(staging_tables)

        lance = silver[Entity.CRM_CUSTOMERS].filter(pl.col("customer_id") == 29466)
        assert lance.height == 1
        assert lance["create_date"][0] == date(2023, 6, 1)
        assert lance["first_name"][0] == "Lance"
        assert lance["marital_status"][0] == "Single"

    @pytest.mark.asyncio
    async def test_sales_repairs(self, pipeline, staging_tables):
        silver, _, _ = await pipeline.run_frames(staging_tables)

        sales = silver[Entity.CRM_SALES]
        assert sales.select(["sales", "quantity", "price"]).row(0) == (30.0, 3, 10.0)
        assert sales.select(["sales", "quantity", "price"]).row(1) == (100.0, 5, 20.0)

    @pytest.mark.asyncio
    async def test_calendar_invalid_token_becomes_null(self, pipeline, staging_tables):
        silver, gold, _ = await pipeline.run_frames(staging_tables)

        assert silver[Entity.CRM_SALES]["order_date"][1] is None
        assert gold.fact_sales["order_date"][1] is None

    @pytest.mark.asyncio
    async def test_product_history_intervals(self, pipeline, staging_tables):
        silver, gold, _ = await pipeline.run_frames(staging_tables)

        frames = silver[Entity.CRM_PRODUCTS].filter(pl.col("product_key") == "FR-R92B-58").sort("start_date")
        assert frames["end_date"].to_list() == [date(2021, 12, 31), None]
        assert 210 not in gold.dim_products["product_id"].to_list()

    @pytest.mark.asyncio
    async def test_identical_input_gives_identical_output(self, test_settings, staging_tables, reference_time):
        first_silver, first_gold, _ = await WarehousePipeline(
            settings=test_settings, reference_time=reference_time
        ).run_frames(staging_tables)
        second_silver, second_gold, _ = await WarehousePipeline(
            settings=test_settings, reference_time=reference_time
        ).run_frames(staging_tables)

        for entity in Entity:
            assert first_silver[entity].equals(second_silver[entity])
        for table in GoldTable:
            assert first_gold.tables()[table].equals(second_gold.tables()[table])

    @pytest.mark.asyncio
    async def test_contract_failure_aborts(self, pipeline, staging_tables, monkeypatch):
        _keep_duplicates(pipeline, monkeypatch)

        with pytest.raises(DataContractError) as exc_info:
            await pipeline.run_frames(staging_tables)

        assert "crm_customers.unique_customer_id" in exc_info.value.details["failed_checks"]

    @pytest.mark.asyncio
    async def test_contract_failure_only_warns_when_not_enforced(self, pipeline, staging_tables, monkeypatch):
        pipeline.settings.pipeline.enforce_contracts = False
        _keep_duplicates(pipeline, monkeypatch)

        silver, _, _ = await pipeline.run_frames(staging_tables)

        assert silver[Entity.CRM_CUSTOMERS].height == 4


def _keep_duplicates(pipeline: WarehousePipeline, monkeypatch) -> None:
    """Drop null keys but never collapse, so the key contracts break"""
    resolver = pipeline.transformer.resolver
    original = resolver.resolve
    monkeypatch.setattr(
        resolver,
        "resolve_entity",
        lambda df, entity: original(df, DEDUP_POLICIES[entity].business_key, collapse=False),
    )


class TestRun:
    """Staging store to layer stores"""

    @pytest.mark.asyncio
    async def test_run_materializes_both_layers(self, pipeline, staging_dir, reference_time):
        result = await pipeline.run()

        assert pipeline.silver_store.tables() == sorted(e.value for e in Entity)
        assert pipeline.gold_store.tables() == sorted(t.value for t in GoldTable)
        assert pipeline.gold_store.manifest()["reference_time"] == reference_time.isoformat()
        assert result.gold_path == str(pipeline.gold_store.path)
        assert pipeline.gold_store.read("fact_sales").height == 5

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, test_settings, staging_dir, reference_time):
        pipeline = WarehousePipeline(settings=test_settings, reference_time=reference_time)
        await pipeline.run()
        first = pipeline.gold_store.read_all()

        await WarehousePipeline(settings=test_settings, reference_time=reference_time).run()
        second = pipeline.gold_store.read_all()

        assert set(first) == set(second)
        for table in first:
            assert first[table].equals(second[table])

    @pytest.mark.asyncio
    async def test_missing_staging_leaves_layers_untouched(self, pipeline, staging_dir, test_settings):
        await pipeline.run()
        before = pipeline.gold_store.manifest()

        broken = WarehousePipeline(
            settings=test_settings,
            reference_time=datetime(2025, 1, 1),
            staging_path=str(staging_dir / "missing"),
        )
        with pytest.raises(StagingUnavailableError):
            await broken.run()

        assert pipeline.gold_store.manifest() == before

    @pytest.mark.asyncio
    async def test_generated_staging_area(self, test_settings, tmp_path):
        staging = tmp_path / "staging"
        data = StagingDataGenerator(
            output_dir=str(staging), seed=7, staging_settings=test_settings.staging
        ).generate_all(n_customers=120, n_products=20, n_orders=300)

        pipeline = WarehousePipeline(settings=test_settings, reference_time=datetime(2014, 2, 1))
        result = await pipeline.run()

        customers = pipeline.gold_store.read("dim_customers")
        assert customers.height == 120
        assert customers["customer_key"].to_list() == list(range(1, 121))
        assert result.gold_rows["fact_sales"] == data[Entity.CRM_SALES].height
        assert result.silver_results[Entity.CRM_CUSTOMERS].null_key_rows >= 1


class TestGenerator:
    """Seeded synthetic staging data"""

    def test_same_seed_same_data(self, tmp_path, test_settings):
        first = StagingDataGenerator(str(tmp_path / "a"), seed=3, staging_settings=test_settings.staging)
        second = StagingDataGenerator(str(tmp_path / "b"), seed=3, staging_settings=test_settings.staging)

        a = first.generate_all(n_customers=30, n_products=5, n_orders=40, save=False)
        b = second.generate_all(n_customers=30, n_products=5, n_orders=40, save=False)

        for entity in Entity:
            assert a[entity].equals(b[entity])

    def test_writes_every_extract(self, tmp_path, test_settings):
        generator = StagingDataGenerator(str(tmp_path), seed=1, staging_settings=test_settings.staging)
        generator.generate_all(n_customers=10, n_products=3, n_orders=5)

        assert (tmp_path / test_settings.staging.crm_sales_file).exists()
        assert (tmp_path / test_settings.staging.erp_categories_file).exists()


class TestCli:
    """Command line entry point"""

    def test_generate_run_report(self, tmp_path, capsys):
        staging, silver, gold = tmp_path / "staging", tmp_path / "silver", tmp_path / "gold"

        assert main(["--log-level", "WARNING", "generate", "--output", str(staging),
                     "--customers", "40", "--products", "8", "--orders", "60"]) == 0
        assert main(["--log-level", "WARNING", "run", "--reference-time", "2014-02-01T00:00:00",
                     "--staging-path", str(staging), "--silver-path", str(silver),
                     "--gold-path", str(gold)]) == 0

        manifest = json.loads((gold / "_manifest.json").read_text())
        assert manifest["reference_time"] == "2014-02-01T00:00:00"

        capsys.readouterr()
        assert main(["--log-level", "WARNING", "report", "sales-by-year", "--gold-path", str(gold),
                     "--reference-time", "2014-02-01T00:00:00"]) == 0
        assert "total_sales" in capsys.readouterr().out

    def test_missing_staging_exit_code(self, tmp_path, capsys):
        code = main(["--log-level", "WARNING", "run", "--staging-path", str(tmp_path / "none"),
                     "--silver-path", str(tmp_path / "silver"), "--gold-path", str(tmp_path / "gold")])

        assert code == 1
        assert "STAGING_001" in capsys.readouterr().err
