"""
Unit Tests - Data Quality
"""
from datetime import date

import pytest
import polars as pl

from warehouse.dimensional import DimensionalAssembler
from warehouse.quality import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    contract_failures,
    create_gold_validators,
    create_silver_validators,
    run_validators,
)
from warehouse.schemas import Entity, GoldTable
from warehouse.transformation import SilverTransformer


@pytest.fixture
def silver(staging_tables, reference_time):
    transformer = SilverTransformer(reference_time, parallel=False)
    return {
        entity: transformer.transform_entity(df, entity)[0]
        for entity, df in staging_tables.items()
    }


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.checks[0].failed_rows == 1

    def test_unique_check_fails(self):
        df = pl.DataFrame({"id": [1, 2, 1]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].name == "unique_id"

    def test_composite_unique_check(self):
        df = pl.DataFrame({"id": [1, 1, 2], "start": [date(2020, 1, 1), date(2021, 1, 1), date(2020, 1, 1)]})

        result = DataValidator().add_composite_unique_check(["id", "start"]).validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_range_check_ignores_nulls(self):
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0, None]})

        result = DataValidator().add_range_check("price", min_value=0, max_value=100).validate(df)

        assert result.status == ValidationStatus.FAILED
        # -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_enum_check(self):
        df = pl.DataFrame({"gender": ["Male", "Female", "m", None]})

        result = DataValidator().add_enum_check("gender", ["Male", "Female", "Unknown"]).validate(df)

        assert result.checks[0].failed_rows == 1

    def test_missing_column_fails_check(self):
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_not_null_check("customer_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_column_order_check(self):
        df = pl.DataFrame({"b": [1], "a": [2]})

        result = DataValidator().add_column_order_check(["a", "b"]).validate(df)

        assert result.checks[0].name == "column_order"
        assert result.checks[0].details["actual"] == ["b", "a"]
        assert result.status == ValidationStatus.FAILED

    def test_referential_integrity_ignores_nulls(self):
        reference = pl.DataFrame({"key": [1, 2]})
        df = pl.DataFrame({"fk": [1, 3, None]})

        result = (
            DataValidator()
            .add_referential_integrity_check("fk", reference, "key", severity=ValidationSeverity.WARNING)
            .validate(df)
        )

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
        assert result.checks[0].failed_rows == 1

    def test_row_check_treats_null_as_no_violation(self):
        df = pl.DataFrame({
            "order_date": [date(2023, 1, 5), date(2023, 1, 20), None],
            "ship_date": [date(2023, 1, 12), date(2023, 1, 12), date(2023, 1, 12)],
        })

        result = DataValidator().add_row_check(
            "order_before_shipping",
            pl.col("order_date") > pl.col("ship_date"),
            "order date after ship date",
            severity=ValidationSeverity.WARNING,
        ).validate(df)

        assert result.checks[0].failed_rows == 1

    def test_strict_mode_fails_on_warnings(self):
        df = pl.DataFrame({"price": [-1.0]})

        result = (
            DataValidator(strict_mode=True)
            .add_range_check("price", min_value=0, severity=ValidationSeverity.WARNING)
            .validate(df)
        )

        assert result.status == ValidationStatus.FAILED
        assert result.errors == []

    def test_custom_check(self):
        df = pl.DataFrame({"total": [100, 200, 300]})

        result = DataValidator().add_custom_check(
            name="total_sum",
            check_func=lambda df: df["total"].sum() < 1000,
            message_on_fail="Sum exceeds 1000",
        ).validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.success_rate == 100.0


class TestLayerSuites:
    """Pre-configured silver and gold suites"""

    def test_clean_silver_meets_contract(self, silver):
        results = run_validators(create_silver_validators(silver), silver)

        assert set(results) == {entity.value for entity in Entity}
        assert contract_failures(results) == []

    def test_silver_warnings_report_orphans(self, silver):
        results = run_validators(create_silver_validators(silver), silver)

        sales = {c.name: c for c in results[Entity.CRM_SALES.value].checks}
        products = {c.name: c for c in results[Entity.CRM_PRODUCTS.value].checks}
        # customer 99999 is not in CRM; category BI_RB is not in ERP
        assert not sales["ref_integrity_customer_id"].passed
        assert not products["ref_integrity_category_id"].passed
        assert results[Entity.CRM_SALES.value].status == ValidationStatus.PARTIAL

    def test_duplicate_silver_key_is_contract_failure(self, silver):
        silver = dict(silver)
        customers = silver[Entity.CRM_CUSTOMERS]
        silver[Entity.CRM_CUSTOMERS] = pl.concat([customers, customers.head(1)])

        results = run_validators(create_silver_validators(silver), silver)

        assert "crm_customers.unique_customer_id" in contract_failures(results)

    def test_repaired_returns_and_rounding_are_consistent(self, raw_sales_irregular, reference_time):
        sales, _ = SilverTransformer(reference_time).transform_entity(raw_sales_irregular, Entity.CRM_SALES)
        silver = {Entity.CRM_SALES: sales}

        results = run_validators(create_silver_validators(silver), silver)

        checks = {c.name: c for c in results[Entity.CRM_SALES.value].checks}
        assert checks["sales_consistency"].passed
        assert checks["sales_consistency"].failed_rows == 0

    def test_suites_cover_only_present_tables(self, silver):
        partial = {Entity.CRM_SALES: silver[Entity.CRM_SALES]}

        validators = create_silver_validators(partial)

        assert list(validators) == [Entity.CRM_SALES]

    def test_gold_suites(self, silver):
        gold = DimensionalAssembler().assemble(silver).tables()

        results = run_validators(create_gold_validators(gold), gold)

        assert contract_failures(results) == []
        fact = {c.name: c for c in results[GoldTable.FACT_SALES.value].checks}
        assert fact["not_null_product_key"].failed_rows == 1
        assert fact["not_null_customer_key"].failed_rows == 1
        assert fact["ref_integrity_product_key"].passed
