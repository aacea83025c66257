"""
Unit Tests - Silver Transformer
"""
from datetime import date

import pytest

from warehouse.schemas import Entity, SILVER_SCHEMAS, silver_columns
from warehouse.transformation import SilverTransformer


class TestSilverTransformer:
    """Staging to silver per entity"""

    def test_transform_entity_conforms_to_contract(self, raw_products, reference_time):
        transformer = SilverTransformer(reference_time)

        silver, result = transformer.transform_entity(raw_products, Entity.CRM_PRODUCTS)

        assert silver.columns == silver_columns(Entity.CRM_PRODUCTS)
        for column, dtype in SILVER_SCHEMAS[Entity.CRM_PRODUCTS].items():
            assert silver.schema[column] == dtype
        assert result.input_rows == 4
        assert result.output_rows == 4

    def test_products_floor_cost_and_derive_end_dates(self, raw_products, reference_time):
        silver, _ = SilverTransformer(reference_time).transform_entity(raw_products, Entity.CRM_PRODUCTS)

        assert silver["product_cost"].to_list() == [0.0, 1000.0, 0.0, 2171.0]
        assert silver["end_date"].to_list() == [date(2021, 12, 31), None, None, None]

    def test_sales_scenarios(self, raw_sales, reference_time):
        silver, _ = SilverTransformer(reference_time).transform_entity(raw_sales, Entity.CRM_SALES)

        # sales=0, quantity=3, price=10
        assert silver.row(0, named=True)["sales"] == 30.0
        assert silver.row(0, named=True)["price"] == 10.0
        # sales=100, quantity=5, price missing; order date 20231301 is unparseable
        second = silver.row(1, named=True)
        assert (second["sales"], second["price"]) == (100.0, 20.0)
        assert second["order_date"] is None
        assert second["due_date"] is None
        # short order date token
        assert silver["order_date"][2] is None
        assert silver["price"][2] == 25.0

    def test_sales_irregular_tokens_and_returns(self, raw_sales_irregular, reference_time):
        silver, _ = SilverTransformer(reference_time).transform_entity(raw_sales_irregular, Entity.CRM_SALES)

        rounded, returned = silver.row(0, named=True), silver.row(1, named=True)
        assert (rounded["order_date"], rounded["ship_date"], rounded["due_date"]) == (None, None, None)
        assert rounded["sales"] == 9.9
        assert returned["order_date"] == date(2023, 1, 5)
        assert (returned["sales"], returned["quantity"], returned["price"]) == (50.0, -5, 10.0)

    def test_load_time_is_reference_time(self, raw_customers, reference_time):
        silver, _ = SilverTransformer(reference_time).transform_entity(raw_customers, Entity.CRM_CUSTOMERS)

        assert silver["dwh_load_time"].unique().to_list() == [reference_time]

    def test_result_counts_dropped_rows(self, raw_customers, reference_time):
        _, result = SilverTransformer(reference_time).transform_entity(raw_customers, Entity.CRM_CUSTOMERS)

        assert result.duplicates_removed == 1
        assert result.null_key_rows == 1
        assert result.rows_dropped == 2

    def test_future_birthdate_nulled(self, raw_erp_customers, reference_time):
        silver, _ = SilverTransformer(reference_time).transform_entity(raw_erp_customers, Entity.ERP_CUSTOMERS)

        assert silver["birthdate"].to_list() == [date(1980, 5, 5), None, date(1995, 2, 20)]

    @pytest.mark.asyncio
    async def test_run_parallel_matches_sequential(self, staging_tables, reference_time):
        parallel, _ = await SilverTransformer(reference_time, parallel=True).run(staging_tables)
        sequential, _ = await SilverTransformer(reference_time, parallel=False).run(staging_tables)

        assert set(parallel) == set(Entity)
        for entity in Entity:
            assert parallel[entity].equals(sequential[entity])

    @pytest.mark.asyncio
    async def test_run_returns_result_per_entity(self, staging_tables, reference_time):
        _, results = await SilverTransformer(reference_time).run(staging_tables)

        assert set(results) == set(Entity)
        assert results[Entity.CRM_SALES].output_rows == 5
