"""
Unit Tests - Enrichment Engine
"""
from datetime import date, datetime

import pytest
import polars as pl

from warehouse.transformation.enrichers import DataEnricher, valid_date_token


@pytest.fixture
def enricher(reference_time) -> DataEnricher:
    return DataEnricher(reference_time)


class TestDateTokens:
    """YYYYMMDD date token rule"""

    def test_valid_date_token_checks_length_and_zero(self):
        df = pl.DataFrame({"token": ["20230105", "0", "2023010", "202301050", None]})

        result = df.select(valid_date_token("token"))

        assert result["token"].to_list() == ["20230105", None, None, None, None]

    def test_token_rule_reads_raw_text(self):
        df = pl.DataFrame({"token": ["020230101", "20230101.0", "00000000", " 20230105 ", "2023-01-05"]})

        result = df.select(valid_date_token("token"))

        assert result["token"].to_list() == [None, None, None, "20230105", None]

    def test_integer_tokens_are_read_as_text(self):
        df = pl.DataFrame({"token": [20230105, 0, 2023010]})

        result = df.select(valid_date_token("token"))

        assert result["token"].to_list() == ["20230105", None, None]

    def test_length_valid_impossible_date_is_accepted_then_unparseable(self, enricher):
        df = pl.DataFrame({"order_date": ["20231301"]})

        kept = df.select(valid_date_token("order_date"))
        parsed = enricher.validate_date_tokens(df, ["order_date"])

        assert kept["order_date"].to_list() == ["20231301"]
        assert parsed["order_date"].to_list() == [None]

    def test_each_date_field_is_validated_independently(self, enricher):
        df = pl.DataFrame({
            "order_date": ["20230105"],
            "ship_date": ["0"],
            "due_date": ["020230117"],
        })

        result = enricher.validate_date_tokens(df, ["order_date", "ship_date", "due_date"])

        assert result.row(0) == (date(2023, 1, 5), None, None)


class TestValidityIntervals:
    """Product end date derivation"""

    def test_end_date_is_next_start_minus_one_day(self, enricher):
        df = pl.DataFrame({
            "product_key": ["AB-1234", "AB-1234"],
            "start_date": [date(2021, 1, 1), date(2022, 1, 1)],
            "end_date": [None, None],
        }, schema_overrides={"end_date": pl.Date})

        result = enricher.derive_validity_intervals(df)

        assert result["end_date"].to_list() == [date(2021, 12, 31), None]

    def test_versions_ordered_by_start_not_arrival(self, enricher):
        df = pl.DataFrame({
            "product_key": ["K", "K", "K", "Z"],
            "start_date": [date(2022, 1, 1), date(2020, 1, 1), date(2021, 1, 1), date(2020, 5, 5)],
        })

        result = enricher.derive_validity_intervals(df)

        assert result["start_date"].to_list() == df["start_date"].to_list()
        assert result["end_date"].to_list() == [None, date(2020, 12, 31), date(2021, 12, 31), None]
        assert result["end_date"].dtype == pl.Date


class TestSalesRepair:
    """Sales reconciliation and price backfill"""

    def _sales(self, sales, quantity, price) -> pl.DataFrame:
        return pl.DataFrame(
            {"sales": sales, "quantity": quantity, "price": price},
            schema={"sales": pl.Float64, "quantity": pl.Int64, "price": pl.Float64},
        )

    def test_zero_sales_recomputed(self, enricher):
        result = enricher.reconcile_sales(self._sales([0.0], [3], [10.0]))

        assert result["sales"].to_list() == [30.0]

    def test_inconsistent_sales_recomputed_with_absolute_price(self, enricher):
        result = enricher.reconcile_sales(self._sales([40.0, -5.0], [2, 2], [-10.0, 10.0]))

        assert result["sales"].to_list() == [20.0, 20.0]

    def test_consistent_sales_preserved(self, enricher):
        result = enricher.reconcile_sales(self._sales([4342.0], [2], [2171.0]))

        assert result["sales"].to_list() == [4342.0]

    def test_missing_price_backfilled_from_sales(self, enricher):
        df = enricher.reconcile_sales(self._sales([100.0], [5], [None]))

        result = enricher.backfill_prices(df)

        assert result.row(0) == (100.0, 5, 20.0)

    def test_backfill_guards_zero_quantity(self, enricher):
        result = enricher.backfill_prices(self._sales([10.0], [0], [None]))

        assert result["price"].to_list() == [None]

    def test_negative_price_backfilled_after_reconciliation(self, enricher):
        df = self._sales([50.0], [2], [-25.0])

        result = enricher.backfill_prices(enricher.reconcile_sales(df))

        assert result.row(0) == (50.0, 2, 25.0)

    def test_sales_within_tolerance_preserved(self, enricher):
        result = enricher.reconcile_sales(self._sales([9.9, 10.0], [3, 3], [3.3, 3.3]))

        assert result["sales"][0] == 9.9
        assert result["sales"][1] == pytest.approx(9.9)

    def test_negative_quantity_never_yields_negative_money(self, enricher):
        df = self._sales([50.0, None, 12.0], [-5, -2, -3], [None, 4.0, -4.0])

        result = enricher.backfill_prices(enricher.reconcile_sales(df))

        assert result.rows() == [(50.0, -5, 10.0), (8.0, -2, 4.0), (12.0, -3, 4.0)]
        assert (result["sales"] >= 0).all()
        assert (result["price"] >= 0).all()

    def test_positive_price_kept(self, enricher):
        result = enricher.backfill_prices(self._sales([30.0], [3], [10.0]))

        assert result["price"].to_list() == [10.0]


class TestReferenceTime:
    """Rules relative to the run's reference time"""

    def test_future_birthdates_nulled(self, enricher):
        df = pl.DataFrame({"birthdate": [date(1980, 5, 5), date(2024, 1, 15), date(2030, 1, 1)]})

        result = enricher.null_future_dates(df, ["birthdate"])

        assert result["birthdate"].to_list() == [date(1980, 5, 5), date(2024, 1, 15), None]

    def test_load_metadata_is_reference_time(self, enricher, reference_time):
        result = enricher.add_load_metadata(pl.DataFrame({"a": [1, 2]}))

        assert result["dwh_load_time"].to_list() == [reference_time, reference_time]

    def test_floor_monetary(self, enricher):
        df = pl.DataFrame({"product_cost": [-12.0, 0.0, 5.0]})

        result = enricher.floor_monetary(df, ["product_cost"])

        assert result["product_cost"].to_list() == [0.0, 0.0, 5.0]

    def test_enricher_never_reads_wall_clock(self):
        past = DataEnricher(datetime(2000, 1, 1))
        df = pl.DataFrame({"birthdate": [date(2010, 1, 1)]})

        assert past.null_future_dates(df, ["birthdate"])["birthdate"].to_list() == [None]
