"""
Data Enrichment Module

Derives and repairs fields that need more than a single raw value.
Includes:
- Textual date token validation (YYYYMMDD)
- Product validity intervals from successive start dates
- Sales reconciliation and price backfill
- Future date guard against the run's reference time

All "now"-relative rules read the reference time given at construction;
the wall clock is never consulted.
"""

from datetime import datetime
from typing import List

import polars as pl
import structlog

from warehouse.schemas import LOAD_TIME_COLUMN

logger = structlog.get_logger(__name__)

# Eight digits, no leading zero
DATE_TOKEN_PATTERN = r"^[1-9][0-9]{7}$"
DATE_TOKEN_FORMAT = "%Y%m%d"

# Stored sales within a cent of quantity * |price| count as consistent
SALES_TOLERANCE = 0.01


def valid_date_token(column: str) -> pl.Expr:
    """
    Keep a date token only if its trimmed text is exactly eight digits with a
    non-zero value; otherwise null. The result is the token text.

    The rule reads the raw text, so "020230101" and "20230101.0" fail.
    Calendar validity is not part of the rule: "20231301" passes.
    """
    token = pl.col(column).cast(pl.Utf8).str.strip_chars()
    return (
        pl.when(token.str.contains(DATE_TOKEN_PATTERN))
        .then(token)
        .otherwise(None)
    )


def expected_sales(quantity: str = "quantity", price: str = "price") -> pl.Expr:
    """quantity * |price|, with the quantity sign ignored too"""
    return pl.col(quantity).abs() * pl.col(price).abs()


def token_to_date(token: pl.Expr) -> pl.Expr:
    """Parse a YYYYMMDD token; impossible calendar dates yield null"""
    return token.cast(pl.Utf8).str.to_date(DATE_TOKEN_FORMAT, strict=False)


class DataEnricher:
    """
    Enrichment engine for the normalized silver tables.

    Example:
        enricher = DataEnricher(reference_time=run_started_at)
        sales = enricher.enrich_crm_sales(sales)
    """

    def __init__(self, reference_time: datetime):
        self.reference_time = reference_time

    @property
    def reference_date(self):
        return self.reference_time.date()

    def validate_date_tokens(self, df: pl.DataFrame, columns: List[str]) -> pl.DataFrame:
        """Apply the date token rule to each column independently and parse"""
        return df.with_columns([
            token_to_date(valid_date_token(col)).alias(col)
            for col in columns
            if col in df.columns
        ])

    def derive_validity_intervals(
        self,
        df: pl.DataFrame,
        key: str = "product_key",
        start: str = "start_date",
        end: str = "end_date",
    ) -> pl.DataFrame:
        """
        Derive `end` as the next version's start date minus one day.

        Versions are ordered by start date within each key; the newest
        version gets a null end date. Row order is preserved.
        """
        return (
            df.with_row_index("_position")
            .sort([key, start, "_position"], nulls_last=True)
            .with_columns(
                pl.col(start).shift(-1).over(key).dt.offset_by("-1d").alias(end)
            )
            .sort("_position")
            .drop("_position")
        )

    def reconcile_sales(
        self,
        df: pl.DataFrame,
        sales: str = "sales",
        quantity: str = "quantity",
        price: str = "price",
    ) -> pl.DataFrame:
        """
        Recompute sales as |quantity| * |price| when the stored value is null,
        non-positive, or off the formula by more than SALES_TOLERANCE.
        """
        expected = expected_sales(quantity, price)
        needs_repair = (
            pl.col(sales).is_null()
            | (pl.col(sales) <= 0)
            | ((pl.col(sales) - expected).abs() > SALES_TOLERANCE).fill_null(False)
        )

        return df.with_columns(
            pl.when(needs_repair)
            .then(expected)
            .otherwise(pl.col(sales))
            .cast(pl.Float64)
            .alias(sales)
        )

    def backfill_prices(
        self,
        df: pl.DataFrame,
        sales: str = "sales",
        quantity: str = "quantity",
        price: str = "price",
    ) -> pl.DataFrame:
        """Derive missing or non-positive prices as |sales / quantity|"""
        safe_quantity = pl.when(pl.col(quantity) != 0).then(pl.col(quantity))

        return df.with_columns(
            pl.when(pl.col(price).is_null() | (pl.col(price) <= 0))
            .then((pl.col(sales) / safe_quantity).abs())
            .otherwise(pl.col(price))
            .cast(pl.Float64)
            .alias(price)
        )

    def null_future_dates(self, df: pl.DataFrame, columns: List[str]) -> pl.DataFrame:
        """Null dates strictly later than the reference date"""
        return df.with_columns([
            pl.when(pl.col(col) > pl.lit(self.reference_date))
            .then(None)
            .otherwise(pl.col(col))
            .alias(col)
            for col in columns
            if col in df.columns
        ])

    def floor_monetary(self, df: pl.DataFrame, columns: List[str], floor: float = 0.0) -> pl.DataFrame:
        """Replace negative amounts with the floor"""
        return df.with_columns([
            pl.when(pl.col(col) < floor).then(pl.lit(floor)).otherwise(pl.col(col)).alias(col)
            for col in columns
            if col in df.columns
        ])

    def add_load_metadata(self, df: pl.DataFrame) -> pl.DataFrame:
        """Stamp rows with the run's reference time"""
        return df.with_columns(
            pl.lit(self.reference_time, dtype=pl.Datetime("us")).alias(LOAD_TIME_COLUMN)
        )

    def enrich_crm_products(self, df: pl.DataFrame) -> pl.DataFrame:
        df = self.floor_monetary(df, ["product_cost"])
        return self.derive_validity_intervals(df)

    def enrich_crm_sales(self, df: pl.DataFrame) -> pl.DataFrame:
        """Validate date tokens, then reconcile sales before backfilling price"""
        df = self.validate_date_tokens(df, ["order_date", "ship_date", "due_date"])
        df = self.reconcile_sales(df)
        return self.backfill_prices(df)

    def enrich_erp_customers(self, df: pl.DataFrame) -> pl.DataFrame:
        return self.null_future_dates(df, ["birthdate"])
