"""
Analytical Views

Read-side aggregations over the gold star schema: trends over time,
cumulative and moving measures, period comparisons, contribution ratios,
rankings, segmentation and the customer/product reports.

Every "now"-relative value (age, recency) is computed against the
reference time passed in; the wall clock is never read here.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple, Union

import polars as pl
import structlog

from warehouse.config import get_settings
from warehouse.config.settings import AnalyticsSettings

logger = structlog.get_logger(__name__)

ColumnRef = Union[str, pl.Expr]

GRAIN_INTERVALS = {"month": "1mo", "year": "1y"}


def _analytics(settings: Optional[AnalyticsSettings]) -> AnalyticsSettings:
    return settings or get_settings().analytics


def _as_date(reference_time: Union[date, datetime]) -> date:
    if isinstance(reference_time, datetime):
        return reference_time.date()
    return reference_time


def months_between(start: pl.Expr, end: pl.Expr) -> pl.Expr:
    """
    Whole calendar months from `start` to `end`.

    Years * 12 + months, one less when the end day-of-month precedes the
    start's (2023-01-31 -> 2023-02-28 is 0 months).
    """
    years = end.dt.year().cast(pl.Int64) - start.dt.year().cast(pl.Int64)
    months = end.dt.month().cast(pl.Int64) - start.dt.month().cast(pl.Int64)
    borrow = (end.dt.day() < start.dt.day()).cast(pl.Int64)
    return years * 12 + months - borrow


def band(
    column: pl.Expr,
    bounds: Sequence[Tuple[float, str]],
    overflow: str,
) -> pl.Expr:
    """Label values by exclusive upper bounds; nulls stay null"""
    expr = None
    for upper, label in bounds:
        condition = column < upper
        expr = pl.when(condition).then(pl.lit(label)) if expr is None else expr.when(condition).then(pl.lit(label))

    labelled = pl.lit(overflow) if expr is None else expr.otherwise(pl.lit(overflow))
    return pl.when(column.is_null()).then(pl.lit(None, dtype=pl.Utf8)).otherwise(labelled)


def customer_tier(spend: pl.Expr, lifespan: pl.Expr, settings: Optional[AnalyticsSettings] = None) -> pl.Expr:
    """VIP / Regular / New by lifetime spend and lifespan in months"""
    cfg = _analytics(settings)
    tenured = lifespan >= cfg.tenure_months_threshold
    return (
        pl.when(tenured & (spend >= cfg.vip_spend_threshold)).then(pl.lit("VIP Customer"))
        .when(tenured & (spend < cfg.vip_spend_threshold)).then(pl.lit("Regular Customer"))
        .otherwise(pl.lit("New Customer"))
    )


def product_tier(total_sales: pl.Expr, settings: Optional[AnalyticsSettings] = None) -> pl.Expr:
    cfg = _analytics(settings)
    return (
        pl.when(total_sales > cfg.high_performer_threshold).then(pl.lit("High Performer"))
        .when(total_sales >= cfg.mid_performer_threshold).then(pl.lit("Mid Performer"))
        .otherwise(pl.lit("Low Performer"))
    )


def _distinct(column: str) -> pl.Expr:
    """COUNT(DISTINCT) semantics: nulls are not counted"""
    return pl.col(column).drop_nulls().n_unique()


def sales_with_dimensions(
    fact: pl.DataFrame,
    dim_customers: pl.DataFrame,
    dim_products: pl.DataFrame,
) -> pl.DataFrame:
    """Fact lines with customer and product attributes for slicing"""
    customers = dim_customers.select([
        "customer_key",
        pl.concat_str(["first_name", "last_name"], separator=" ", ignore_nulls=True).alias("customer_name"),
        "country",
        "gender",
    ])
    products = dim_products.select(["product_key", "product_name", "category", "subcategory", "cost"])
    return (
        fact.join(customers, on="customer_key", how="left")
        .join(products, on="product_key", how="left")
    )


def sales_over_time(fact: pl.DataFrame, grain: str = "month") -> pl.DataFrame:
    """
    Sales, distinct customers and quantity per month or year.

    Lines without an order date are excluded.
    """
    if grain not in GRAIN_INTERVALS:
        raise ValueError(f"Unsupported grain '{grain}', expected one of {list(GRAIN_INTERVALS)}")

    return (
        fact.filter(pl.col("order_date").is_not_null())
        .group_by(pl.col("order_date").dt.truncate(GRAIN_INTERVALS[grain]).alias("period"))
        .agg([
            pl.col("sales_amount").sum().alias("total_sales"),
            _distinct("customer_key").alias("total_customers"),
            pl.col("quantity").sum().alias("total_quantity"),
        ])
        .sort("period")
    )


def running_total(
    df: pl.DataFrame,
    value: str,
    order_by: str,
    reset_by: Optional[ColumnRef] = None,
    alias: str = "running_total",
) -> pl.DataFrame:
    """Cumulative sum in `order_by` order, restarting for each `reset_by` value"""
    cumulative = pl.col(value).cum_sum()
    if reset_by is not None:
        cumulative = cumulative.over(reset_by)
    return df.sort(order_by).with_columns(cumulative.alias(alias))


def moving_average(
    df: pl.DataFrame,
    value: str,
    order_by: str,
    window: Optional[int] = None,
    alias: str = "moving_average",
) -> pl.DataFrame:
    """Trailing mean over the current row and the `window - 1` rows before it"""
    size = window or get_settings().analytics.moving_average_window
    return df.sort(order_by).with_columns(
        pl.col(value).rolling_mean(window_size=size, min_samples=1).round(2).alias(alias)
    )


def period_over_period(
    df: pl.DataFrame,
    value: str,
    order_by: str,
    partition_by: Optional[ColumnRef] = None,
) -> pl.DataFrame:
    """
    Previous period's value, the difference, and its direction.

    The first period of each partition has no predecessor and is
    classified "No change".
    """
    previous = pl.col(value).shift(1)
    if partition_by is not None:
        previous = previous.over(partition_by)

    sort_keys: List[ColumnRef] = [order_by] if partition_by is None else [partition_by, order_by]
    difference = pl.col(value) - pl.col("previous_value")

    return (
        df.sort(sort_keys)
        .with_columns(previous.alias("previous_value"))
        .with_columns(difference.alias("difference"))
        .with_columns(
            pl.when(pl.col("difference") > 0).then(pl.lit("Increase"))
            .when(pl.col("difference") < 0).then(pl.lit("Decrease"))
            .otherwise(pl.lit("No change"))
            .alias("change")
        )
    )


def compare_to_average(df: pl.DataFrame, value: str, partition_by: ColumnRef) -> pl.DataFrame:
    """Each row against the mean of its partition"""
    average = pl.col(value).mean().over(partition_by)
    return (
        df.with_columns(average.round(2).alias("average_value"))
        .with_columns((pl.col(value) - average).round(2).alias("difference_average"))
        .with_columns(
            pl.when(pl.col("difference_average") > 0).then(pl.lit("Above Avg"))
            .when(pl.col("difference_average") < 0).then(pl.lit("Below Avg"))
            .otherwise(pl.lit("Avg"))
            .alias("average_change")
        )
    )


def part_to_whole(df: pl.DataFrame, group_by: Union[str, List[str]], value: str) -> pl.DataFrame:
    """Each group's total, the overall total and its percentage share"""
    return (
        df.group_by(group_by)
        .agg(pl.col(value).sum().alias("total"))
        .with_columns(pl.col("total").sum().alias("overall_total"))
        .with_columns(
            pl.when(pl.col("overall_total") != 0)
            .then((pl.col("total") / pl.col("overall_total") * 100).round(2))
            .alias("percentage_of_total")
        )
        .sort("total", descending=True, nulls_last=True)
    )


def top_n_per_period(
    df: pl.DataFrame,
    value: str,
    period: str,
    by: Union[str, List[str]],
    n: int = 5,
) -> pl.DataFrame:
    """
    Rank groups by summed `value` within each period and keep the top `n`.

    Ties are ordered by the grouping columns so ranks are reproducible.
    """
    keys = [by] if isinstance(by, str) else list(by)
    totals = (
        df.filter(pl.col(period).is_not_null())
        .group_by([period] + keys)
        .agg(pl.col(value).sum().alias(f"total_{value}"))
        .sort(
            [period, f"total_{value}"] + keys,
            descending=[False, True] + [False] * len(keys),
            nulls_last=True,
        )
    )
    return (
        totals.with_columns(pl.int_range(1, pl.len() + 1).over(period).alias("rank"))
        .filter(pl.col("rank") <= n)
        .sort([period, "rank"])
    )


def yearly_product_performance(fact: pl.DataFrame, dim_products: pl.DataFrame) -> pl.DataFrame:
    """Each product's yearly sales against its own average and its previous year"""
    yearly = (
        fact.filter(pl.col("order_date").is_not_null())
        .join(dim_products.select(["product_key", "product_name"]), on="product_key", how="left")
        .group_by([pl.col("order_date").dt.year().alias("order_year"), "product_name"])
        .agg(pl.col("sales_amount").sum().alias("current_sales"))
    )
    compared = compare_to_average(yearly, "current_sales", "product_name")
    return period_over_period(compared, "current_sales", "order_year", partition_by="product_name")


def segment_products_by_cost(
    dim_products: pl.DataFrame,
    settings: Optional[AnalyticsSettings] = None,
) -> pl.DataFrame:
    """Number of products per cost band, largest band first"""
    cfg = _analytics(settings)
    return (
        dim_products.with_columns(
            band(pl.col("cost"), cfg.cost_band_bounds, cfg.cost_band_overflow).alias("cost_range")
        )
        .group_by("cost_range")
        .agg(pl.col("product_key").count().alias("total_products"))
        .sort(["total_products", "cost_range"], descending=[True, False], nulls_last=True)
    )


def segment_customers(
    fact: pl.DataFrame,
    dim_customers: pl.DataFrame,
    settings: Optional[AnalyticsSettings] = None,
) -> pl.DataFrame:
    """Per-customer spend, lifespan and tier; only facts resolved to a customer count"""
    return (
        fact.join(dim_customers.select("customer_key"), on="customer_key", how="inner")
        .group_by("customer_key")
        .agg([
            pl.col("sales_amount").sum().alias("total_spending"),
            pl.col("order_date").min().alias("first_order"),
            pl.col("order_date").max().alias("last_order"),
        ])
        .with_columns(months_between(pl.col("first_order"), pl.col("last_order")).alias("lifespan"))
        .with_columns(customer_tier(pl.col("total_spending"), pl.col("lifespan"), settings).alias("customer_tier"))
        .sort("customer_key")
    )


def customer_report(
    fact: pl.DataFrame,
    dim_customers: pl.DataFrame,
    reference_time: Union[date, datetime],
    settings: Optional[AnalyticsSettings] = None,
) -> pl.DataFrame:
    """
    One row per customer with purchase behaviour and KPIs.

    Columns: identity, age and age bracket, customer tier, last order date,
    recency (months since last order), totals, lifespan, average order value
    and average monthly spend.
    """
    cfg = _analytics(settings)
    today = pl.lit(_as_date(reference_time))

    customers = dim_customers.select([
        "customer_key",
        "customer_number",
        pl.concat_str(["first_name", "last_name"], separator=" ", ignore_nulls=True).alias("customer_name"),
        (months_between(pl.col("birthdate"), today) // 12).alias("age"),
    ])

    report = (
        fact.filter(pl.col("order_date").is_not_null())
        .join(customers, on="customer_key", how="left")
        .group_by(["customer_key", "customer_number", "customer_name", "age"])
        .agg([
            _distinct("order_number").alias("total_orders"),
            pl.col("sales_amount").sum().alias("total_sales"),
            pl.col("quantity").sum().alias("total_quantity"),
            _distinct("product_key").alias("total_products"),
            pl.col("order_date").min().alias("first_order_date"),
            pl.col("order_date").max().alias("last_order_date"),
        ])
        .with_columns([
            band(pl.col("age"), cfg.age_brackets, cfg.age_bracket_overflow).alias("age_bracket"),
            months_between(pl.col("last_order_date"), today).alias("recency"),
            months_between(pl.col("first_order_date"), pl.col("last_order_date")).alias("lifespan"),
        ])
        .with_columns([
            customer_tier(pl.col("total_sales"), pl.col("lifespan"), cfg).alias("customer_tier"),
            pl.when(pl.col("total_orders") == 0).then(pl.lit(0.0))
            .otherwise(pl.col("total_sales") / pl.col("total_orders"))
            .round(2)
            .alias("avg_order_value"),
            pl.when(pl.col("lifespan") == 0).then(pl.col("total_sales"))
            .otherwise(pl.col("total_sales") / pl.col("lifespan"))
            .round(2)
            .alias("avg_monthly_spend"),
        ])
        .select([
            "customer_key", "customer_number", "customer_name", "age", "age_bracket",
            "customer_tier", "last_order_date", "recency", "total_orders", "total_sales",
            "total_quantity", "total_products", "lifespan", "avg_order_value",
            "avg_monthly_spend",
        ])
        .sort("customer_key", nulls_last=True)
    )

    logger.info("Built customer report", rows=report.height)
    return report


def product_report(
    fact: pl.DataFrame,
    dim_products: pl.DataFrame,
    reference_time: Union[date, datetime],
    settings: Optional[AnalyticsSettings] = None,
) -> pl.DataFrame:
    """One row per product with sales performance, tier and KPIs"""
    cfg = _analytics(settings)
    today = pl.lit(_as_date(reference_time))
    products = dim_products.select(["product_key", "product_name", "category", "subcategory", "cost"])

    unit_price = pl.when(pl.col("quantity") != 0).then(pl.col("sales_amount") / pl.col("quantity"))

    report = (
        fact.filter(pl.col("order_date").is_not_null())
        .join(products, on="product_key", how="left")
        .group_by(["product_key", "product_name", "category", "subcategory", "cost"])
        .agg([
            pl.col("order_date").min().alias("first_sale_date"),
            pl.col("order_date").max().alias("last_sale_date"),
            _distinct("order_number").alias("total_orders"),
            _distinct("customer_key").alias("total_customers"),
            pl.col("sales_amount").sum().alias("total_sales"),
            pl.col("quantity").sum().alias("total_quantity"),
            unit_price.mean().round(2).alias("avg_selling_price"),
        ])
        .with_columns([
            months_between(pl.col("last_sale_date"), today).alias("recency"),
            months_between(pl.col("first_sale_date"), pl.col("last_sale_date")).alias("lifespan"),
            product_tier(pl.col("total_sales"), cfg).alias("product_tier"),
        ])
        .with_columns([
            pl.when(pl.col("total_orders") == 0).then(pl.lit(0.0))
            .otherwise(pl.col("total_sales") / pl.col("total_orders"))
            .round(2)
            .alias("avg_order_revenue"),
            pl.when(pl.col("lifespan") == 0).then(pl.col("total_sales"))
            .otherwise(pl.col("total_sales") / pl.col("lifespan"))
            .round(2)
            .alias("avg_monthly_revenue"),
        ])
        .select([
            "product_key", "product_name", "category", "subcategory", "cost",
            "last_sale_date", "recency", "product_tier", "lifespan", "total_orders",
            "total_sales", "total_quantity", "total_customers", "avg_selling_price",
            "avg_order_revenue", "avg_monthly_revenue",
        ])
        .sort("product_key", nulls_last=True)
    )

    logger.info("Built product report", rows=report.height)
    return report
