"""
Analytical Views Module
"""
from .views import (
    band,
    compare_to_average,
    customer_report,
    customer_tier,
    months_between,
    moving_average,
    part_to_whole,
    period_over_period,
    product_report,
    product_tier,
    running_total,
    sales_over_time,
    sales_with_dimensions,
    segment_customers,
    segment_products_by_cost,
    top_n_per_period,
    yearly_product_performance,
)

__all__ = [
    "band",
    "compare_to_average",
    "customer_report",
    "customer_tier",
    "months_between",
    "moving_average",
    "part_to_whole",
    "period_over_period",
    "product_report",
    "product_tier",
    "running_total",
    "sales_over_time",
    "sales_with_dimensions",
    "segment_customers",
    "segment_products_by_cost",
    "top_n_per_period",
    "yearly_product_performance",
]
