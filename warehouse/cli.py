"""
Command line entry point

Usage:
    crm-erp-warehouse run --reference-time 2024-01-01T00:00:00
    crm-erp-warehouse generate --output ./data/staging --customers 500
    crm-erp-warehouse report customers --limit 20
"""

import argparse
import asyncio
import sys
from datetime import datetime
from typing import Callable, Dict, List, Optional

import polars as pl
import structlog

from warehouse import analytics
from warehouse.config import get_settings
from warehouse.config.logging import configure_logging
from warehouse.data import StagingDataGenerator
from warehouse.exceptions import WarehouseError
from warehouse.pipeline import WarehousePipeline, resolve_reference_time
from warehouse.schemas import GoldTable
from warehouse.storage import LayerStore

logger = structlog.get_logger(__name__)


def _parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Not an ISO-8601 timestamp: {value}") from e


def _gold_views(reference_time: datetime) -> Dict[str, Callable[[Dict[str, pl.DataFrame]], pl.DataFrame]]:
    fact = GoldTable.FACT_SALES.value
    customers = GoldTable.DIM_CUSTOMERS.value
    products = GoldTable.DIM_PRODUCTS.value
    return {
        "customers": lambda g: analytics.customer_report(g[fact], g[customers], reference_time),
        "products": lambda g: analytics.product_report(g[fact], g[products], reference_time),
        "sales-by-month": lambda g: analytics.sales_over_time(g[fact], "month"),
        "sales-by-year": lambda g: analytics.sales_over_time(g[fact], "year"),
        "customer-segments": lambda g: analytics.part_to_whole(
            analytics.segment_customers(g[fact], g[customers]), "customer_tier", "total_spending"
        ),
        "cost-segments": lambda g: analytics.segment_products_by_cost(g[products]),
        "category-share": lambda g: analytics.part_to_whole(
            analytics.sales_with_dimensions(g[fact], g[customers], g[products]), "category", "sales_amount"
        ),
        "top-customers": lambda g: analytics.top_n_per_period(
            analytics.sales_with_dimensions(g[fact], g[customers], g[products]).with_columns(
                pl.col("order_date").dt.year().alias("order_year")
            ),
            "sales_amount",
            "order_year",
            ["customer_key", "customer_name"],
        ),
    }


REPORTS = [
    "customers", "products", "sales-by-month", "sales-by-year",
    "customer-segments", "cost-segments", "category-share", "top-customers",
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-erp-warehouse",
        description="CRM/ERP sales warehouse: staging -> silver -> gold",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "text"], default=None, help="Override LOG_FORMAT")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Rebuild the silver and gold layers from staging")
    run.add_argument("--reference-time", type=_parse_time, default=None,
                     help="Pinned 'now' for the run (ISO-8601); defaults to PIPELINE_REFERENCE_TIME or current UTC")
    run.add_argument("--staging-path", default=None)
    run.add_argument("--silver-path", default=None)
    run.add_argument("--gold-path", default=None)

    generate = commands.add_parser("generate", help="Write synthetic source extracts to the staging area")
    generate.add_argument("--output", default=None, help="Staging directory")
    generate.add_argument("--customers", type=int, default=500)
    generate.add_argument("--products", type=int, default=60)
    generate.add_argument("--orders", type=int, default=2000)
    generate.add_argument("--seed", type=int, default=42)

    report = commands.add_parser("report", help="Print an analytical view of the gold layer")
    report.add_argument("view", choices=REPORTS)
    report.add_argument("--gold-path", default=None)
    report.add_argument("--reference-time", type=_parse_time, default=None)
    report.add_argument("--limit", type=int, default=20, help="Rows to print")

    return parser


def cmd_run(args: argparse.Namespace) -> int:
    pipeline = WarehousePipeline(
        reference_time=args.reference_time,
        staging_path=args.staging_path,
        silver_path=args.silver_path,
        gold_path=args.gold_path,
    )
    result = asyncio.run(pipeline.run())

    print(f"Run {result.run_id} completed in {result.duration_seconds:.2f}s "
          f"(reference time {result.reference_time.isoformat()})")
    for entity, transform in result.silver_results.items():
        print(f"  silver.{entity.value}: {transform.input_rows} -> {transform.output_rows} rows "
              f"({transform.duplicates_removed} duplicates, {transform.null_key_rows} null keys)")
    for table, rows in result.gold_rows.items():
        print(f"  gold.{table}: {rows} rows")
    if result.warning_count:
        print(f"  {result.warning_count} data quality warnings")
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    generator = StagingDataGenerator(output_dir=args.output, seed=args.seed)
    data = generator.generate_all(
        n_customers=args.customers,
        n_products=args.products,
        n_orders=args.orders,
    )
    print(f"Staging data written to {generator.output_dir}")
    for entity, df in data.items():
        print(f"  {entity.raw_table}: {df.height} rows")
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = LayerStore(args.gold_path or settings.data_lake.gold_path, "gold")
    gold = store.read_all()

    reference_time = resolve_reference_time(args.reference_time, settings)
    view = _gold_views(reference_time)[args.view](gold)

    with pl.Config(tbl_rows=args.limit, tbl_cols=-1, tbl_width_chars=200):
        print(view.head(args.limit))
    return 0


COMMANDS = {
    "run": cmd_run,
    "generate": cmd_generate,
    "report": cmd_report,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    try:
        return COMMANDS[args.command](args)
    except WarehouseError as e:
        logger.error("Command failed", command=args.command, **e.to_dict())
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
