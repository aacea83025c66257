"""
Prefect Workflow Orchestration - Warehouse ETL

Scheduled full-snapshot rebuild of the warehouse:
- Staging read with retries (the source loader may still be writing)
- Silver and gold builds with layer contract checks
- Alerting on completion and failure
"""

from datetime import datetime
from typing import Dict, Optional

import polars as pl
from prefect import flow, task, get_run_logger
from prefect.cache_policies import NO_CACHE

from warehouse.ingestion import StagingLoader
from warehouse.pipeline import WarehousePipeline
from warehouse.schemas import Entity


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_staging",
    description="Read the six source extracts from the staging area",
    retries=3,
    retry_delay_seconds=60,
    cache_policy=NO_CACHE,
)
def load_staging(staging_path: str) -> Dict[Entity, pl.DataFrame]:
    logger = get_run_logger()

    tables, results = StagingLoader(staging_path).load_all()

    logger.info(f"Staging read: {sum(r.rows_loaded for r in results.values())} rows from {len(results)} extracts")
    return tables


@task(
    name="build_silver",
    description="Clean, deduplicate and enrich every entity; replace the silver layer",
    cache_policy=NO_CACHE,
)
async def build_silver(
    pipeline: WarehousePipeline,
    staging: Dict[Entity, pl.DataFrame],
) -> Dict[Entity, pl.DataFrame]:
    logger = get_run_logger()

    silver, results, validation = await pipeline.build_silver(staging)
    pipeline.silver_store.replace_all(
        {entity.value: df for entity, df in silver.items()},
        reference_time=pipeline.reference_time,
    )

    warnings = sum(v.warning_count for v in validation.values())
    logger.info(f"Silver layer replaced: {sum(r.output_rows for r in results.values())} rows, {warnings} warnings")
    return silver


@task(
    name="build_gold",
    description="Assemble the star schema; replace the gold layer",
    cache_policy=NO_CACHE,
)
def build_gold(pipeline: WarehousePipeline, silver: Dict[Entity, pl.DataFrame]) -> Dict[str, int]:
    logger = get_run_logger()

    gold, validation = pipeline.build_gold(silver)
    tables = {table.value: df for table, df in gold.tables().items()}
    pipeline.gold_store.replace_all(tables, reference_time=pipeline.reference_time)

    rows = {name: df.height for name, df in tables.items()}
    logger.info(f"Gold layer replaced: {rows}")
    return rows


@task(
    name="send_alert",
    description="Send alert notification",
)
def send_alert(alert_type: str, message: str, severity: str = "info") -> None:
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="warehouse_etl",
    description="Full rebuild of the CRM/ERP warehouse: staging -> silver -> gold",
)
async def warehouse_etl(
    reference_time: Optional[datetime] = None,
    staging_path: Optional[str] = None,
) -> dict:
    """
    Warehouse batch run.

    Steps:
    1. Read staging (retried)
    2. Build and replace silver
    3. Build and replace gold
    4. Send completion notification
    """
    logger = get_run_logger()

    pipeline = WarehousePipeline(reference_time=reference_time, staging_path=staging_path)
    logger.info(f"Starting warehouse ETL with reference time {pipeline.reference_time.isoformat()}")

    results = {"reference_time": pipeline.reference_time.isoformat()}

    try:
        staging = load_staging(str(pipeline.staging_path))
        silver = await build_silver(pipeline, staging)
        results["gold_rows"] = build_gold(pipeline, silver)

        send_alert(
            alert_type="Warehouse ETL Complete",
            message=f"Gold layer rebuilt: {results['gold_rows']}",
        )
        results["status"] = "success"

    except Exception as e:
        logger.error(f"Warehouse ETL failed: {e}")
        send_alert(
            alert_type="Warehouse ETL Failed",
            message=str(e),
            severity="critical",
        )
        raise

    return results


if __name__ == "__main__":
    import asyncio

    asyncio.run(warehouse_etl())
