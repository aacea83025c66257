"""
Warehouse Pipeline

Staging → silver → gold in one batch run. Each layer is built completely,
checked, and replaced as a whole before the next stage reads it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import polars as pl
import structlog

from warehouse.config import Settings, get_settings
from warehouse.dimensional import DimensionalAssembler, GoldModel
from warehouse.exceptions import DataContractError
from warehouse.ingestion import StagingLoader
from warehouse.quality import (
    ValidationResult,
    contract_failures,
    create_gold_validators,
    create_silver_validators,
    run_validators,
)
from warehouse.schemas import Entity
from warehouse.storage import LayerStore
from warehouse.transformation import DataCleaner, SilverTransformer, TransformResult

logger = structlog.get_logger(__name__)


def resolve_reference_time(
    reference_time: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> datetime:
    """
    The run's single "now": argument, then PIPELINE_REFERENCE_TIME, then the
    current time. Aware values are converted to naive UTC.
    """
    settings = settings or get_settings()
    resolved = reference_time or settings.pipeline.reference_time or datetime.now(timezone.utc)
    if resolved.tzinfo is not None:
        resolved = resolved.astimezone(timezone.utc).replace(tzinfo=None)
    return resolved


@dataclass
class PipelineRunResult:
    """Outcome of one pipeline run"""
    run_id: str
    reference_time: datetime
    silver_results: Dict[Entity, TransformResult] = field(default_factory=dict)
    silver_validation: Dict[str, ValidationResult] = field(default_factory=dict)
    gold_validation: Dict[str, ValidationResult] = field(default_factory=dict)
    gold_rows: Dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    silver_path: Optional[str] = None
    gold_path: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def warning_count(self) -> int:
        results = list(self.silver_validation.values()) + list(self.gold_validation.values())
        return sum(r.warning_count for r in results)


class WarehousePipeline:
    """
    Full-snapshot warehouse build.

    Example:
        pipeline = WarehousePipeline(reference_time=datetime(2024, 1, 1))
        result = await pipeline.run()

        # in memory, without the layer stores
        silver, gold, result = await pipeline.run_frames(staging_tables)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        reference_time: Optional[datetime] = None,
        staging_path: Optional[str] = None,
        silver_path: Optional[str] = None,
        gold_path: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.reference_time = resolve_reference_time(reference_time, self.settings)

        lake = self.settings.data_lake
        self.staging_path = staging_path or lake.staging_path
        self.silver_store = LayerStore(silver_path or lake.silver_path, "silver", lake.compression)
        self.gold_store = LayerStore(gold_path or lake.gold_path, "gold", lake.compression)

        master_data = self.settings.master_data
        self.transformer = SilverTransformer(
            reference_time=self.reference_time,
            parallel=self.settings.pipeline.parallel_entities,
            cleaner=DataCleaner(fallback=master_data.fallback_value),
        )
        self.assembler = DimensionalAssembler(
            precedence=master_data.attribute_precedence,
            fallback=master_data.fallback_value,
        )

    def _enforce(self, layer: str, results: Dict[str, ValidationResult]) -> None:
        failures = contract_failures(results)
        if not failures:
            return
        if self.settings.pipeline.enforce_contracts:
            raise DataContractError(layer, failures)
        logger.warning("Layer contract violations ignored", layer=layer, failed_checks=failures)

    async def build_silver(
        self,
        staging: Dict[Entity, pl.DataFrame],
    ) -> Tuple[Dict[Entity, pl.DataFrame], Dict[Entity, TransformResult], Dict[str, ValidationResult]]:
        """Transform and check every staging table"""
        silver, results = await self.transformer.run(staging)

        validation = run_validators(create_silver_validators(silver), silver)
        self._enforce("silver", validation)
        return silver, results, validation

    def build_gold(
        self,
        silver: Dict[Entity, pl.DataFrame],
    ) -> Tuple[GoldModel, Dict[str, ValidationResult]]:
        """Assemble and check the star schema"""
        gold = self.assembler.assemble(silver)

        tables = gold.tables()
        validation = run_validators(create_gold_validators(tables), tables)
        self._enforce("gold", validation)
        return gold, validation

    async def run_frames(
        self,
        staging: Dict[Entity, pl.DataFrame],
    ) -> Tuple[Dict[Entity, pl.DataFrame], GoldModel, PipelineRunResult]:
        """Run both stages in memory; nothing is persisted"""
        result = PipelineRunResult(run_id=uuid.uuid4().hex, reference_time=self.reference_time)

        with structlog.contextvars.bound_contextvars(
            run_id=result.run_id,
            reference_time=self.reference_time.isoformat(),
        ):
            silver, result.silver_results, result.silver_validation = await self.build_silver(staging)
            gold, result.gold_validation = self.build_gold(silver)

        result.gold_rows = {table.value: df.height for table, df in gold.tables().items()}
        result.completed_at = datetime.now()
        return silver, gold, result

    async def run(self) -> PipelineRunResult:
        """
        Staging store → silver store → gold store.

        Each layer is replaced as a whole; a failure leaves the previous
        content of the layer being written in place.

        Raises:
            StagingUnavailableError: staging area or an extract is missing
            DataContractError: an ERROR-level check failed
            LayerWriteError: a layer could not be materialized
        """
        result = PipelineRunResult(run_id=uuid.uuid4().hex, reference_time=self.reference_time)

        with structlog.contextvars.bound_contextvars(
            run_id=result.run_id,
            reference_time=self.reference_time.isoformat(),
        ):
            logger.info("Pipeline run started", staging_path=str(self.staging_path))

            try:
                staging, _ = StagingLoader(self.staging_path, self.settings.staging).load_all()

                silver, result.silver_results, result.silver_validation = await self.build_silver(staging)
                self.silver_store.replace_all(
                    {entity.value: df for entity, df in silver.items()},
                    reference_time=self.reference_time,
                )
                result.silver_path = str(self.silver_store.path)

                gold, result.gold_validation = self.build_gold(silver)
                gold_tables = {table.value: df for table, df in gold.tables().items()}
                self.gold_store.replace_all(gold_tables, reference_time=self.reference_time)
                result.gold_path = str(self.gold_store.path)
            except Exception as e:
                logger.error("Pipeline run failed", error=str(e), error_type=type(e).__name__)
                raise

            result.gold_rows = {name: df.height for name, df in gold_tables.items()}
            result.completed_at = datetime.now()

            logger.info(
                "Pipeline run completed",
                duration_seconds=result.duration_seconds,
                gold_rows=result.gold_rows,
                warnings=result.warning_count,
            )

        return result
