"""
Silver Transformer

Builds the conformed layer: cleaning, deduplication and enrichment per
entity, then conformance to the silver column contract.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import polars as pl
import structlog

from warehouse.schemas import Entity, SILVER_SCHEMAS, silver_columns
from .cleaners import DataCleaner
from .dedup import DeduplicationResolver
from .enrichers import DataEnricher

logger = structlog.get_logger(__name__)


@dataclass
class TransformResult:
    """Result of one entity transformation"""
    entity: Entity
    input_rows: int
    output_rows: int
    rows_dropped: int
    duplicates_removed: int
    null_key_rows: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    warnings: List[str] = field(default_factory=list)


class SilverTransformer:
    """
    Staging → silver pipeline stage.

    Entities are independent of each other, so `run` may transform them
    concurrently; every entity shares the same reference time.

    Example:
        transformer = SilverTransformer(reference_time=reference_time)
        silver, results = await transformer.run(staging_tables)
    """

    def __init__(
        self,
        reference_time: datetime,
        parallel: bool = True,
        cleaner: Optional[DataCleaner] = None,
    ):
        self.reference_time = reference_time
        self.parallel = parallel
        self.cleaner = cleaner or DataCleaner()
        self.resolver = DeduplicationResolver()
        self.enricher = DataEnricher(reference_time)

        self._enrichment: Dict[Entity, Callable[[pl.DataFrame], pl.DataFrame]] = {
            Entity.CRM_PRODUCTS: self.enricher.enrich_crm_products,
            Entity.CRM_SALES: self.enricher.enrich_crm_sales,
            Entity.ERP_CUSTOMERS: self.enricher.enrich_erp_customers,
        }

    def _conform(self, df: pl.DataFrame, entity: Entity) -> pl.DataFrame:
        """Cast to the silver schema and fix column order"""
        schema = SILVER_SCHEMAS[entity]
        df = df.with_columns([pl.col(col).cast(dtype) for col, dtype in schema.items()])
        return self.enricher.add_load_metadata(df).select(silver_columns(entity))

    def transform_entity(self, df: pl.DataFrame, entity: Entity) -> Tuple[pl.DataFrame, TransformResult]:
        """
        Transform one raw table into its silver table.

        Pipeline:
        1. Clean (row-local repairs, same cardinality)
        2. Drop null business keys and collapse duplicates
        3. Enrich (cross-row and cross-field derivations)
        4. Conform to the silver contract
        """
        started_at = datetime.now()
        input_rows = df.height

        logger.info("Starting silver transformation", entity=entity.value, input_rows=input_rows)

        try:
            df = self.cleaner.clean(df, entity)
            df, dedup_stats = self.resolver.resolve_entity(df, entity)

            enrich = self._enrichment.get(entity)
            if enrich is not None:
                df = enrich(df)

            df = self._conform(df, entity)
        except Exception as e:
            logger.error("Silver transformation failed", entity=entity.value, error=str(e))
            raise

        completed_at = datetime.now()
        result = TransformResult(
            entity=entity,
            input_rows=input_rows,
            output_rows=df.height,
            rows_dropped=input_rows - df.height,
            duplicates_removed=dedup_stats.duplicates_removed,
            null_key_rows=dedup_stats.null_key_rows,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
        )

        logger.info(
            "Silver transformation complete",
            entity=entity.value,
            output_rows=result.output_rows,
            rows_dropped=result.rows_dropped,
        )
        return df, result

    async def run(
        self,
        staging: Dict[Entity, pl.DataFrame],
    ) -> Tuple[Dict[Entity, pl.DataFrame], Dict[Entity, TransformResult]]:
        """
        Transform every staging table.

        Args:
            staging: Raw tables keyed by entity

        Returns:
            (silver tables, transformation results), both keyed by entity
        """
        entities = [entity for entity in Entity if entity in staging]
        logger.info("Building silver layer", entities=[e.value for e in entities], parallel=self.parallel)

        if self.parallel:
            outcomes = await asyncio.gather(*[
                asyncio.to_thread(self.transform_entity, staging[entity], entity)
                for entity in entities
            ])
        else:
            outcomes = [self.transform_entity(staging[entity], entity) for entity in entities]

        silver = {entity: table for entity, (table, _) in zip(entities, outcomes)}
        results = {entity: result for entity, (_, result) in zip(entities, outcomes)}

        total_input = sum(r.input_rows for r in results.values())
        total_output = sum(r.output_rows for r in results.values())
        logger.info("Silver layer built", input_rows=total_input, output_rows=total_output)

        return silver, results
