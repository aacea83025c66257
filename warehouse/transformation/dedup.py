"""
Deduplication Resolver

Collapses raw versions of a business key into one canonical row: partition
by key, rank by recency (newest first), keep rank 1. Rows with a null
business key are discarded before ranking.

Tie-break: when recency is equal or missing, the row that arrived later in
the extract wins. Null recency ranks after any known recency.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import polars as pl
import structlog

from warehouse.schemas import Entity

logger = structlog.get_logger(__name__)

ARRIVAL_COLUMN = "_arrival"
RANK_COLUMN = "_rank"


@dataclass(frozen=True)
class DedupPolicy:
    """Business key and recency field of one entity"""
    business_key: List[str]
    recency: Optional[str] = None
    collapse: bool = True


@dataclass
class DedupStats:
    input_rows: int
    null_key_rows: int
    duplicates_removed: int
    output_rows: int


# Sales lines share an order number across lines, so they are keyed but not collapsed
DEDUP_POLICIES: Dict[Entity, DedupPolicy] = {
    Entity.CRM_CUSTOMERS: DedupPolicy(["customer_id"], recency="create_date"),
    Entity.CRM_PRODUCTS: DedupPolicy(["product_id"], recency="start_date"),
    Entity.CRM_SALES: DedupPolicy(["order_number"], collapse=False),
    Entity.ERP_CUSTOMERS: DedupPolicy(["customer_key"]),
    Entity.ERP_LOCATIONS: DedupPolicy(["customer_key"]),
    Entity.ERP_CATEGORIES: DedupPolicy(["category_id"]),
}


class DeduplicationResolver:
    """
    Keep-latest resolver over a business key.

    Example:
        resolver = DeduplicationResolver()
        customers, stats = resolver.resolve(df, ["customer_id"], recency="create_date")
    """

    def rank(
        self,
        df: pl.DataFrame,
        business_key: List[str],
        recency: Optional[str] = None,
    ) -> pl.DataFrame:
        """
        Attach a 1-based rank within each business key partition.

        Expects an arrival column; the result is ordered by key then rank.
        """
        sort_by = list(business_key)
        descending = [False] * len(business_key)
        if recency is not None:
            sort_by.append(recency)
            descending.append(True)
        sort_by.append(ARRIVAL_COLUMN)
        descending.append(True)

        return df.sort(sort_by, descending=descending, nulls_last=True).with_columns(
            pl.int_range(1, pl.len() + 1).over(business_key).alias(RANK_COLUMN)
        )

    def resolve(
        self,
        df: pl.DataFrame,
        business_key: List[str],
        recency: Optional[str] = None,
        collapse: bool = True,
    ) -> Tuple[pl.DataFrame, DedupStats]:
        """
        Produce one row per non-null business key.

        Args:
            df: Normalized entity table
            business_key: Key columns
            recency: Column ranked descending; arrival order when None
            collapse: False only drops null keys and keeps every row

        Returns:
            (deduplicated DataFrame in arrival order, DedupStats)
        """
        input_rows = df.height
        df = df.with_row_index(ARRIVAL_COLUMN)

        keyed = df.filter(pl.all_horizontal([pl.col(k).is_not_null() for k in business_key]))
        null_key_rows = input_rows - keyed.height

        if collapse:
            result = (
                self.rank(keyed, business_key, recency)
                .filter(pl.col(RANK_COLUMN) == 1)
                .drop(RANK_COLUMN)
            )
        else:
            result = keyed

        result = result.sort(ARRIVAL_COLUMN).drop(ARRIVAL_COLUMN)

        stats = DedupStats(
            input_rows=input_rows,
            null_key_rows=null_key_rows,
            duplicates_removed=keyed.height - result.height,
            output_rows=result.height,
        )
        return result, stats

    def resolve_entity(self, df: pl.DataFrame, entity: Entity) -> Tuple[pl.DataFrame, DedupStats]:
        """Apply the declared policy of an entity"""
        policy = DEDUP_POLICIES[entity]
        result, stats = self.resolve(df, policy.business_key, policy.recency, policy.collapse)

        if stats.null_key_rows or stats.duplicates_removed:
            logger.info(
                "Resolved duplicate business keys",
                entity=entity.value,
                null_key_rows=stats.null_key_rows,
                duplicates_removed=stats.duplicates_removed,
                output_rows=stats.output_rows,
            )
        return result, stats
