"""
Dimensional Assembler

Turns the conformed silver tables into the gold star schema:
- dim_customers: CRM customers enriched with ERP demographics and location
- dim_products: currently valid products enriched with ERP categories
- fact_sales: sales lines resolved to dimension surrogate keys

Surrogate keys are assigned from a total, data-only ordering so identical
silver input always yields identical keys. All joins are left joins: missing
secondary data surfaces as null, never as a dropped row.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import polars as pl
import structlog

from warehouse.schemas import Entity, GoldTable, GOLD_SCHEMAS

logger = structlog.get_logger(__name__)

ROW_COLUMN = "_row"


@dataclass
class GoldModel:
    """The three query-facing gold relations"""
    dim_customers: pl.DataFrame
    dim_products: pl.DataFrame
    fact_sales: pl.DataFrame

    def tables(self) -> Dict[GoldTable, pl.DataFrame]:
        return {
            GoldTable.DIM_CUSTOMERS: self.dim_customers,
            GoldTable.DIM_PRODUCTS: self.dim_products,
            GoldTable.FACT_SALES: self.fact_sales,
        }


def source_column(attribute: str, source: str) -> str:
    """Name of a source's copy of a conformed attribute"""
    return f"{attribute}__{source}"


class AttributeResolver:
    """
    Master-data precedence for attributes present in several sources.

    The first source in the declared order whose value is known wins;
    otherwise the fallback. A string value is known when non-null and not
    the fallback; any other value is known when non-null.

    Example:
        resolver = AttributeResolver({"gender": ["crm", "erp"]})
        df = df.with_columns(resolver.resolve("gender"))
    """

    def __init__(self, precedence: Dict[str, List[str]], fallback: str = "Unknown"):
        self.precedence = precedence
        self.fallback = fallback

    def sources(self, attribute: str) -> List[str]:
        return self.precedence.get(attribute, [])

    def resolve(
        self,
        attribute: str,
        schema: Optional[Mapping[str, pl.DataType]] = None,
    ) -> pl.Expr:
        """
        Expression picking the attribute by precedence across source columns.

        With a schema, sources missing from it are skipped, and only string
        sources treat the fallback as unknown; other dtypes resolve on
        null alone and fall back to a typed null. Without a schema every
        source is taken to be a string column.
        """
        sources = [
            s for s in self.sources(attribute)
            if schema is None or source_column(attribute, s) in schema
        ]
        if not sources:
            return pl.lit(self.fallback).alias(attribute)

        dtypes = [
            pl.Utf8 if schema is None else schema[source_column(attribute, s)]
            for s in sources
        ]
        textual = all(dtype == pl.Utf8 for dtype in dtypes)

        expr = None
        for source in sources:
            col = pl.col(source_column(attribute, source))
            known = col.is_not_null() & (col != self.fallback) if textual else col.is_not_null()
            expr = pl.when(known).then(col) if expr is None else expr.when(known).then(col)

        fallback = pl.lit(self.fallback) if textual else pl.lit(None, dtype=dtypes[0])
        return expr.otherwise(fallback).alias(attribute)

    def tag(self, df: pl.DataFrame, source: str) -> pl.DataFrame:
        """Suffix the conformed attributes a source provides with its name"""
        renames = {
            attribute: source_column(attribute, source)
            for attribute, sources in self.precedence.items()
            if source in sources and attribute in df.columns
        }
        return df.rename(renames)


class DimensionalAssembler:
    """
    Builds dimensions and facts from silver tables.

    Example:
        assembler = DimensionalAssembler(precedence={"gender": ["crm", "erp"]})
        gold = assembler.assemble(silver_tables)
    """

    def __init__(
        self,
        precedence: Optional[Dict[str, List[str]]] = None,
        fallback: str = "Unknown",
    ):
        self.resolver = AttributeResolver(precedence or {"gender": ["crm", "erp"]}, fallback)

    @staticmethod
    def assign_surrogate_keys(
        df: pl.DataFrame,
        key_name: str,
        order_by: List[str],
    ) -> pl.DataFrame:
        """
        Number rows 1..n in `order_by` order (nulls last) and put the key first.

        `order_by` must be a total order over the rows for keys to be
        reproducible.
        """
        ordered = df.sort(order_by, nulls_last=True, maintain_order=True)
        return ordered.with_row_index(key_name, offset=1).with_columns(
            pl.col(key_name).cast(pl.Int64)
        )

    def _conform(self, df: pl.DataFrame, table: GoldTable) -> pl.DataFrame:
        return df.select([
            pl.col(col).cast(dtype) for col, dtype in GOLD_SCHEMAS[table].items()
        ])

    def build_dim_customers(
        self,
        customers: pl.DataFrame,
        demographics: pl.DataFrame,
        locations: pl.DataFrame,
    ) -> pl.DataFrame:
        """CRM customers left-joined to ERP demographics and locations on the customer number"""
        crm = self.resolver.tag(
            customers.select([
                "customer_id", "customer_key", "first_name", "last_name",
                "gender", "marital_status", "create_date",
            ]),
            "crm",
        )
        erp = self.resolver.tag(demographics.select(["customer_key", "birthdate", "gender"]), "erp")
        location = self.resolver.tag(locations.select(["customer_key", "country"]), "erp")

        joined = (
            crm.join(erp, on="customer_key", how="left")
            .join(location, on="customer_key", how="left")
        )

        resolved = [
            self.resolver.resolve(attribute, joined.schema)
            for attribute in self.resolver.precedence
        ]
        dim = joined.with_columns(resolved).rename({"customer_key": "customer_number"})

        dim = self.assign_surrogate_keys(dim, "customer_key", ["customer_id", "customer_number"])
        dim = self._conform(dim, GoldTable.DIM_CUSTOMERS)

        logger.info("Built customer dimension", rows=dim.height)
        return dim

    def build_dim_products(self, products: pl.DataFrame, categories: pl.DataFrame) -> pl.DataFrame:
        """Currently valid products (null end date) left-joined to ERP categories"""
        current = products.filter(pl.col("end_date").is_null())

        dim = (
            current.join(
                categories.select(["category_id", "category", "subcategory", "maintenance"]),
                on="category_id",
                how="left",
            )
            .rename({
                "product_key": "product_number",
                "maintenance": "maintenance_flag",
                "product_cost": "cost",
            })
        )

        dim = self.assign_surrogate_keys(
            dim, "product_key", ["start_date", "product_number", "product_id"]
        )
        dim = self._conform(dim, GoldTable.DIM_PRODUCTS)

        logger.info(
            "Built product dimension",
            rows=dim.height,
            retired_versions=products.height - current.height,
        )
        return dim

    def build_fact_sales(
        self,
        sales: pl.DataFrame,
        dim_products: pl.DataFrame,
        dim_customers: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Resolve each sales line to dimension surrogate keys.

        Unmatched product numbers or customer ids yield null keys; the line
        is kept. Rows keep silver order.
        """
        # A product number maps to one key even if several versions lack an end date
        product_keys = (
            dim_products.select([
                pl.col("product_number").alias("product_key_nk"),
                pl.col("product_key"),
            ])
            .sort("product_key")
            .unique(subset=["product_key_nk"], keep="last", maintain_order=True)
        )
        customer_keys = dim_customers.select(["customer_id", "customer_key"])

        fact = (
            sales.with_row_index(ROW_COLUMN)
            .rename({"product_key": "product_key_nk"})
            .join(product_keys, on="product_key_nk", how="left")
            .join(customer_keys, on="customer_id", how="left")
            .sort(ROW_COLUMN)
            .rename({
                "ship_date": "shipping_date",
                "sales": "sales_amount",
            })
        )
        fact = self._conform(fact, GoldTable.FACT_SALES)

        unresolved_products = fact["product_key"].null_count()
        unresolved_customers = fact["customer_key"].null_count()
        logger.info(
            "Built sales fact",
            rows=fact.height,
            unresolved_products=unresolved_products,
            unresolved_customers=unresolved_customers,
        )
        return fact

    def assemble(self, silver: Dict[Entity, pl.DataFrame]) -> GoldModel:
        """
        Build the full gold model.

        Args:
            silver: Silver tables keyed by entity

        Returns:
            GoldModel with the two dimensions and the fact
        """
        dim_customers = self.build_dim_customers(
            silver[Entity.CRM_CUSTOMERS],
            silver[Entity.ERP_CUSTOMERS],
            silver[Entity.ERP_LOCATIONS],
        )
        dim_products = self.build_dim_products(
            silver[Entity.CRM_PRODUCTS],
            silver[Entity.ERP_CATEGORIES],
        )
        fact_sales = self.build_fact_sales(silver[Entity.CRM_SALES], dim_products, dim_customers)

        return GoldModel(
            dim_customers=dim_customers,
            dim_products=dim_products,
            fact_sales=fact_sales,
        )
