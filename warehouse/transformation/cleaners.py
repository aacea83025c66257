"""
Data Cleaning Module

Row-local repair rules for the CRM and ERP extracts.
Handles:
- Type coercion of loosely typed raw values
- Whitespace trimming
- Categorical remapping to closed vocabularies
- Composite key decomposition and identifier normalization
- Monetary null defaulting

Cleaning never changes cardinality; rows with missing business keys are
dropped later by the deduplication resolver.
"""

from typing import Dict, List, Optional

import polars as pl
import structlog

from warehouse.schemas import Entity, RAW_COLUMNS
from warehouse.exceptions import SchemaContractError

logger = structlog.get_logger(__name__)

UNKNOWN = "Unknown"

MARITAL_STATUS_CODES = {"S": "Single", "M": "Married"}
CRM_GENDER_CODES = {"F": "Female", "M": "Male"}
ERP_GENDER_CODES = {"F": "Female", "FEMALE": "Female", "M": "Male", "MALE": "Male"}
PRODUCT_LINE_CODES = {"R": "Road", "M": "Mountain", "S": "other Sales", "T": "Touring"}
COUNTRY_CODES = {"DE": "Germany", "US": "United States", "USA": "United States"}

ERP_CUSTOMER_PREFIX = "NAS"
CATEGORY_PREFIX_LENGTH = 5
PRODUCT_KEY_OFFSET = 6


class DataCleaner:
    """
    Cleansing & normalization engine for the raw source tables.

    Example:
        cleaner = DataCleaner()
        customers = cleaner.clean(raw_customers, Entity.CRM_CUSTOMERS)
    """

    def __init__(self, fallback: str = UNKNOWN):
        self.fallback = fallback

    def _check_columns(self, df: pl.DataFrame, entity: Entity) -> None:
        missing = [c for c in RAW_COLUMNS[entity] if c not in df.columns]
        if missing:
            raise SchemaContractError(entity.raw_table, missing)

    def _coerce_types(self, df: pl.DataFrame, dtypes: Dict[str, pl.DataType]) -> pl.DataFrame:
        """Cast columns non-strictly; unparseable values become null"""
        exprs = []
        for col, dtype in dtypes.items():
            source = df.schema[col]
            expr = pl.col(col)
            if source == pl.Utf8:
                expr = expr.str.strip_chars()
                if dtype == pl.Date:
                    expr = expr.str.slice(0, 10).str.to_date("%Y-%m-%d", strict=False)
                elif dtype in (pl.Int64, pl.Float64):
                    # "12.0" style tokens are valid integers in the extracts
                    expr = expr.cast(pl.Float64, strict=False).cast(dtype, strict=False)
                else:
                    expr = expr.cast(dtype, strict=False)
            elif dtype == pl.Date and source == pl.Datetime:
                expr = expr.dt.date()
            else:
                expr = expr.cast(dtype, strict=False)
            exprs.append(expr.alias(col))
        return df.with_columns(exprs)

    def _trim_strings(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim whitespace from string columns"""
        string_cols = columns or [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8
        ]

        return df.with_columns([
            pl.col(col).cast(pl.Utf8).str.strip_chars().alias(col)
            for col in string_cols
            if col in df.columns
        ])

    def _map_categories(
        self,
        df: pl.DataFrame,
        column: str,
        mapping: Dict[str, str],
        passthrough: bool = False,
    ) -> pl.DataFrame:
        """
        Case-insensitive remap of coded values.

        Unmapped values become the fallback, or keep their trimmed value when
        `passthrough` is set. Null and blank always become the fallback.
        """
        trimmed = pl.col(column).cast(pl.Utf8).str.strip_chars()
        lookup = {code.upper(): label for code, label in mapping.items()}
        default = trimmed if passthrough else pl.lit(self.fallback)

        mapped = trimmed.str.to_uppercase().replace_strict(
            lookup, default=default, return_dtype=pl.Utf8
        )

        return df.with_columns(
            pl.when(trimmed.is_null() | (trimmed == ""))
            .then(pl.lit(self.fallback))
            .otherwise(mapped)
            .alias(column)
        )

    def _fill_nulls(
        self,
        df: pl.DataFrame,
        fill_values: Dict[str, object]
    ) -> pl.DataFrame:
        """Fill null values with specified defaults"""
        return df.with_columns([
            pl.col(col).fill_null(value).alias(col)
            for col, value in fill_values.items()
            if col in df.columns
        ])

    def _strip_prefix(self, df: pl.DataFrame, column: str, prefix: str) -> pl.DataFrame:
        """Remove a literal prefix where present"""
        return df.with_columns(
            pl.when(pl.col(column).str.starts_with(prefix))
            .then(pl.col(column).str.slice(len(prefix)))
            .otherwise(pl.col(column))
            .alias(column)
        )

    def _remove_chars(self, df: pl.DataFrame, column: str, chars: str) -> pl.DataFrame:
        return df.with_columns(
            pl.col(column).str.replace_all(chars, "", literal=True).alias(column)
        )

    def _split_composite_key(
        self,
        df: pl.DataFrame,
        column: str,
        category_column: str,
        key_column: str,
    ) -> pl.DataFrame:
        """
        Split a packed product key such as "CO-RF-FR-R92B-58".

        The first five characters are the category ("CO_RF", separator swapped
        to underscore), characters seven onward the short key ("FR-R92B-58").
        """
        return df.with_columns([
            pl.col(column)
            .str.slice(0, CATEGORY_PREFIX_LENGTH)
            .str.replace_all("-", "_", literal=True)
            .alias(category_column),
            pl.col(column).str.slice(PRODUCT_KEY_OFFSET).alias(key_column),
        ])

    def clean_crm_customers(self, df: pl.DataFrame) -> pl.DataFrame:
        """CRM customer master records"""
        df = self._coerce_types(df, {
            "cst_id": pl.Int64,
            "cst_key": pl.Utf8,
            "cst_firstname": pl.Utf8,
            "cst_lastname": pl.Utf8,
            "cst_marital_status": pl.Utf8,
            "cst_gndr": pl.Utf8,
            "cst_create_date": pl.Date,
        })
        df = self._trim_strings(df, ["cst_key", "cst_firstname", "cst_lastname"])
        df = self._map_categories(df, "cst_marital_status", MARITAL_STATUS_CODES)
        df = self._map_categories(df, "cst_gndr", CRM_GENDER_CODES)

        return df.select([
            pl.col("cst_id").alias("customer_id"),
            pl.col("cst_key").alias("customer_key"),
            pl.col("cst_firstname").alias("first_name"),
            pl.col("cst_lastname").alias("last_name"),
            pl.col("cst_marital_status").alias("marital_status"),
            pl.col("cst_gndr").alias("gender"),
            pl.col("cst_create_date").alias("create_date"),
        ])

    def clean_crm_products(self, df: pl.DataFrame) -> pl.DataFrame:
        """CRM product versions; end dates are derived during enrichment"""
        df = self._coerce_types(df, {
            "prd_id": pl.Int64,
            "prd_key": pl.Utf8,
            "prd_nm": pl.Utf8,
            "prd_cost": pl.Float64,
            "prd_line": pl.Utf8,
            "prd_start_dt": pl.Date,
        })
        df = self._trim_strings(df, ["prd_key", "prd_nm"])
        df = self._split_composite_key(df, "prd_key", "category_id", "product_key")
        df = self._fill_nulls(df, {"prd_cost": 0.0})
        df = self._map_categories(df, "prd_line", PRODUCT_LINE_CODES)

        return df.select([
            pl.col("prd_id").alias("product_id"),
            pl.col("category_id"),
            pl.col("product_key"),
            pl.col("prd_nm").alias("product_name"),
            pl.col("prd_cost").alias("product_cost"),
            pl.col("prd_line").alias("product_line"),
            pl.col("prd_start_dt").alias("start_date"),
            pl.lit(None, dtype=pl.Date).alias("end_date"),
        ])

    def clean_crm_sales(self, df: pl.DataFrame) -> pl.DataFrame:
        """
        CRM sales lines.

        Date fields stay as trimmed YYYYMMDD text here; the enricher
        validates and converts them.
        """
        df = self._coerce_types(df, {
            "sls_ord_num": pl.Utf8,
            "sls_prd_key": pl.Utf8,
            "sls_cust_id": pl.Int64,
            "sls_order_dt": pl.Utf8,
            "sls_ship_dt": pl.Utf8,
            "sls_due_dt": pl.Utf8,
            "sls_sales": pl.Float64,
            "sls_quantity": pl.Int64,
            "sls_price": pl.Float64,
        })
        df = self._trim_strings(df, ["sls_ord_num", "sls_prd_key"])

        return df.select([
            pl.col("sls_ord_num").alias("order_number"),
            pl.col("sls_prd_key").alias("product_key"),
            pl.col("sls_cust_id").alias("customer_id"),
            pl.col("sls_order_dt").alias("order_date"),
            pl.col("sls_ship_dt").alias("ship_date"),
            pl.col("sls_due_dt").alias("due_date"),
            pl.col("sls_sales").alias("sales"),
            pl.col("sls_quantity").alias("quantity"),
            pl.col("sls_price").alias("price"),
        ])

    def clean_erp_customers(self, df: pl.DataFrame) -> pl.DataFrame:
        """ERP demographics; future birthdates are nulled during enrichment"""
        df = self._coerce_types(df, {"cid": pl.Utf8, "bdate": pl.Date, "gen": pl.Utf8})
        df = self._trim_strings(df, ["cid"])
        df = self._strip_prefix(df, "cid", ERP_CUSTOMER_PREFIX)
        df = self._map_categories(df, "gen", ERP_GENDER_CODES)

        return df.select([
            pl.col("cid").alias("customer_key"),
            pl.col("bdate").alias("birthdate"),
            pl.col("gen").alias("gender"),
        ])

    def clean_erp_locations(self, df: pl.DataFrame) -> pl.DataFrame:
        """ERP customer locations keyed by a dashed customer id"""
        df = self._coerce_types(df, {"cid": pl.Utf8, "cntry": pl.Utf8})
        df = self._trim_strings(df, ["cid"])
        df = self._remove_chars(df, "cid", "-")
        df = self._map_categories(df, "cntry", COUNTRY_CODES, passthrough=True)

        return df.select([
            pl.col("cid").alias("customer_key"),
            pl.col("cntry").alias("country"),
        ])

    def clean_erp_categories(self, df: pl.DataFrame) -> pl.DataFrame:
        df = self._coerce_types(df, {c: pl.Utf8 for c in ("id", "cat", "subcat", "maintenance")})
        df = self._trim_strings(df, ["id", "cat", "subcat", "maintenance"])

        return df.select([
            pl.col("id").alias("category_id"),
            pl.col("cat").alias("category"),
            pl.col("subcat").alias("subcategory"),
            pl.col("maintenance"),
        ])

    def clean(self, df: pl.DataFrame, entity: Entity) -> pl.DataFrame:
        """
        Clean one raw table.

        Args:
            df: Raw table as delivered by the staging loader
            entity: Entity the table belongs to

        Returns:
            Normalized table with silver column names and the same row count
        """
        self._check_columns(df, entity)

        cleaners = {
            Entity.CRM_CUSTOMERS: self.clean_crm_customers,
            Entity.CRM_PRODUCTS: self.clean_crm_products,
            Entity.CRM_SALES: self.clean_crm_sales,
            Entity.ERP_CUSTOMERS: self.clean_erp_customers,
            Entity.ERP_LOCATIONS: self.clean_erp_locations,
            Entity.ERP_CATEGORIES: self.clean_erp_categories,
        }
        result = cleaners[entity](df)

        logger.debug("Cleaned raw table", entity=entity.value, rows=result.height)
        return result


def clean_dataframe(df: pl.DataFrame, entity: Entity) -> pl.DataFrame:
    """
    Convenience function to clean a raw table.

    Args:
        df: Raw DataFrame
        entity: Entity of the table

    Returns:
        Cleaned DataFrame
    """
    return DataCleaner().clean(df, entity)
