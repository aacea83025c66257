"""
Staging Loader

Reads the raw CRM and ERP extracts left in the staging area by the source
loader. Every column is read as a string: typing and repair belong to the
cleansing engine, so no malformed value can fail the read. Only a missing or
unreadable extract aborts the run.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import polars as pl
import structlog
from pydantic import BaseModel

from warehouse.config import get_settings
from warehouse.config.settings import StagingSettings
from warehouse.exceptions import SchemaContractError, StagingUnavailableError
from warehouse.schemas import Entity, RAW_COLUMNS

logger = structlog.get_logger(__name__)


@dataclass
class StagingFileConfig:
    """Location and CSV dialect of one extract"""
    entity: Entity
    file_path: Path
    delimiter: str = ","
    encoding: str = "utf8"
    null_values: List[str] = field(default_factory=lambda: ["", "NULL", "null"])


class LoadResult(BaseModel):
    """Result of reading one extract"""
    entity: str
    file_path: str
    rows_loaded: int = 0
    file_hash: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


class StagingLoader:
    """
    Reads the six source extracts as raw tables.

    Example:
        loader = StagingLoader("./data/staging")
        staging, results = loader.load_all()
    """

    def __init__(
        self,
        staging_path: Optional[Union[str, Path]] = None,
        staging_settings: Optional[StagingSettings] = None,
    ):
        settings = get_settings()
        self.staging_path = Path(staging_path or settings.data_lake.staging_path)
        self.settings = staging_settings or settings.staging

    def file_configs(self) -> List[StagingFileConfig]:
        files = {
            Entity.CRM_CUSTOMERS: self.settings.crm_customers_file,
            Entity.CRM_PRODUCTS: self.settings.crm_products_file,
            Entity.CRM_SALES: self.settings.crm_sales_file,
            Entity.ERP_CUSTOMERS: self.settings.erp_customers_file,
            Entity.ERP_LOCATIONS: self.settings.erp_locations_file,
            Entity.ERP_CATEGORIES: self.settings.erp_categories_file,
        }
        return [
            StagingFileConfig(
                entity=entity,
                file_path=self.staging_path / relative,
                delimiter=self.settings.delimiter,
                encoding=self.settings.encoding,
                null_values=list(self.settings.null_values),
            )
            for entity, relative in files.items()
        ]

    def _compute_file_hash(self, file_path: Path) -> str:
        """MD5 of the extract, recorded for lineage"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: StagingFileConfig) -> pl.DataFrame:
        """Read an extract with every column as string"""
        df = pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            null_values=config.null_values,
            infer_schema_length=0,
        )
        # Extract headers occasionally carry stray whitespace or casing
        return df.rename({col: col.strip().lower() for col in df.columns})

    def _validate_columns(self, df: pl.DataFrame, entity: Entity) -> None:
        missing = [c for c in RAW_COLUMNS[entity] if c not in df.columns]
        if missing:
            raise SchemaContractError(entity.raw_table, missing)

    def load(self, config: StagingFileConfig) -> Tuple[pl.DataFrame, LoadResult]:
        """
        Read one extract.

        Raises:
            StagingUnavailableError: file missing or unreadable
            SchemaContractError: required raw columns missing
        """
        started_at = datetime.now()

        if not config.file_path.exists():
            raise StagingUnavailableError(
                f"Staging extract not found: {config.file_path}",
                {"entity": config.entity.value, "file": str(config.file_path)},
            )

        try:
            df = self._read_csv(config)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise StagingUnavailableError(
                f"Staging extract unreadable: {config.file_path}",
                {"entity": config.entity.value, "file": str(config.file_path), "reason": str(e)},
            ) from e

        self._validate_columns(df, config.entity)
        df = df.select(RAW_COLUMNS[config.entity])

        completed_at = datetime.now()
        result = LoadResult(
            entity=config.entity.value,
            file_path=str(config.file_path),
            rows_loaded=df.height,
            file_hash=self._compute_file_hash(config.file_path),
            load_duration_seconds=(completed_at - started_at).total_seconds(),
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            "Staging extract loaded",
            entity=config.entity.value,
            file=str(config.file_path),
            rows=df.height,
        )
        return df, result

    def load_all(self) -> Tuple[Dict[Entity, pl.DataFrame], Dict[Entity, LoadResult]]:
        """Read every extract; any failure aborts the whole read"""
        if not self.staging_path.is_dir():
            raise StagingUnavailableError(
                f"Staging area not found: {self.staging_path}",
                {"path": str(self.staging_path)},
            )

        tables: Dict[Entity, pl.DataFrame] = {}
        results: Dict[Entity, LoadResult] = {}
        for config in self.file_configs():
            tables[config.entity], results[config.entity] = self.load(config)

        logger.info(
            "Staging area loaded",
            path=str(self.staging_path),
            rows=sum(r.rows_loaded for r in results.values()),
        )
        return tables, results
