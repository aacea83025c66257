"""
Layer Store

Parquet persistence for the silver and gold layers with replace-all
semantics: a layer is written to a temporary sibling directory and swapped
into place only once every table is on disk. A failed write leaves the
previous layer untouched.
"""

import json
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from warehouse.exceptions import LayerNotFoundError, LayerWriteError

logger = structlog.get_logger(__name__)

MANIFEST_FILE = "_manifest.json"


class LayerStore:
    """
    One directory per layer, one parquet file per table.

    Example:
        store = LayerStore("./data/silver", layer="silver")
        store.replace_all({"crm_customers": df}, reference_time=reference_time)
        customers = store.read("crm_customers")
    """

    def __init__(
        self,
        path: Union[str, Path],
        layer: str,
        compression: str = "zstd",
    ):
        self.path = Path(path)
        self.layer = layer
        self.compression = compression

    def _table_path(self, directory: Path, table: str) -> Path:
        return directory / f"{table}.parquet"

    def exists(self) -> bool:
        return (self.path / MANIFEST_FILE).exists()

    def manifest(self) -> Dict:
        if not self.exists():
            raise LayerNotFoundError(self.layer)
        with open(self.path / MANIFEST_FILE, "r", encoding="utf-8") as f:
            return json.load(f)

    def tables(self) -> List[str]:
        return sorted(self.manifest()["tables"])

    def replace_all(
        self,
        tables: Dict[str, pl.DataFrame],
        reference_time: Optional[datetime] = None,
    ) -> Path:
        """
        Materialize a complete layer, replacing whatever was there.

        Args:
            tables: DataFrames keyed by table name
            reference_time: Run reference time recorded in the manifest

        Returns:
            Path of the layer directory
        """
        token = uuid.uuid4().hex[:8]
        staging_dir = self.path.parent / f".{self.path.name}.tmp-{token}"
        retired_dir = self.path.parent / f".{self.path.name}.old-{token}"

        staging_dir.mkdir(parents=True, exist_ok=False)
        try:
            for name, df in tables.items():
                df.write_parquet(self._table_path(staging_dir, name), compression=self.compression)

            manifest = {
                "layer": self.layer,
                "reference_time": reference_time.isoformat() if reference_time else None,
                "tables": {name: df.height for name, df in sorted(tables.items())},
            }
            with open(staging_dir / MANIFEST_FILE, "w", encoding="utf-8") as f:
                json.dump(manifest, f, indent=2, sort_keys=True)

            if self.path.exists():
                self.path.rename(retired_dir)
            staging_dir.rename(self.path)
        except Exception as e:
            shutil.rmtree(staging_dir, ignore_errors=True)
            if retired_dir.exists() and not self.path.exists():
                retired_dir.rename(self.path)
            raise LayerWriteError(self.layer, str(e)) from e

        shutil.rmtree(retired_dir, ignore_errors=True)

        logger.info(
            "Layer materialized",
            layer=self.layer,
            path=str(self.path),
            tables={name: df.height for name, df in tables.items()},
        )
        return self.path

    def read(self, table: str) -> pl.DataFrame:
        path = self._table_path(self.path, table)
        if not path.exists():
            raise LayerNotFoundError(self.layer, table)
        return pl.read_parquet(path)

    def read_all(self) -> Dict[str, pl.DataFrame]:
        return {table: self.read(table) for table in self.tables()}
