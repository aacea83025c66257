"""
Warehouse exceptions

Data-quality problems are repaired in place and never raised. These errors
cover the failures that abort a run.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes grouped by concern"""
    STAGING_UNAVAILABLE = "STAGING_001"
    SCHEMA_CONTRACT = "STAGING_002"
    DATA_CONTRACT = "DATA_001"
    LAYER_WRITE = "STORAGE_001"
    LAYER_NOT_FOUND = "STORAGE_002"


class WarehouseError(Exception):
    """Base exception for the warehouse pipeline"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
        }


class StagingUnavailableError(WarehouseError):
    """Staging store missing or unreadable"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.STAGING_UNAVAILABLE, details)


class SchemaContractError(WarehouseError):
    """A staging table lacks required raw columns"""

    def __init__(self, entity: str, missing: list):
        super().__init__(
            f"Staging table '{entity}' is missing columns: {', '.join(missing)}",
            ErrorCode.SCHEMA_CONTRACT,
            {"entity": entity, "missing_columns": missing},
        )


class DataContractError(WarehouseError):
    """An ERROR-severity layer check failed"""

    def __init__(self, layer: str, failed_checks: list):
        super().__init__(
            f"{layer} layer violates {len(failed_checks)} contract check(s): {', '.join(failed_checks)}",
            ErrorCode.DATA_CONTRACT,
            {"layer": layer, "failed_checks": failed_checks},
        )


class LayerWriteError(WarehouseError):
    """A layer could not be materialized"""

    def __init__(self, layer: str, reason: str):
        super().__init__(
            f"Failed to materialize {layer} layer: {reason}",
            ErrorCode.LAYER_WRITE,
            {"layer": layer},
        )


class LayerNotFoundError(WarehouseError):
    """A layer or table has not been materialized yet"""

    def __init__(self, layer: str, table: Optional[str] = None):
        target = f"{layer}.{table}" if table else layer
        super().__init__(
            f"No materialized data for {target}",
            ErrorCode.LAYER_NOT_FOUND,
            {"layer": layer, "table": table},
        )
