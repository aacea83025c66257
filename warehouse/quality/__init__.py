"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    contract_failures,
    create_gold_validators,
    create_silver_validators,
    run_validators,
)

__all__ = [
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "contract_failures",
    "create_gold_validators",
    "create_silver_validators",
    "run_validators",
]
