"""
Data Validation Module

Rule-based checks over the silver and gold layers.

Features:
- Key checks (not-null, unique, composite-unique)
- Range and allowed-value checks
- Column contract checks
- Referential completeness across tables
- Business rule checks (sales consistency, date ordering)

Failed checks never alter data. ERROR results mark a broken layer
contract; WARNING results report data that was legal but suspicious.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import polars as pl
import structlog

from warehouse.schemas import Entity, GoldTable, silver_columns, gold_columns
from warehouse.transformation.enrichers import SALES_TOLERANCE, expected_sales

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # contract violation, blocks the layer
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    table: str
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        return [
            c for c in self.checks
            if not c.passed and c.severity == ValidationSeverity.ERROR
        ]


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Chainable validator for one table.

    Example:
        validator = (
            DataValidator("crm_customers")
            .add_not_null_check("customer_id")
            .add_unique_check("customer_id")
        )
        result = validator.validate(df)
    """

    def __init__(self, table: str = "table", strict_mode: bool = False):
        self.table = table
        self.strict_mode = strict_mode  # warnings fail the suite too
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = df.height
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        return self.add_composite_unique_check([column], severity=severity, name=f"unique_{column}")

    def add_composite_unique_check(
        self,
        columns: List[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
        name: Optional[str] = None,
    ) -> "DataValidator":
        """Add check that the column combination identifies each row"""
        check_name = name or f"unique_{'_'.join(columns)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = [c for c in columns if c not in df.columns]
            if missing:
                return _missing_column(check_name, missing[0], severity)

            total = df.height
            duplicate_count = df.select(columns).is_duplicated().sum()
            passed = duplicate_count == 0

            return ValidationCheck(
                name=check_name,
                passed=passed,
                severity=severity,
                message=f"{columns} has {duplicate_count} duplicated rows" if not passed else f"{columns} values are unique",
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range; nulls are ignored"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            out_of_range = df.filter(pl.any_horizontal(conditions)).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set; nulls are ignored"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_column_order_check(
        self,
        expected: List[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that the table carries exactly the expected columns, in order"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            passed = df.columns == expected
            return ValidationCheck(
                name="column_order",
                passed=passed,
                severity=severity,
                message="Columns match contract" if passed else f"Columns {df.columns} differ from contract {expected}",
                details=None if passed else {"expected": expected, "actual": df.columns},
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that non-null values exist in the reference column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            reference = reference_df.get_column(reference_column).drop_nulls().unique()
            orphans = df.filter(
                ~pl.col(column).is_in(reference.to_list()) & pl.col(column).is_not_null()
            ).height
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans, "reference": reference_column},
                failed_rows=orphans,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_row_check(
        self,
        name: str,
        violation: pl.Expr,
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check counting rows where `violation` is true; null counts as no violation"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            failed = df.filter(violation.fill_null(False)).height
            passed = failed == 0
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else f"{failed} rows: {message_on_fail}",
                failed_rows=failed,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom table-level check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            passed = bool(check_func(df))
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.now()
        results = [check_func(df) for check_func in self._checks]

        for result in results:
            if not result.passed:
                logger.warning(
                    "Validation check failed",
                    table=self.table,
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            table=self.table,
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.now(),
        )

        logger.info(
            "Validation complete",
            table=self.table,
            status=status.value,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )
        return validation_result


def _sales_inconsistent() -> pl.Expr:
    return (pl.col("sales") - expected_sales()).abs() > SALES_TOLERANCE


def create_silver_validators(silver: Mapping[Entity, pl.DataFrame]) -> Dict[Entity, DataValidator]:
    """Pre-configured suites for every silver table present in `silver`"""
    W = ValidationSeverity.WARNING

    validators = {
        Entity.CRM_CUSTOMERS: (
            DataValidator(Entity.CRM_CUSTOMERS.value)
            .add_column_order_check(silver_columns(Entity.CRM_CUSTOMERS))
            .add_not_null_check("customer_id")
            .add_unique_check("customer_id")
            .add_enum_check("marital_status", ["Single", "Married", "Unknown"])
            .add_enum_check("gender", ["Female", "Male", "Unknown"])
        ),
        Entity.CRM_PRODUCTS: (
            DataValidator(Entity.CRM_PRODUCTS.value)
            .add_column_order_check(silver_columns(Entity.CRM_PRODUCTS))
            .add_not_null_check("product_id")
            .add_unique_check("product_id")
            .add_not_null_check("product_cost")
            .add_range_check("product_cost", min_value=0)
            .add_enum_check("product_line", ["Road", "Mountain", "other Sales", "Touring", "Unknown"])
            .add_row_check(
                "end_date_after_start_date",
                pl.col("end_date") < pl.col("start_date"),
                "end date precedes start date",
                severity=W,
            )
        ),
        Entity.CRM_SALES: (
            DataValidator(Entity.CRM_SALES.value)
            .add_column_order_check(silver_columns(Entity.CRM_SALES))
            .add_not_null_check("order_number")
            .add_range_check("sales", min_value=0, severity=W)
            .add_range_check("price", min_value=0, severity=W)
            .add_row_check("sales_consistency", _sales_inconsistent(), "sales != |quantity| * |price|", severity=W)
            .add_row_check(
                "order_before_shipping",
                pl.col("order_date") > pl.col("ship_date"),
                "order date after ship date",
                severity=W,
            )
            .add_row_check(
                "order_before_due",
                pl.col("order_date") > pl.col("due_date"),
                "order date after due date",
                severity=W,
            )
        ),
        Entity.ERP_CUSTOMERS: (
            DataValidator(Entity.ERP_CUSTOMERS.value)
            .add_column_order_check(silver_columns(Entity.ERP_CUSTOMERS))
            .add_not_null_check("customer_key")
            .add_unique_check("customer_key")
            .add_enum_check("gender", ["Female", "Male", "Unknown"])
        ),
        Entity.ERP_LOCATIONS: (
            DataValidator(Entity.ERP_LOCATIONS.value)
            .add_column_order_check(silver_columns(Entity.ERP_LOCATIONS))
            .add_not_null_check("customer_key")
            .add_unique_check("customer_key")
            .add_not_null_check("country")
        ),
        Entity.ERP_CATEGORIES: (
            DataValidator(Entity.ERP_CATEGORIES.value)
            .add_column_order_check(silver_columns(Entity.ERP_CATEGORIES))
            .add_not_null_check("category_id")
            .add_unique_check("category_id")
        ),
    }

    # Unmatched references are legal; they surface as null attributes in gold
    if Entity.ERP_CATEGORIES in silver:
        validators[Entity.CRM_PRODUCTS].add_referential_integrity_check(
            "category_id", silver[Entity.ERP_CATEGORIES], "category_id", severity=W
        )
    if Entity.CRM_CUSTOMERS in silver:
        validators[Entity.CRM_SALES].add_referential_integrity_check(
            "customer_id", silver[Entity.CRM_CUSTOMERS], "customer_id", severity=W
        )

    return {entity: v for entity, v in validators.items() if entity in silver}


def create_gold_validators(gold: Mapping[GoldTable, pl.DataFrame]) -> Dict[GoldTable, DataValidator]:
    """Pre-configured suites for the gold star schema"""
    W = ValidationSeverity.WARNING

    validators = {
        GoldTable.DIM_CUSTOMERS: (
            DataValidator(GoldTable.DIM_CUSTOMERS.value)
            .add_column_order_check(gold_columns(GoldTable.DIM_CUSTOMERS))
            .add_not_null_check("customer_key")
            .add_unique_check("customer_key")
            .add_unique_check("customer_id")
        ),
        GoldTable.DIM_PRODUCTS: (
            DataValidator(GoldTable.DIM_PRODUCTS.value)
            .add_column_order_check(gold_columns(GoldTable.DIM_PRODUCTS))
            .add_not_null_check("product_key")
            .add_unique_check("product_key")
        ),
        GoldTable.FACT_SALES: (
            DataValidator(GoldTable.FACT_SALES.value)
            .add_column_order_check(gold_columns(GoldTable.FACT_SALES))
            .add_not_null_check("product_key", severity=W)
            .add_not_null_check("customer_key", severity=W)
        ),
    }

    fact = validators[GoldTable.FACT_SALES]
    if GoldTable.DIM_PRODUCTS in gold:
        fact.add_referential_integrity_check(
            "product_key", gold[GoldTable.DIM_PRODUCTS], "product_key", severity=W
        )
    if GoldTable.DIM_CUSTOMERS in gold:
        fact.add_referential_integrity_check(
            "customer_key", gold[GoldTable.DIM_CUSTOMERS], "customer_key", severity=W
        )

    return {table: v for table, v in validators.items() if table in gold}


def run_validators(
    validators: Mapping[Any, DataValidator],
    tables: Mapping[Any, pl.DataFrame],
) -> Dict[str, ValidationResult]:
    """Validate each table with its suite; results keyed by table name"""
    return {
        validator.table: validator.validate(tables[key])
        for key, validator in validators.items()
    }


def contract_failures(results: Mapping[str, ValidationResult]) -> List[str]:
    """Names of failed ERROR checks as 'table.check'"""
    return [
        f"{table}.{check.name}"
        for table, result in results.items()
        for check in result.errors
    ]
