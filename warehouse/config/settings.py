"""
CRM/ERP Sales Warehouse
Centralized Configuration Management

Pydantic settings sections with environment variable support. Each section
reads its own prefix, the aggregate `Settings` reads the `.env` file.
"""

from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional, Tuple
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataLakeSettings(BaseSettings):
    """Layer storage locations"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    lake_path: str = Field(default="./data", description="Data lake root path")
    staging_path: str = Field(default="./data/staging", description="Raw source extracts (bronze)")
    silver_path: str = Field(default="./data/silver", description="Conformed layer path")
    gold_path: str = Field(default="./data/gold", description="Dimensional layer path")
    compression: str = Field(default="zstd", description="Parquet compression codec")


class StagingSettings(BaseSettings):
    """Source extract layout inside the staging path"""

    model_config = SettingsConfigDict(env_prefix="STAGING_")

    crm_customers_file: str = Field(default="source_crm/cust_info.csv")
    crm_products_file: str = Field(default="source_crm/prd_info.csv")
    crm_sales_file: str = Field(default="source_crm/sales_details.csv")
    erp_customers_file: str = Field(default="source_erp/CUST_AZ12.csv")
    erp_locations_file: str = Field(default="source_erp/LOC_A101.csv")
    erp_categories_file: str = Field(default="source_erp/PX_CAT_G1V2.csv")

    delimiter: str = Field(default=",", description="CSV delimiter")
    encoding: str = Field(default="utf8", description="CSV encoding")
    null_values: List[str] = Field(
        default=["", "NULL", "null", "None", "NA", "N/A"],
        description="Tokens read as null",
    )


class PipelineSettings(BaseSettings):
    """Run behaviour"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    reference_time: Optional[datetime] = Field(
        default=None,
        description="Pinned 'now' for the run; current UTC time when unset",
    )
    parallel_entities: bool = Field(default=True, description="Transform silver entities concurrently")
    enforce_contracts: bool = Field(default=True, description="Abort when an ERROR-level layer check fails")


class MasterDataSettings(BaseSettings):
    """Cross-source attribute precedence"""

    model_config = SettingsConfigDict(env_prefix="MDM_")

    attribute_precedence: Dict[str, List[str]] = Field(
        default={"gender": ["crm", "erp"]},
        description="Ordered source list per conformed attribute, master first",
    )
    fallback_value: str = Field(default="Unknown", description="Value that yields to the next source")

    @field_validator("attribute_precedence")
    @classmethod
    def validate_precedence(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Every attribute needs at least one source"""
        for attribute, sources in v.items():
            if not sources:
                raise ValueError(f"No sources declared for attribute '{attribute}'")
        return v


class AnalyticsSettings(BaseSettings):
    """Thresholds used by the analytical views"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    moving_average_window: int = Field(default=3, ge=1)

    vip_spend_threshold: float = Field(default=5000.0)
    tenure_months_threshold: int = Field(default=12)

    high_performer_threshold: float = Field(default=50000.0)
    mid_performer_threshold: float = Field(default=10000.0)

    # Exclusive upper bounds of the product cost bands
    cost_band_bounds: List[Tuple[float, str]] = Field(
        default=[(100.0, "Below 100"), (501.0, "100-500"), (1001.0, "501-1000")],
    )
    cost_band_overflow: str = Field(default="Above 1000")

    # Exclusive upper bounds of the age brackets
    age_brackets: List[Tuple[int, str]] = Field(
        default=[(20, "Under 20"), (30, "20-29"), (40, "30-39"), (50, "40-49")],
    )
    age_bracket_overflow: str = Field(default="50 and Above")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="crm-erp-warehouse", description="Application name")
    app_env: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    staging: StagingSettings = Field(default_factory=StagingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    master_data: MasterDataSettings = Field(default_factory=MasterDataSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
