"""
Test Suite Configuration
"""
from datetime import datetime
from typing import Dict, List, Optional

import pytest
import polars as pl

from warehouse.config import Settings
from warehouse.config.settings import DataLakeSettings, PipelineSettings
from warehouse.schemas import Entity, RAW_COLUMNS


def raw_frame(entity: Entity, rows: List[List[Optional[str]]]) -> pl.DataFrame:
    """All-string raw table, the way the staging loader delivers it"""
    return pl.DataFrame(
        rows,
        schema={col: pl.Utf8 for col in RAW_COLUMNS[entity]},
        orient="row",
    )


@pytest.fixture
def reference_time() -> datetime:
    """Pinned 'now' for every run in the suite"""
    return datetime(2024, 1, 15, 12, 0, 0)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a temporary lake"""
    return Settings(
        app_env="testing",
        debug=True,
        data_lake=DataLakeSettings(
            lake_path=str(tmp_path),
            staging_path=str(tmp_path / "staging"),
            silver_path=str(tmp_path / "silver"),
            gold_path=str(tmp_path / "gold"),
        ),
        pipeline=PipelineSettings(parallel_entities=True, enforce_contracts=True),
    )


@pytest.fixture
def raw_customers() -> pl.DataFrame:
    return raw_frame(Entity.CRM_CUSTOMERS, [
        ["29466", "AW00029466", " Lance ", "Jimenez ", "M", "m", "2023-01-01"],
        ["29466", "AW00029466", "Lance", "Jimenez", "S", "M", "2023-06-01"],
        ["11000", "AW00011000", "Jon", "Yang", " s ", "F", "2022-03-10"],
        [None, "AW00099999", "Ghost", "Row", "M", "F", "2022-01-01"],
        ["11001", "AW00011001", "Eugene", "Huang", None, None, "2021-05-05"],
    ])


@pytest.fixture
def raw_products() -> pl.DataFrame:
    return raw_frame(Entity.CRM_PRODUCTS, [
        ["210", "CO-RF-FR-R92B-58", "HL Road Frame", None, "R", "2021-01-01", None],
        ["211", "CO-RF-FR-R92B-58", "HL Road Frame v2", "1000", " r ", "2022-01-01", "2021-06-30"],
        ["212", "AC-HE-HL-U509-R", " Sport-100 Helmet", "-12", "S", "2021-07-01", None],
        ["213", "BI-RB-BK-R93R-62", "Road-150 Red", "2171", None, "2021-07-01", None],
    ])


@pytest.fixture
def raw_sales() -> pl.DataFrame:
    return raw_frame(Entity.CRM_SALES, [
        ["SO1", "FR-R92B-58", "29466", "20230105", "20230112", "20230117", "0", "3", "10"],
        ["SO2", "HL-U509-R", "11000", "20231301", "20230112", "0", "100", "5", None],
        ["SO2", "BK-R93R-62", "11000", "2023010", "20230112", "20230117", "50", "2", "-25"],
        ["SO3", "XX-UNKNOWN", "99999", "20230201", "20230208", "20230213", None, "0", None],
        ["SO4", "BK-R93R-62", "11001", "20230301", "20230308", "20230313", "4342", "2", "2171"],
    ])


@pytest.fixture
def raw_sales_irregular() -> pl.DataFrame:
    """Padded and decimal date tokens, returns and cent-level rounding"""
    return raw_frame(Entity.CRM_SALES, [
        ["SO5", "FR-R92B-58", "29466", "020230101", "20230101.0", "00000000", "9.9", "3", "3.3"],
        ["SO6", "HL-U509-R", "11000", " 20230105 ", "20230112", "20230117", "50", "-5", None],
    ])


@pytest.fixture
def raw_erp_customers() -> pl.DataFrame:
    return raw_frame(Entity.ERP_CUSTOMERS, [
        ["NASAW00029466", "1980-05-05", "Female"],
        ["AW00011000", "2030-01-01", " m "],
        ["AW00011001", "1995-02-20", "Male"],
    ])


@pytest.fixture
def raw_locations() -> pl.DataFrame:
    return raw_frame(Entity.ERP_LOCATIONS, [
        ["AW-00029466", "DE"],
        ["AW-00011000", " USA "],
        ["AW-00011001", ""],
    ])


@pytest.fixture
def raw_categories() -> pl.DataFrame:
    return raw_frame(Entity.ERP_CATEGORIES, [
        ["CO_RF", "Components", "Road Frames", "Yes"],
        ["AC_HE", "Accessories", "Helmets", "No"],
    ])


@pytest.fixture
def staging_tables(
    raw_customers,
    raw_products,
    raw_sales,
    raw_erp_customers,
    raw_locations,
    raw_categories,
) -> Dict[Entity, pl.DataFrame]:
    """Complete staging snapshot"""
    return {
        Entity.CRM_CUSTOMERS: raw_customers,
        Entity.CRM_PRODUCTS: raw_products,
        Entity.CRM_SALES: raw_sales,
        Entity.ERP_CUSTOMERS: raw_erp_customers,
        Entity.ERP_LOCATIONS: raw_locations,
        Entity.ERP_CATEGORIES: raw_categories,
    }


@pytest.fixture
def staging_dir(tmp_path, staging_tables, test_settings):
    """Staging area on disk laid out like the source loader writes it"""
    root = tmp_path / "staging"
    staging = test_settings.staging
    files = {
        Entity.CRM_CUSTOMERS: staging.crm_customers_file,
        Entity.CRM_PRODUCTS: staging.crm_products_file,
        Entity.CRM_SALES: staging.crm_sales_file,
        Entity.ERP_CUSTOMERS: staging.erp_customers_file,
        Entity.ERP_LOCATIONS: staging.erp_locations_file,
        Entity.ERP_CATEGORIES: staging.erp_categories_file,
    }
    for entity, relative in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        staging_tables[entity].write_csv(path)
    return root
