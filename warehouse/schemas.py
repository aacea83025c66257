"""
Table contracts for every layer.

Raw column lists are what the source extracts deliver; silver and gold
schemas are the polars dtypes the transformations emit.
"""

from enum import Enum
from typing import Dict, List

import polars as pl


class Entity(str, Enum):
    """Conformed entities, one silver table each"""
    CRM_CUSTOMERS = "crm_customers"
    CRM_PRODUCTS = "crm_products"
    CRM_SALES = "crm_sales"
    ERP_CUSTOMERS = "erp_customers"
    ERP_LOCATIONS = "erp_locations"
    ERP_CATEGORIES = "erp_categories"

    @property
    def raw_table(self) -> str:
        return RAW_TABLES[self]


class GoldTable(str, Enum):
    DIM_CUSTOMERS = "dim_customers"
    DIM_PRODUCTS = "dim_products"
    FACT_SALES = "fact_sales"


RAW_TABLES: Dict[Entity, str] = {
    Entity.CRM_CUSTOMERS: "crm_cust_info",
    Entity.CRM_PRODUCTS: "crm_prd_info",
    Entity.CRM_SALES: "crm_sales_details",
    Entity.ERP_CUSTOMERS: "erp_cust_az12",
    Entity.ERP_LOCATIONS: "erp_loc_a101",
    Entity.ERP_CATEGORIES: "erp_px_cat_g1v2",
}

RAW_COLUMNS: Dict[Entity, List[str]] = {
    Entity.CRM_CUSTOMERS: [
        "cst_id", "cst_key", "cst_firstname", "cst_lastname",
        "cst_marital_status", "cst_gndr", "cst_create_date",
    ],
    Entity.CRM_PRODUCTS: [
        "prd_id", "prd_key", "prd_nm", "prd_cost", "prd_line",
        "prd_start_dt", "prd_end_dt",
    ],
    Entity.CRM_SALES: [
        "sls_ord_num", "sls_prd_key", "sls_cust_id", "sls_order_dt",
        "sls_ship_dt", "sls_due_dt", "sls_sales", "sls_quantity", "sls_price",
    ],
    Entity.ERP_CUSTOMERS: ["cid", "bdate", "gen"],
    Entity.ERP_LOCATIONS: ["cid", "cntry"],
    Entity.ERP_CATEGORIES: ["id", "cat", "subcat", "maintenance"],
}

LOAD_TIME_COLUMN = "dwh_load_time"

SILVER_SCHEMAS: Dict[Entity, Dict[str, pl.DataType]] = {
    Entity.CRM_CUSTOMERS: {
        "customer_id": pl.Int64,
        "customer_key": pl.Utf8,
        "first_name": pl.Utf8,
        "last_name": pl.Utf8,
        "marital_status": pl.Utf8,
        "gender": pl.Utf8,
        "create_date": pl.Date,
    },
    Entity.CRM_PRODUCTS: {
        "product_id": pl.Int64,
        "category_id": pl.Utf8,
        "product_key": pl.Utf8,
        "product_name": pl.Utf8,
        "product_cost": pl.Float64,
        "product_line": pl.Utf8,
        "start_date": pl.Date,
        "end_date": pl.Date,
    },
    Entity.CRM_SALES: {
        "order_number": pl.Utf8,
        "product_key": pl.Utf8,
        "customer_id": pl.Int64,
        "order_date": pl.Date,
        "ship_date": pl.Date,
        "due_date": pl.Date,
        "sales": pl.Float64,
        "quantity": pl.Int64,
        "price": pl.Float64,
    },
    Entity.ERP_CUSTOMERS: {
        "customer_key": pl.Utf8,
        "birthdate": pl.Date,
        "gender": pl.Utf8,
    },
    Entity.ERP_LOCATIONS: {
        "customer_key": pl.Utf8,
        "country": pl.Utf8,
    },
    Entity.ERP_CATEGORIES: {
        "category_id": pl.Utf8,
        "category": pl.Utf8,
        "subcategory": pl.Utf8,
        "maintenance": pl.Utf8,
    },
}

GOLD_SCHEMAS: Dict[GoldTable, Dict[str, pl.DataType]] = {
    GoldTable.DIM_CUSTOMERS: {
        "customer_key": pl.Int64,
        "customer_id": pl.Int64,
        "customer_number": pl.Utf8,
        "first_name": pl.Utf8,
        "last_name": pl.Utf8,
        "gender": pl.Utf8,
        "birthdate": pl.Date,
        "marital_status": pl.Utf8,
        "country": pl.Utf8,
        "create_date": pl.Date,
    },
    GoldTable.DIM_PRODUCTS: {
        "product_key": pl.Int64,
        "product_id": pl.Int64,
        "product_number": pl.Utf8,
        "product_name": pl.Utf8,
        "category_id": pl.Utf8,
        "category": pl.Utf8,
        "subcategory": pl.Utf8,
        "maintenance_flag": pl.Utf8,
        "cost": pl.Float64,
        "product_line": pl.Utf8,
        "start_date": pl.Date,
    },
    GoldTable.FACT_SALES: {
        "order_number": pl.Utf8,
        "product_key": pl.Int64,
        "customer_key": pl.Int64,
        "order_date": pl.Date,
        "shipping_date": pl.Date,
        "due_date": pl.Date,
        "sales_amount": pl.Float64,
        "quantity": pl.Int64,
        "price": pl.Float64,
    },
}


def silver_columns(entity: Entity) -> List[str]:
    """Silver column order, load metadata last"""
    return list(SILVER_SCHEMAS[entity]) + [LOAD_TIME_COLUMN]


def gold_columns(table: GoldTable) -> List[str]:
    return list(GOLD_SCHEMAS[table])
