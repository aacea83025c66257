"""
Synthetic Staging Data Generator

Writes the six CRM and ERP source extracts with the dirt the real extracts
carry, for demos and end-to-end tests:
- Padded names and lowercase / free-text codes
- Repeated customer rows with different create dates, missing ids
- ERP ids with the NAS prefix or dashes
- Null, negative and inconsistent money
- Zero and short date tokens, future birthdates
- Several versions per product key
"""

from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import polars as pl
import structlog
from faker import Faker

from warehouse.config import get_settings
from warehouse.config.settings import StagingSettings
from warehouse.schemas import Entity, RAW_COLUMNS

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = [
    ("AC", "Accessories", ["Bike Racks", "Bottles and Cages", "Helmets", "Locks", "Pumps"]),
    ("BI", "Bikes", ["Mountain Bikes", "Road Bikes", "Touring Bikes"]),
    ("CL", "Clothing", ["Caps", "Gloves", "Jerseys", "Socks", "Vests"]),
    ("CO", "Components", ["Brakes", "Chains", "Forks", "Handlebars", "Wheels"]),
]

PRODUCT_LINES = ["R", "M", "S", "T", "r", " m ", "", None]
MARITAL_CODES = ["S", "M", "s", " M ", "", None]
CRM_GENDERS = ["F", "M", "f", " M", "", None]
ERP_GENDERS = ["F", "M", "Female", "Male", "female", " MALE ", "", None]
COUNTRIES = ["DE", "US", "USA", "Germany", "United States", "Australia", "Canada", "France", " ", "", None]

START = date(2010, 12, 29)
END = date(2014, 1, 28)


def _date_token(d: date) -> str:
    return d.strftime("%Y%m%d")


# =============================================================================
# GENERATORS
# =============================================================================

class CategoryGenerator:
    """ERP category master (PX_CAT_G1V2)"""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def generate(self) -> pl.DataFrame:
        rows = []
        for code, category, subcategories in CATEGORIES:
            for subcategory in subcategories:
                sub_code = "".join(word[0] for word in subcategory.split())[:2].upper().ljust(2, "X")
                rows.append({
                    "id": f"{code}_{sub_code}",
                    "cat": category,
                    "subcat": subcategory,
                    "maintenance": str(self.rng.choice(["Yes", "No"])),
                })
        return pl.DataFrame(rows).unique(subset=["id"], keep="first", maintain_order=True)


class ProductGenerator:
    """CRM product versions (prd_info)"""

    def __init__(self, rng: np.random.Generator, fake: Faker, categories: pl.DataFrame):
        self.rng = rng
        self.fake = fake
        self.category_ids = categories["id"].to_list()

    def generate(self, n: int = 60) -> pl.DataFrame:
        rows = []
        prd_id = 200
        for i in range(n):
            category_id = str(self.rng.choice(self.category_ids))
            short_key = f"{self.fake.lexify('??').upper()}-{self.fake.bothify('?##?').upper()}-{i:02d}"
            base_cost = float(np.round(self.rng.uniform(1, 1500), 0))
            line = self.rng.choice(PRODUCT_LINES)
            name = f"{self.fake.word().title()} {self.fake.word().title()} {i}"

            # 1-3 versions with strictly increasing start dates
            n_versions = int(self.rng.choice([1, 1, 2, 3]))
            offsets = sorted(self.rng.choice(np.arange(0, 1000), size=n_versions, replace=False))
            for version, offset in enumerate(offsets):
                cost: Optional[float] = base_cost + version * 10
                roll = self.rng.random()
                if roll < 0.05:
                    cost = None
                elif roll < 0.08:
                    cost = -cost

                start = START + timedelta(days=int(offset))
                rows.append({
                    "prd_id": str(prd_id),
                    "prd_key": f"{category_id.replace('_', '-')}-{short_key}",
                    "prd_nm": f"  {name}" if self.rng.random() < 0.1 else name,
                    "prd_cost": None if cost is None else f"{cost:.0f}",
                    "prd_line": None if line is None else str(line),
                    "prd_start_dt": start.isoformat(),
                    # upstream end dates are unreliable and get re-derived
                    "prd_end_dt": (start - timedelta(days=30)).isoformat() if self.rng.random() < 0.5 else None,
                })
                prd_id += 1

        return pl.DataFrame(rows, schema={c: pl.Utf8 for c in RAW_COLUMNS[Entity.CRM_PRODUCTS]})


class CustomerGenerator:
    """CRM customers plus the ERP demographics and locations for the same people"""

    def __init__(self, rng: np.random.Generator, fake: Faker, reference_date: date):
        self.rng = rng
        self.fake = fake
        self.reference_date = reference_date

    def _pad(self, value: str) -> str:
        roll = self.rng.random()
        if roll < 0.05:
            return f" {value}"
        if roll < 0.10:
            return f"{value}  "
        return value

    def generate(self, n: int = 500) -> Tuple[pl.DataFrame, pl.DataFrame, pl.DataFrame]:
        crm, erp, locations = [], [], []

        for i in range(n):
            cst_id = 11000 + i
            cst_key = f"AW{cst_id:08d}"
            first_name, last_name = self.fake.first_name(), self.fake.last_name()
            created = START + timedelta(days=int(self.rng.integers(0, (END - START).days)))

            record = {
                "cst_id": str(cst_id),
                "cst_key": cst_key,
                "cst_firstname": self._pad(first_name),
                "cst_lastname": self._pad(last_name),
                "cst_marital_status": self.rng.choice(MARITAL_CODES),
                "cst_gndr": self.rng.choice(CRM_GENDERS),
                "cst_create_date": created.isoformat(),
            }
            crm.append(record)

            # older duplicate versions of the same customer
            if self.rng.random() < 0.05:
                stale = dict(record)
                stale["cst_create_date"] = (created - timedelta(days=int(self.rng.integers(1, 400)))).isoformat()
                stale["cst_marital_status"] = self.rng.choice(MARITAL_CODES)
                crm.append(stale)

            birthdate = self.reference_date - timedelta(days=int(self.rng.integers(18 * 365, 80 * 365)))
            if self.rng.random() < 0.02:
                birthdate = self.reference_date + timedelta(days=int(self.rng.integers(1, 3650)))
            erp.append({
                "cid": f"NAS{cst_key}" if self.rng.random() < 0.5 else cst_key,
                "bdate": birthdate.isoformat() if self.rng.random() > 0.02 else None,
                "gen": self.rng.choice(ERP_GENDERS),
            })

            locations.append({
                "cid": f"{cst_key[:2]}-{cst_key[2:]}",
                "cntry": self.rng.choice(COUNTRIES),
            })

        # rows without a business key
        for _ in range(max(1, n // 100)):
            crm.append({
                "cst_id": None,
                "cst_key": self.fake.bothify("AW########"),
                "cst_firstname": self.fake.first_name(),
                "cst_lastname": self.fake.last_name(),
                "cst_marital_status": "M",
                "cst_gndr": "F",
                "cst_create_date": START.isoformat(),
            })

        def frame(rows: List[dict], entity: Entity) -> pl.DataFrame:
            return pl.DataFrame(
                [{k: (None if v is None else str(v)) for k, v in row.items()} for row in rows],
                schema={c: pl.Utf8 for c in RAW_COLUMNS[entity]},
            )

        return (
            frame(crm, Entity.CRM_CUSTOMERS),
            frame(erp, Entity.ERP_CUSTOMERS),
            frame(locations, Entity.ERP_LOCATIONS),
        )


class SalesGenerator:
    """CRM sales order lines (sales_details)"""

    def __init__(
        self,
        rng: np.random.Generator,
        customers: pl.DataFrame,
        products: pl.DataFrame,
    ):
        self.rng = rng
        self.customer_ids = customers["cst_id"].drop_nulls().unique(maintain_order=True).to_list()
        self.products = (
            products.select([
                pl.col("prd_key").str.slice(6).alias("short_key"),
                pl.col("prd_cost").cast(pl.Float64, strict=False).abs().fill_null(10.0).alias("cost"),
            ])
            .unique(subset=["short_key"], keep="last", maintain_order=True)
            .rows()
        )

    def _dirty_token(self, d: date) -> str:
        roll = self.rng.random()
        if roll < 0.01:
            return "0"
        if roll < 0.02:
            return str(self.rng.integers(1000, 99999))
        return _date_token(d)

    def generate(self, n_orders: int = 2000) -> pl.DataFrame:
        rows = []
        span = (END - START).days
        for i in range(n_orders):
            order_number = f"SO{43697 + i}"
            customer_id = self.customer_ids[int(self.rng.integers(0, len(self.customer_ids)))]
            ordered = START + timedelta(days=int(self.rng.integers(0, span)))

            for _ in range(int(self.rng.integers(1, 4))):
                short_key, cost = self.products[int(self.rng.integers(0, len(self.products)))]
                quantity = int(self.rng.integers(1, 4))
                price: Optional[float] = float(round(max(cost, 2.0) * 1.4))
                sales: Optional[float] = quantity * price

                roll = self.rng.random()
                if roll < 0.03:
                    sales = None
                elif roll < 0.05:
                    sales = -sales
                elif roll < 0.07:
                    sales = sales + 7
                elif roll < 0.09:
                    sales = 0.0

                roll = self.rng.random()
                if roll < 0.03:
                    price = None
                elif roll < 0.05:
                    price = -price

                rows.append({
                    "sls_ord_num": order_number,
                    "sls_prd_key": short_key,
                    "sls_cust_id": customer_id,
                    "sls_order_dt": self._dirty_token(ordered),
                    "sls_ship_dt": _date_token(ordered + timedelta(days=7)),
                    "sls_due_dt": _date_token(ordered + timedelta(days=12)),
                    "sls_sales": None if sales is None else f"{sales:g}",
                    "sls_quantity": str(quantity),
                    "sls_price": None if price is None else f"{price:g}",
                })

        return pl.DataFrame(rows, schema={c: pl.Utf8 for c in RAW_COLUMNS[Entity.CRM_SALES]})


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class StagingDataGenerator:
    """
    Writes a complete, seeded staging area.

    Example:
        StagingDataGenerator("./data/staging", seed=7).generate_all(n_customers=200)
    """

    def __init__(
        self,
        output_dir: Optional[str] = None,
        seed: int = 42,
        reference_date: Optional[date] = None,
        staging_settings: Optional[StagingSettings] = None,
    ):
        settings = get_settings()
        self.output_dir = Path(output_dir or settings.data_lake.staging_path)
        self.staging = staging_settings or settings.staging
        self.reference_date = reference_date or END
        self.rng = np.random.default_rng(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)

    def _paths(self) -> Dict[Entity, Path]:
        return {
            Entity.CRM_CUSTOMERS: self.output_dir / self.staging.crm_customers_file,
            Entity.CRM_PRODUCTS: self.output_dir / self.staging.crm_products_file,
            Entity.CRM_SALES: self.output_dir / self.staging.crm_sales_file,
            Entity.ERP_CUSTOMERS: self.output_dir / self.staging.erp_customers_file,
            Entity.ERP_LOCATIONS: self.output_dir / self.staging.erp_locations_file,
            Entity.ERP_CATEGORIES: self.output_dir / self.staging.erp_categories_file,
        }

    def generate_all(
        self,
        n_customers: int = 500,
        n_products: int = 60,
        n_orders: int = 2000,
        save: bool = True,
    ) -> Dict[Entity, pl.DataFrame]:
        """Generate every extract, optionally writing them as CSV"""
        categories = CategoryGenerator(self.rng).generate()
        products = ProductGenerator(self.rng, self.fake, categories).generate(n_products)
        customers, demographics, locations = CustomerGenerator(
            self.rng, self.fake, self.reference_date
        ).generate(n_customers)
        sales = SalesGenerator(self.rng, customers, products).generate(n_orders)

        data = {
            Entity.CRM_CUSTOMERS: customers,
            Entity.CRM_PRODUCTS: products,
            Entity.CRM_SALES: sales,
            Entity.ERP_CUSTOMERS: demographics,
            Entity.ERP_LOCATIONS: locations,
            Entity.ERP_CATEGORIES: categories,
        }

        if save:
            self._save_data(data)

        logger.info(
            "Synthetic staging data generated",
            rows={entity.value: df.height for entity, df in data.items()},
        )
        return data

    def _save_data(self, data: Dict[Entity, pl.DataFrame]) -> None:
        for entity, path in self._paths().items():
            path.parent.mkdir(parents=True, exist_ok=True)
            data[entity].write_csv(path)
            logger.debug("Extract written", entity=entity.value, path=str(path))
