"""
Synthetic Staging Data Module
"""
from .generators import (
    CategoryGenerator,
    CustomerGenerator,
    ProductGenerator,
    SalesGenerator,
    StagingDataGenerator,
)

__all__ = [
    "StagingDataGenerator",
    "CategoryGenerator",
    "CustomerGenerator",
    "ProductGenerator",
    "SalesGenerator",
]
