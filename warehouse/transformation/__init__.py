"""
Data Transformation Module
"""
from .cleaners import DataCleaner, clean_dataframe
from .dedup import DeduplicationResolver, DedupPolicy, DEDUP_POLICIES
from .enrichers import DataEnricher
from .transformers import SilverTransformer, TransformResult

__all__ = [
    "DataCleaner",
    "clean_dataframe",
    "DeduplicationResolver",
    "DedupPolicy",
    "DEDUP_POLICIES",
    "DataEnricher",
    "SilverTransformer",
    "TransformResult",
]
