"""
Staging Ingestion Module
"""
from .staging import LoadResult, StagingFileConfig, StagingLoader

__all__ = ["LoadResult", "StagingFileConfig", "StagingLoader"]
