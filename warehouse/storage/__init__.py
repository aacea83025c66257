"""
Layer Storage Module
"""
from .layers import LayerStore

__all__ = ["LayerStore"]
