"""
Dimensional Model Module
"""
from .assembler import AttributeResolver, DimensionalAssembler, GoldModel

__all__ = ["AttributeResolver", "DimensionalAssembler", "GoldModel"]
