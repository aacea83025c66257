"""
CRM/ERP Sales Warehouse

Consolidates CRM and ERP extracts into a conformed silver layer and a
star-schema gold layer.
"""

__version__ = "1.0.0"
