"""
Store boundary: schema DDL and helpers to apply it.
"""

from .schema import TABLES, initialize_schema, list_tables, load_schema, open_database

__all__ = ["TABLES", "initialize_schema", "list_tables", "load_schema", "open_database"]
