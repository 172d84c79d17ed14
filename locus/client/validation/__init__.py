"""Response payload validation."""

from .schema import GENERIC_SCHEMA_ID, SchemaValidator

__all__ = ["GENERIC_SCHEMA_ID", "SchemaValidator"]
