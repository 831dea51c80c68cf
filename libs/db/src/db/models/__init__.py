"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the statement-ingestion models used by ``statement_ingest``.
"""

from .finance import Base, SiCategory, SiOwner, SiStatement, SiTransaction

__all__ = [
    "Base",
    "SiOwner",
    "SiCategory",
    "SiStatement",
    "SiTransaction",
]
