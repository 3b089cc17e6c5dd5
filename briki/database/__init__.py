"""
Database package exports: Supabase catalog/summaries and local storage.
"""

from briki.database.supabase import (
    SupabasePlanCatalog,
    DocumentSummaryRepository,
    DatabaseError,
)
from briki.database.local_storage import (
    StorageBackend,
    InMemoryStorage,
    JsonFileStorage,
    StorageError,
)

__all__ = [
    "SupabasePlanCatalog",
    "DocumentSummaryRepository",
    "DatabaseError",
    "StorageBackend",
    "InMemoryStorage",
    "JsonFileStorage",
    "StorageError",
]
