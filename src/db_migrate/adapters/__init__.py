"""Store adapters package.

Provides the ``SourceClient`` / ``DestinationClient`` Protocols and the
concrete async adapters for PostgreSQL and Supabase.

Usage:
    from db_migrate.adapters import AsyncPostgresAdapter, AsyncSupabaseAdapter
    from db_migrate.adapters import DestinationClient, SourceClient
"""

from db_migrate.adapters.base import DestinationClient, SourceClient, quote_ident
from db_migrate.adapters.postgres import AsyncPostgresAdapter
from db_migrate.adapters.supabase import AsyncSupabaseAdapter

__all__ = [
    "SourceClient",
    "DestinationClient",
    "quote_ident",
    "AsyncPostgresAdapter",
    "AsyncSupabaseAdapter",
]
