"""Adapter factory.

Builds the source and destination clients described by
``MigrationSettings``.  Credentials are checked here rather than at
settings load, so commands that never touch a database (``status``,
``reset``) run without them.

Usage:
    from db_migrate.factory import create_destination, create_source

    source = create_source(settings)
    destination = create_destination(settings)
"""

from db_migrate.adapters.base import DestinationClient, SourceClient
from db_migrate.adapters.postgres import AsyncPostgresAdapter
from db_migrate.adapters.supabase import AsyncSupabaseAdapter
from db_migrate.config.models import MigrationSettings
from db_migrate.errors import ConfigurationError


# ============================================================================
# Source
# ============================================================================


def create_source(settings: MigrationSettings) -> SourceClient:
    """Create the source PostgreSQL adapter.

    Uses ``SOURCE_DATABASE_URL`` when set, otherwise the discrete
    ``SOURCE_DB_*`` parameters.

    Raises:
        ConfigurationError: If neither a URL nor a database name is set.
    """
    src = settings.source
    if not src.url and not src.database:
        raise ConfigurationError(
            "Source database not configured. "
            "Set SOURCE_DATABASE_URL or SOURCE_DB_NAME (with SOURCE_DB_HOST, "
            "SOURCE_DB_USER, SOURCE_DB_PASSWORD)."
        )
    return AsyncPostgresAdapter(
        database_url=src.resolved_url(),
        connect_timeout=src.connect_timeout,
    )


# ============================================================================
# Destination
# ============================================================================


def create_destination(settings: MigrationSettings) -> DestinationClient:
    """Create the destination adapter for ``DESTINATION_PROVIDER``.

    Raises:
        ConfigurationError: If the selected provider's credentials are
            missing.
    """
    dest = settings.destination

    if dest.provider == "postgres":
        if not dest.database_url:
            raise ConfigurationError(
                "DESTINATION_DATABASE_URL is required when DESTINATION_PROVIDER=postgres"
            )
        return AsyncPostgresAdapter(
            database_url=dest.database_url,
            connect_timeout=settings.source.connect_timeout,
        )

    if not dest.supabase_url or not dest.supabase_key:
        raise ConfigurationError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required "
            "when DESTINATION_PROVIDER=supabase"
        )

    return AsyncSupabaseAdapter(url=dest.supabase_url, key=dest.supabase_key)
