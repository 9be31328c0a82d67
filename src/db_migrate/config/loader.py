"""Load ``MigrationSettings`` from the environment.

Variables come from the process environment or a ``.env`` file; process
environment values win.  Each settings group reads its own variables, so
the loader only wires the groups together and applies CLI overrides.
"""

from pathlib import Path
from typing import Any

from pydantic import ValidationError

from db_migrate.config.models import DestinationSettings, MigrationSettings, SourceSettings
from db_migrate.errors import ConfigurationError


def load_settings(
    env_file: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> MigrationSettings:
    """Build settings from environment variables.

    Args:
        env_file: Path to a ``.env`` file.  When ``None``, ``.env`` in the
            working directory is used if present.
        overrides: Top-level settings fields that replace environment values
            (CLI flags such as ``batch_size``).  ``None`` values are ignored.

    Returns:
        Validated, frozen ``MigrationSettings``.

    Raises:
        ConfigurationError: If a variable has an invalid value, or an
            explicit ``env_file`` does not exist.

    Example:
        >>> settings = load_settings(overrides={"batch_size": 500})
        >>> settings.batch_size
        500
    """
    file_kwargs: dict[str, Any] = {}
    if env_file is not None:
        if not env_file.exists():
            raise ConfigurationError(f"Environment file not found: {env_file}")
        file_kwargs["_env_file"] = env_file

    values = {k: v for k, v in (overrides or {}).items() if v is not None}

    try:
        return MigrationSettings(
            source=SourceSettings(**file_kwargs),
            destination=DestinationSettings(**file_kwargs),
            **file_kwargs,
            **values,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
