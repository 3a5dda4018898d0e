import logging
import os
from pathlib import Path

from emgurus.rules.models import Rules

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the service cannot start with the current environment."""


def validate_ops_rules(rules: Rules, data_dir: Path) -> None:
    """
    Validate operational requirements before startup.
    """
    ops = rules.ops

    # 1. Data dir must exist and be writable (SQLite lives there)
    if ops.data_dir_required:
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Data directory {data_dir} cannot be created: {e}") from e
        if not os.access(data_dir, os.W_OK):
            raise ConfigurationError(f"Data directory {data_dir} is not writable")

    # 2. Check Required Env
    missing = [env_var for env_var in ops.required_env if not os.environ.get(env_var)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    logger.info("Configuration validated (data dir %s)", data_dir)


def cors_origins(rules: Rules, override: str | None = None) -> list[str]:
    """Allowed CORS origins; a comma separated override replaces the rules list."""
    if override:
        return [o.strip() for o in override.split(",") if o.strip()]
    return list(rules.cors.allowed_origins)
