"""Tenant row limits."""

import logging
from pathlib import Path

from crossmodel.config import Settings, get_settings
from crossmodel.core.services.config_loader import ConfigLoadError, load_mapping

logger = logging.getLogger(__name__)


def load_row_limits(path: Path) -> dict[str, int]:
    """Load a YAML mapping of tenant id to row limit.

    Example file:
        acme: 100
        globex: 5000
        initech: -1

    Raises:
        ConfigLoadError: If the file is invalid or a limit is not an integer >= -1.
    """
    limits: dict[str, int] = {}
    for tenant, limit in load_mapping(path).items():
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < -1:
            raise ConfigLoadError(
                f"Row limit for tenant {tenant!r} must be an integer >= -1, got {limit!r}"
            )
        limits[str(tenant)] = limit
    return limits


class ConfiguredRowLimits:
    """Row limits from settings: per-tenant overrides plus a default.

    Args:
        settings: Source of ``default_row_limit`` and ``row_limits_file``.
        limits: Explicit per-tenant limits; read from ``row_limits_file``
            when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        limits: dict[str, int] | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.default = settings.default_row_limit
        if limits is not None:
            self.limits = {str(k): v for k, v in limits.items()}
        elif settings.row_limits_file is not None:
            self.limits = load_row_limits(settings.row_limits_file)
            logger.debug(f"Loaded row limits for {len(self.limits)} tenants")
        else:
            self.limits = {}

    def row_limit(self, tenant_id: str | int | None) -> int:
        """Return the tenant's row limit, or -1 for unlimited."""
        if tenant_id is None:
            return self.default
        return self.limits.get(str(tenant_id), self.default)
