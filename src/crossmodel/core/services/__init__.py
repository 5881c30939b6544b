"""Business logic services for crossmodel."""

from crossmodel.core.services.config_loader import (
    ConfigLoadError,
    load_mapping,
    load_source_config,
    load_yaml_config,
    mask_sensitive_values,
    substitute_env_vars,
)
from crossmodel.core.services.drivers import AdapterSourceDriver
from crossmodel.core.services.join_service import (
    JoinService,
    JoinServiceError,
    TableNotFoundError,
)
from crossmodel.core.services.query_service import QueryService
from crossmodel.core.services.source_service import (
    SourceExistsError,
    SourceNotFoundError,
    SourceService,
    SourceServiceError,
)
from crossmodel.core.services.tenant import ConfiguredRowLimits, load_row_limits

__all__ = [
    # Config
    "ConfigLoadError",
    "load_mapping",
    "load_row_limits",
    "load_source_config",
    "load_yaml_config",
    "mask_sensitive_values",
    "substitute_env_vars",
    # Drivers
    "AdapterSourceDriver",
    "ConfiguredRowLimits",
    # Joins
    "JoinService",
    "JoinServiceError",
    "TableNotFoundError",
    # Queries
    "QueryService",
    # Sources
    "SourceExistsError",
    "SourceNotFoundError",
    "SourceService",
    "SourceServiceError",
]
