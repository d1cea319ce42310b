"""
Configuration management for the uptime goat service.
"""

from .models import (
    ServiceConfig,
    CredentialsConfig,
    EndpointsConfig,
    ReportingConfig,
    SchedulingConfig,
    LoggingConfig
)
from .manager import ConfigManager
from .validation import (
    ServiceConfigValidator,
    validate_config_dict,
    validate_credential,
    get_env_var_mappings
)

__all__ = [
    # Models
    'ServiceConfig',
    'CredentialsConfig',
    'EndpointsConfig',
    'ReportingConfig',
    'SchedulingConfig',
    'LoggingConfig',

    # Manager
    'ConfigManager',

    # Validation
    'ServiceConfigValidator',
    'validate_config_dict',
    'validate_credential',
    'get_env_var_mappings',
]
