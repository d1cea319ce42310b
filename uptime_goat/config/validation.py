"""
Configuration validation using Pydantic.
"""

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from uptime_goat.config.models import DEFAULT_ENDPOINTS_URL, DEFAULT_STATE_FILE
from uptime_goat.utils.error_handling import CredentialValidationError

CREDENTIAL_PATTERN = re.compile(r'^[0-9a-f]{32}$', re.IGNORECASE)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_credential(value: Optional[str], name: str) -> str:
    """
    Check that a credential is a 32-character hexadecimal string.

    Args:
        value: Credential value, possibly missing
        name: Variable name used in the error message

    Returns:
        The credential, unchanged

    Raises:
        CredentialValidationError: If the value is missing or malformed
    """
    if not value or len(value) != 32 or not CREDENTIAL_PATTERN.match(value):
        raise CredentialValidationError(name)
    return value


class CredentialsConfigValidator(BaseModel):
    """Pydantic model for credentials; presence is enforced at startup."""
    goat_id: Optional[str] = Field(default=None, description="Goat identifier (32 hex chars)")
    goat_key: Optional[str] = Field(default=None, description="Goat key (32 hex chars)")

    @field_validator('goat_id', 'goat_key', mode='before')
    @classmethod
    def normalize_blank(cls, v):
        """Treat blank strings as missing."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class EndpointsConfigValidator(BaseModel):
    """Pydantic model for endpoint source validation."""
    source_url: str = Field(default=DEFAULT_ENDPOINTS_URL, description="Endpoint mapping URL")
    timeout: int = Field(default=30, ge=1, le=300, description="Fetch timeout in seconds")
    refresh_every_cycles: int = Field(default=10, ge=1, le=10000, description="Cycles between refreshes")

    @field_validator('source_url')
    @classmethod
    def validate_source_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError("Endpoint source URL must start with http:// or https://")
        return v


class ReportingConfigValidator(BaseModel):
    """Pydantic model for report exchange validation."""
    request_timeout: int = Field(default=55, ge=1, le=300, description="Per-request timeout in seconds")
    user_agent: str = Field(default="uptime-goat/0.1.0", min_length=1, description="User-Agent header")


class SchedulingConfigValidator(BaseModel):
    """Pydantic model for scheduling validation."""
    state_file: str = Field(default=DEFAULT_STATE_FILE, min_length=1, description="Continuation state file")
    startup_delay_min_ms: int = Field(default=10000, ge=0, description="Minimum randomized startup delay")
    startup_delay_max_ms: int = Field(default=70000, ge=0, description="Maximum randomized startup delay")
    min_resume_lead_ms: int = Field(default=1000, ge=0, le=60000, description="Minimum lead time to resume a streak")

    @model_validator(mode='after')
    def validate_delay_range(self):
        """Ensure the startup delay range is not inverted."""
        if self.startup_delay_min_ms > self.startup_delay_max_ms:
            raise ValueError(
                f"startup_delay_min_ms ({self.startup_delay_min_ms}) must not exceed "
                f"startup_delay_max_ms ({self.startup_delay_max_ms})"
            )
        return self


class LoggingConfigValidator(BaseModel):
    """Pydantic model for logging validation."""
    level: str = Field(default="INFO", description="Root log level")
    file: Optional[str] = Field(default=None, description="Optional rotating log file")
    structured: bool = Field(default=False, description="Emit JSON log lines")
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=1024, description="Rotation size in bytes")
    backup_count: int = Field(default=5, ge=0, le=100, description="Rotated files to keep")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Expected one of {', '.join(LOG_LEVELS)}")
        return level


class ServiceConfigValidator(BaseModel):
    """Main configuration validator using Pydantic."""
    credentials: CredentialsConfigValidator = Field(default_factory=CredentialsConfigValidator)
    endpoints: EndpointsConfigValidator = Field(default_factory=EndpointsConfigValidator)
    reporting: ReportingConfigValidator = Field(default_factory=ReportingConfigValidator)
    scheduling: SchedulingConfigValidator = Field(default_factory=SchedulingConfigValidator)
    logging: LoggingConfigValidator = Field(default_factory=LoggingConfigValidator)

    model_config = {
        "validate_assignment": True,
        "extra": "forbid"
    }

    def to_config(self) -> 'ServiceConfig':
        """Convert to the dataclass ServiceConfig used at runtime."""
        from uptime_goat.config.models import (
            ServiceConfig, CredentialsConfig, EndpointsConfig, ReportingConfig,
            SchedulingConfig, LoggingConfig
        )

        return ServiceConfig(
            credentials=CredentialsConfig(
                goat_id=self.credentials.goat_id,
                goat_key=self.credentials.goat_key
            ),
            endpoints=EndpointsConfig(
                source_url=self.endpoints.source_url,
                timeout=self.endpoints.timeout,
                refresh_every_cycles=self.endpoints.refresh_every_cycles
            ),
            reporting=ReportingConfig(
                request_timeout=self.reporting.request_timeout,
                user_agent=self.reporting.user_agent
            ),
            scheduling=SchedulingConfig(
                state_file=self.scheduling.state_file,
                startup_delay_min_ms=self.scheduling.startup_delay_min_ms,
                startup_delay_max_ms=self.scheduling.startup_delay_max_ms,
                min_resume_lead_ms=self.scheduling.min_resume_lead_ms
            ),
            logging=LoggingConfig(
                level=self.logging.level,
                file=self.logging.file,
                structured=self.logging.structured,
                max_file_size=self.logging.max_file_size,
                backup_count=self.logging.backup_count
            )
        )


def validate_config_dict(config_data: Dict[str, Any]) -> ServiceConfigValidator:
    """
    Validate configuration dictionary using Pydantic.

    Args:
        config_data: Configuration dictionary

    Returns:
        Validated configuration object

    Raises:
        ValueError: If validation fails
    """
    try:
        return ServiceConfigValidator(**config_data)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")


def get_env_var_mappings() -> Dict[str, str]:
    """
    Get mapping of environment variables to configuration paths.

    Returns:
        Dictionary mapping environment variable names to config paths
    """
    return {
        # Credentials
        'GOAT_ID': 'credentials.goat_id',
        'GOAT_KEY': 'credentials.goat_key',

        # Endpoint directory
        'GOAT_ENDPOINTS_URL': 'endpoints.source_url',
        'GOAT_ENDPOINTS_TIMEOUT': 'endpoints.timeout',
        'GOAT_REFRESH_EVERY': 'endpoints.refresh_every_cycles',

        # Reporting
        'GOAT_REQUEST_TIMEOUT': 'reporting.request_timeout',

        # Scheduling
        'GOAT_STATE_FILE': 'scheduling.state_file',

        # Logging
        'GOAT_LOG_LEVEL': 'logging.level',
        'GOAT_LOG_FILE': 'logging.file',
        'GOAT_LOG_STRUCTURED': 'logging.structured',
    }
