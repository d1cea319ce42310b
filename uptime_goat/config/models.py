"""
Configuration data models.
"""

from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_ENDPOINTS_URL = (
    "https://raw.githubusercontent.com/1rabbit/goat_servers/refs/heads/main/uptime_endpoints"
)
DEFAULT_STATE_FILE = "/data/last_report_timestamp"


@dataclass
class CredentialsConfig:
    """Report credentials; normally supplied through GOAT_ID / GOAT_KEY."""
    goat_id: Optional[str] = None
    goat_key: Optional[str] = None


@dataclass
class EndpointsConfig:
    """Endpoint directory source configuration."""
    source_url: str = DEFAULT_ENDPOINTS_URL
    timeout: int = 30  # seconds
    refresh_every_cycles: int = 10


@dataclass
class ReportingConfig:
    """Report exchange configuration."""
    request_timeout: int = 55  # seconds
    user_agent: str = "uptime-goat/0.1.0"


@dataclass
class SchedulingConfig:
    """Startup and continuation configuration."""
    state_file: str = DEFAULT_STATE_FILE
    startup_delay_min_ms: int = 10000
    startup_delay_max_ms: int = 70000
    min_resume_lead_ms: int = 1000


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    structured: bool = False
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class ServiceConfig:
    """Main service configuration container."""
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    endpoints: EndpointsConfig = field(default_factory=EndpointsConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration settings.

        Credentials are checked separately at startup, since their absence
        is only fatal for commands that actually report.

        Returns:
            List of validation errors, empty if valid
        """
        errors = []

        if not self.endpoints.source_url.startswith(('http://', 'https://')):
            errors.append(f"Endpoint source URL must be http(s): {self.endpoints.source_url}")

        if self.endpoints.timeout <= 0:
            errors.append("Endpoint fetch timeout must be positive")

        if self.endpoints.refresh_every_cycles < 1:
            errors.append("Endpoint refresh period must be at least one cycle")

        if self.reporting.request_timeout <= 0:
            errors.append("Report request timeout must be positive")

        if self.scheduling.startup_delay_min_ms < 0:
            errors.append("Startup delay must be non-negative")

        if self.scheduling.startup_delay_min_ms > self.scheduling.startup_delay_max_ms:
            errors.append("Minimum startup delay must not exceed maximum startup delay")

        if not self.scheduling.state_file:
            errors.append("State file path cannot be empty")

        return errors
