"""
Configuration manager: file loading with environment variable overrides.
"""

import hashlib
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from uptime_goat.config.models import ServiceConfig
from uptime_goat.config.validation import validate_config_dict, get_env_var_mappings

logger = logging.getLogger(__name__)

_INT_ENV_VARS = {'GOAT_ENDPOINTS_TIMEOUT', 'GOAT_REFRESH_EVERY', 'GOAT_REQUEST_TIMEOUT'}
_BOOL_ENV_VARS = {'GOAT_LOG_STRUCTURED'}


class ConfigManager:
    """
    Loads service configuration.

    Supports YAML and JSON files; a missing file means "all defaults".
    Environment variables (and a ``.env`` file, if present) override file
    values.
    """

    def __init__(self, config_file_path: str = "config.yaml", load_env_file: bool = True):
        """
        Initialize configuration manager.

        Args:
            config_file_path: Path to the configuration file
            load_env_file: Whether to load a .env file into the environment first
        """
        self.config_file_path = os.path.abspath(config_file_path)
        self.load_env_file = load_env_file
        self._config: Optional[ServiceConfig] = None
        self._config_hash: Optional[str] = None
        self._validation_errors: List[str] = []

    def load_config(self) -> ServiceConfig:
        """
        Load configuration from file with environment variable overrides.

        Returns:
            Loaded and validated configuration

        Raises:
            ValueError: If configuration is invalid
        """
        if self.load_env_file:
            load_dotenv(os.path.join(os.getcwd(), ".env"), override=False)

        current_hash = self._calculate_config_hash()
        if self._config is not None and self._config_hash == current_hash:
            return self._config

        try:
            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            validated = validate_config_dict(config_data)
        except (OSError, ValueError, yaml.YAMLError) as e:
            message = str(e)
            if not message.startswith("Configuration validation failed"):
                message = f"Configuration validation failed: {message}"
            self._validation_errors = [message]
            raise ValueError(message) from e

        self._config = validated.to_config()
        self._config_hash = current_hash
        self._validation_errors = []
        return self._config

    def get_config(self) -> ServiceConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def get_validation_errors(self) -> List[str]:
        return self._validation_errors.copy()

    def validate_config_file(self) -> Tuple[bool, List[str]]:
        """
        Validate configuration file without storing it.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        try:
            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            config = validate_config_dict(config_data).to_config()
        except Exception as e:
            return False, [str(e)]

        errors = config.validate()
        return len(errors) == 0, errors

    def config_file_exists(self) -> bool:
        return os.path.exists(self.config_file_path)

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration data from file; empty if the file is absent."""
        if not os.path.exists(self.config_file_path):
            logger.debug(f"No configuration file at {self.config_file_path}, using defaults")
            return {}

        with open(self.config_file_path, 'r', encoding='utf-8') as f:
            if self.config_file_path.endswith(('.yaml', '.yml')):
                data = yaml.safe_load(f) or {}
            elif self.config_file_path.endswith('.json'):
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {self.config_file_path}")

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {self.config_file_path}")
        return data

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, config_path_str in get_env_var_mappings().items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue

            config_path = config_path_str.split('.')

            current = config_data
            for key in config_path[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]

            current[config_path[-1]] = self._convert_env_value(env_var, env_value)

        return config_data

    def _convert_env_value(self, env_var: str, env_value: str) -> Any:
        """Convert environment variable value to appropriate type."""
        if env_var in _INT_ENV_VARS:
            return int(env_value)
        elif env_var in _BOOL_ENV_VARS:
            return env_value.lower() in ('true', '1', 'yes', 'on')
        else:
            return env_value

    def create_default_config(self, force: bool = False) -> bool:
        """
        Write a default configuration file.

        Credentials are deliberately left out; they belong in the environment.

        Args:
            force: Overwrite an existing file

        Returns:
            True if the file was written, False if it already existed
        """
        if os.path.exists(self.config_file_path) and not force:
            return False

        defaults = ServiceConfig()
        default_config = {
            'endpoints': {
                'source_url': defaults.endpoints.source_url,
                'timeout': defaults.endpoints.timeout,
                'refresh_every_cycles': defaults.endpoints.refresh_every_cycles
            },
            'reporting': {
                'request_timeout': defaults.reporting.request_timeout
            },
            'scheduling': {
                'state_file': defaults.scheduling.state_file,
                'startup_delay_min_ms': defaults.scheduling.startup_delay_min_ms,
                'startup_delay_max_ms': defaults.scheduling.startup_delay_max_ms,
                'min_resume_lead_ms': defaults.scheduling.min_resume_lead_ms
            },
            'logging': {
                'level': defaults.logging.level,
                'structured': defaults.logging.structured
            }
        }

        config_dir = os.path.dirname(self.config_file_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(self.config_file_path, 'w', encoding='utf-8') as f:
            if self.config_file_path.endswith('.json'):
                json.dump(default_config, f, indent=2)
            else:
                yaml.dump(default_config, f, default_flow_style=False, indent=2, sort_keys=False)

        return True

    def _calculate_config_hash(self) -> str:
        """Hash of the configuration file content plus relevant environment."""
        content = b""
        if os.path.exists(self.config_file_path):
            try:
                with open(self.config_file_path, 'rb') as f:
                    content = f.read()
            except OSError:
                return ""

        env_vars = []
        for env_var in get_env_var_mappings().keys():
            env_value = os.getenv(env_var)
            if env_value is not None:
                env_vars.append(f"{env_var}={env_value}")

        combined_content = content + "|".join(sorted(env_vars)).encode()
        return hashlib.sha256(combined_content).hexdigest()
