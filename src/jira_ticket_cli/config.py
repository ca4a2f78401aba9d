"""
Configuration management for jira-ticket-cli
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "jira-ticket-cli"
CONFIG_FILE_NAME = "config.yaml"

# Environment variables consulted when a value is not set in the config file
ENV_OVERRIDES = {
    'jira.url': 'JIRA_URL',
    'jira.email': 'JIRA_EMAIL',
}

OUTPUT_FORMATS = ('table', 'json', 'plain')


def normalize_url(url: str) -> str:
    """Ensure the URL has a scheme and no trailing slash"""
    if not url:
        return ""
    url = url.strip()
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    return url.rstrip('/')


class Config:
    """Configuration manager for jira-ticket-cli"""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration

        Args:
            config_path: Path to configuration file. If None, uses
                ~/.config/jira-ticket-cli/config.yaml
        """
        self.config_data: Dict[str, Any] = {}
        self.custom_config_path = config_path

        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = self._get_config_dir() / CONFIG_FILE_NAME

        self._load()

    def _get_config_dir(self) -> Path:
        """Get configuration directory"""
        return Path.home() / ".config" / CONFIG_DIR_NAME

    def _load(self):
        """Load configuration from file"""
        if not self.config_path.exists():
            logger.debug("No configuration file found, using defaults")
            return

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read configuration file {self.config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid configuration file {self.config_path}: expected a mapping")

        self.config_data = data
        logger.debug(f"Loaded configuration from {self.config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation

        Priority order:
        1. Configuration file
        2. Environment variable (for keys in ENV_OVERRIDES)
        3. Default value

        Args:
            key: Configuration key (e.g., 'jira.url')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._get_nested_value(self.config_data, key)
        if value is not None and value != '':
            return value

        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]

        return default

    def _get_nested_value(self, data: Dict[str, Any], key: str) -> Any:
        """Get nested value from dictionary using dot notation"""
        value = data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return None
        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value using dot notation

        Args:
            key: Configuration key (e.g., 'jira.url')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config_data

        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self):
        """Save configuration to file"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)
            self.config_path.chmod(0o600)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration to {self.config_path}: {e}")
        logger.info(f"Configuration saved to {self.config_path}")

    def clear(self):
        """Remove the configuration file"""
        self.config_data = {}
        try:
            self.config_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ConfigError(f"Failed to remove configuration file {self.config_path}: {e}")
        logger.info(f"Configuration removed from {self.config_path}")

    @property
    def jira_url(self) -> str:
        """Get Jira URL"""
        return normalize_url(self.get('jira.url', ''))

    @property
    def jira_email(self) -> str:
        """Get Jira account email"""
        return self.get('jira.email', '')

    @property
    def api_token(self) -> Optional[str]:
        """API token from the environment; otherwise the keyring is used"""
        return os.environ.get('JIRA_API_TOKEN') or None

    @property
    def output(self) -> str:
        """Get default output format"""
        output = self.get('output', 'table')
        return output if output in OUTPUT_FORMATS else 'table'

    @property
    def log_level(self) -> str:
        """Get log level"""
        return self.get('log_level', 'WARNING')

    def require_credentials(self):
        """Raise ConfigError unless URL and email are configured"""
        missing = [name for name, value in (('URL', self.jira_url), ('email', self.jira_email)) if not value]
        if missing:
            raise ConfigError(
                f"Jira {' and '.join(missing)} not configured. "
                "Run 'jira-ticket-cli config set' or set JIRA_URL/JIRA_EMAIL.")
