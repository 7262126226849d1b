"""
Configuration management for Trellis.

This module handles loading and accessing configuration values from config.yaml.
It provides a centralized way to manage composition policy, storage and logging
settings without changing code.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional
import logging


class ConfigManager:
    """
    Manages configuration loading and access for Trellis.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "composition": {
                "max_depth": 3,
                "traversal_margin": 5,
                "rules": {}
            },
            "database": {
                "filename": "trellis.db"
            },
            "paths": {
                "log_file": "trellis.log"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "composition.max_depth")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("composition.max_depth")  # Returns 3
            config.get("database.filename")  # Returns "trellis.db"
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section, {})

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def max_item_depth(self) -> int:
        """Get the maximum nesting depth for roadmap items."""
        return int(self.get("composition.max_depth", 3))

    @property
    def traversal_margin(self) -> int:
        """Get the number of extra levels a traversal may walk before giving up."""
        return int(self.get("composition.traversal_margin", 5))

    @property
    def traversal_limit(self) -> int:
        """Get the hard bound for any walk over parent pointers."""
        return self.max_item_depth + self.traversal_margin

    @property
    def composition_rules(self) -> Dict[str, Any]:
        """Get the parent/child composition matrix override, if any."""
        return self.get("composition.rules", {}) or {}

    @property
    def database_filename(self) -> str:
        """Get database filename."""
        return self.get("database.filename", "trellis.db")

    @property
    def log_filename(self) -> str:
        """Get log file name."""
        return self.get("paths.log_file", "trellis.log")


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        The global ConfigManager instance
    """
    return config
