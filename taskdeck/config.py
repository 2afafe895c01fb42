"""
Configuration management for TaskDeck.

Loads settings from config.ini with environment variable overrides.
Provides centralized configuration for the storage, ordering and query layers.
"""

import configparser
import os
from pathlib import Path
from typing import Optional, Dict, Any

from taskdeck.logging_config import get_logger

logger = get_logger(__name__)

_DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{Path.home() / '.taskdeck' / 'taskdeck.db'}"


class Config:
    """Application configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file, defaults to ~/.taskdeck/config.ini
        """
        self.config_path = config_path or self._default_config_path()
        self._config = configparser.ConfigParser()
        self._load()

    def _default_config_path(self) -> Path:
        """Get default config path."""
        return Path.home() / ".taskdeck" / "config.ini"

    def _load(self):
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                self._config.read(self.config_path)
                logger.info(f"Loaded configuration from {self.config_path}")
            except configparser.Error as e:
                logger.warning(f"Failed to read config file: {e}. Using defaults.")
        else:
            logger.debug(f"Config file not found at {self.config_path}. Using defaults.")

    def get_database_config(self) -> Dict[str, Any]:
        """
        Get database configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKDECK_DATABASE_URL

        Returns:
            Dictionary with database configuration
        """
        config = {
            'url': os.getenv('TASKDECK_DATABASE_URL') or
                   self._config.get('database', 'url', fallback=_DEFAULT_DATABASE_URL),
        }

        logger.debug(f"Database config: url={config['url']}")

        return config

    def get_position_config(self) -> Dict[str, Any]:
        """
        Get position allocation configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKDECK_POSITION_GAP
        - TASKDECK_POSITION_BASELINE
        - TASKDECK_POSITION_MIN_DELTA

        Returns:
            Dictionary with gap, baseline and min_delta as floats
        """
        config = {
            'gap': float(os.getenv('TASKDECK_POSITION_GAP') or
                         self._config.get('positions', 'gap', fallback='1024')),
            'baseline': float(os.getenv('TASKDECK_POSITION_BASELINE') or
                              self._config.get('positions', 'baseline', fallback='65536')),
            'min_delta': float(os.getenv('TASKDECK_POSITION_MIN_DELTA') or
                               self._config.get('positions', 'min_delta', fallback='1e-6')),
        }

        if config['gap'] <= 0:
            logger.warning(f"Invalid position gap {config['gap']}, using 1024")
            config['gap'] = 1024.0

        logger.debug(f"Position config: gap={config['gap']}, baseline={config['baseline']}, "
                    f"min_delta={config['min_delta']}")

        return config

    def get_query_config(self) -> Dict[str, Any]:
        """
        Get task query configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKDECK_DEFAULT_PAGE_SIZE
        - TASKDECK_MAX_PAGE_SIZE

        Returns:
            Dictionary with query configuration
        """
        config = {
            'default_page_size': int(os.getenv('TASKDECK_DEFAULT_PAGE_SIZE') or
                                     self._config.get('query', 'default_page_size', fallback='20')),
            'max_page_size': int(os.getenv('TASKDECK_MAX_PAGE_SIZE') or
                                 self._config.get('query', 'max_page_size', fallback='100')),
        }

        logger.debug(f"Query config: default_page_size={config['default_page_size']}, "
                    f"max_page_size={config['max_page_size']}")

        return config

    def get_display_config(self) -> Dict[str, Any]:
        """
        Get display configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKDECK_TIMEZONE

        An empty timezone means the server's local timezone is used for
        due-date buckets.

        Returns:
            Dictionary with display configuration
        """
        config = {
            'timezone': os.getenv('TASKDECK_TIMEZONE') or
                       self._config.get('display', 'timezone', fallback='') or None,
        }

        logger.debug(f"Display config: timezone={config['timezone']}")

        return config

    def get(self, section: str, key: str, fallback: Any = None) -> Any:
        """
        Get configuration value with fallback.

        Args:
            section: Config section name
            key: Config key name
            fallback: Default value if not found

        Returns:
            Configuration value or fallback
        """
        return self._config.get(section, key, fallback=fallback)

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get boolean configuration value."""
        return self._config.getboolean(section, key, fallback=fallback)

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get integer configuration value."""
        return self._config.getint(section, key, fallback=fallback)

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get float configuration value."""
        return self._config.getfloat(section, key, fallback=fallback)

    def has_section(self, section: str) -> bool:
        """
        Check if config section exists.

        Args:
            section: Section name to check

        Returns:
            True if section exists
        """
        return self._config.has_section(section)

    def sections(self) -> list:
        """
        Get list of all configuration sections.

        Returns:
            List of section names
        """
        return self._config.sections()
