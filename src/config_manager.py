#!/usr/bin/env python3
"""
Configuration Manager for Slack Thread Harvester
Handles loading and managing configuration files.
"""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from models import ScrollSettings

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_TEMPLATE = """Please summarize the following Slack thread.

{MESSAGES}

Please provide:
1. **Main topics discussed**
   - List separate topics separately and point to the related messages.
2. **Key decisions or conclusions**
3. **Action items**
   - Name the person responsible where the thread says so.
4. **Other notable points**

*Keep the Markdown formatting in your answer, especially links and user mentions.*
"""

class ConfigManager:
    """Manages configuration files and settings"""

    DEFAULT_CONFIG_DIR = Path.home() / ".config" / "slack_thread_harvester"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config manager with optional custom config path"""
        self.config_path = Path(config_path) if config_path else self.DEFAULT_CONFIG_FILE
        self.config_dir = self.config_path.parent

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating default if needed"""
        try:
            if not self.config_path.exists():
                logger.info(f"Config file not found at {self.config_path}, creating default")
                self._create_default_config()

            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)

            logger.debug(f"Loaded config from {self.config_path}")
            return config or {}

        except Exception as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            logger.info("Using default configuration")
            return self._get_default_config()

    def save_config(self, config: Dict[str, Any]) -> None:
        """Save configuration to file"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config, f, default_flow_style=False, allow_unicode=True)

            logger.info(f"Saved config to {self.config_path}")

        except Exception as e:
            logger.error(f"Failed to save config to {self.config_path}: {e}")
            raise

    def _create_default_config(self) -> None:
        """Create default configuration file"""
        default_config = self._get_default_config()
        self.save_config(default_config)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration dictionary"""
        return {
            'default_output': '~/Documents/SlackThreads',
            'scroll': ScrollSettings().to_dict(),
            'fetch': {
                'max_retries': 3,
                'timeout': 30
            },
            'browser': {
                'cdp_url': 'http://localhost:9222',
                'tab_url_match': 'app.slack.com',
                'viewport_width': 1440
            },
            'output': {
                'format': 'markdown',
                'filename_template': 'thread_{timestamp}.md',
                'include_metadata': True,
                'prompt_template': DEFAULT_PROMPT_TEMPLATE
            }
        }

    def get_nested_value(self, config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
        """Get nested configuration value using dot notation (e.g., 'scroll.scroll_delay')"""
        keys = key_path.split('.')
        value = config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def update_config(self, updates: Dict[str, Any]) -> None:
        """Update configuration with new values"""
        config = self.load_config()
        config.update(updates)
        self.save_config(config)

    def get_scroll_settings(self, config: Optional[Dict[str, Any]] = None,
                            overrides: Optional[Dict[str, Any]] = None) -> ScrollSettings:
        """
        Scroll settings from the config's 'scroll' section merged over the defaults

        Args:
            config: Loaded configuration (loaded from file when omitted)
            overrides: Values taking precedence over the file, e.g. CLI flags;
                None values are ignored

        Returns:
            Validated ScrollSettings; defaults if the file holds invalid values
        """
        if config is None:
            config = self.load_config()

        values = copy.deepcopy(ScrollSettings().to_dict())
        values.update(config.get('scroll') or {})

        try:
            settings = ScrollSettings.from_dict(values)
        except ValueError as e:
            logger.warning(f"Invalid scroll settings in {self.config_path}: {e}")
            logger.info("Using default scroll settings")
            settings = ScrollSettings()

        if overrides:
            merged = settings.to_dict()
            merged.update({key: value for key, value in overrides.items() if value is not None})
            settings = ScrollSettings.from_dict(merged)

        return settings
