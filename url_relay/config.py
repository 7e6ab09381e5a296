from typing import Dict, Any
import json
import os

class RelayConfig:
    """Configuration manager for the relay."""

    def __init__(self, config_path: str = None, **overrides: Any):
        """
        Initialize configuration with optional config file path.

        Args:
            config_path: Path to JSON configuration file
            overrides: Values that win over both defaults and the file;
                None values are ignored
        """
        self.config_path = config_path
        self.config = self._load_default_config()

        if config_path:
            if not os.path.exists(config_path):
                raise ValueError(f"Config file not found: {config_path}")
            self._load_config_file()

        self.config.update({k: v for k, v in overrides.items() if v is not None})

    def _load_default_config(self) -> Dict[str, Any]:
        """Load default configuration settings."""
        return {
            "host": "localhost",
            "port": 8080,
            "scheme": "http",
            "reserved_header_prefix": "cf-",
            "upstream_timeout": 30,
            "client_timeout": 5,
            "buffer_size": 65536,
            "max_connections": 128
        }

    def _load_config_file(self) -> None:
        """Load configuration from JSON file."""
        try:
            with open(self.config_path, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Error loading config file: {e}") from e

        if not isinstance(file_config, dict):
            raise ValueError("Error loading config file: top level must be a JSON object")
        self.config.update(file_config)

    def get(self, key: str) -> Any:
        """
        Get configuration value by key.

        Args:
            key: Configuration key

        Returns:
            Configuration value
        """
        return self.config.get(key)
