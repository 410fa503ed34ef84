"""Configuration management for the chunk uploader CLI."""

import json
import os
from pathlib import Path

from common.constants import DEFAULT_CHUNK_SIZE_BYTES, GATEWAY_PORT

DEFAULT_CONFIG_PATH = Path.home() / '.chunkup' / 'config.json'


class Config:
    """Manages uploader configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "server_host": os.environ.get("CHUNKUP_SERVER_HOST", "localhost"),
        "server_port": int(os.environ.get("CHUNKUP_SERVER_PORT", str(GATEWAY_PORT))),
        "timeout": 30,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
        "chunk_size": DEFAULT_CHUNK_SIZE_BYTES,
    }

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.chunkup/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        A corrupt file is kept as <name>.json.bak and defaults are used.
        """
        config = self.DEFAULT_CONFIG.copy()
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return config

        if not self.config_path.exists():
            self._write(config)
            return config

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            try:
                self.config_path.replace(self.config_path.with_suffix('.json.bak'))
            except OSError:
                pass
            return config

        if isinstance(data, dict):
            config.update(data)
        return config

    def _write(self, data: dict) -> None:
        try:
            with open(self.config_path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError:
            pass

    def save(self) -> None:
        """Save current configuration to file."""
        self._write(self.data)

    def get_base_url(self) -> str:
        """
        Get gateway base URL.

        Returns:
            Base URL string (e.g., "http://localhost:3000")
        """
        host = self.data.get('server_host', 'localhost')
        port = self.data.get('server_port', GATEWAY_PORT)
        return f"http://{host}:{port}"

    def get_timeout(self) -> int:
        return self.data.get('timeout', 30)

    def get_chunk_size(self) -> int:
        return int(self.data.get('chunk_size', DEFAULT_CHUNK_SIZE_BYTES))

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }
