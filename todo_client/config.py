"""Configuration management for the todo client."""

import os
import json
from typing import Dict, Any

DEFAULT_SERVER_URL = 'http://127.0.0.1:8000'
# Two clicks on the same item within this window count as a double click.
DEFAULT_DOUBLE_CLICK_DELAY_MS = 200


class Config:
    """JSON-file backed settings: server_url, username, password and
    double_click_delay_ms. Setters write the file straight away."""

    def __init__(self, config_file: str = None):
        self.config_file = config_file or os.environ.get(
            'TODO_CLIENT_CONFIG', os.path.join(os.path.expanduser('~'), '.todo_client.json')
        )
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file."""
        if not os.path.exists(self.config_file):
            self._config = {}
            return
        try:
            with open(self.config_file, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError):
            # If file is corrupted, start with empty config
            data = {}
        self._config = data if isinstance(data, dict) else {}

    def save(self) -> None:
        """Save configuration to file."""
        parent = os.path.dirname(self.config_file)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.config_file, 'w') as f:
            json.dump(self._config, f, indent=2)

    @property
    def server_url(self) -> str:
        return self._config.get('server_url', DEFAULT_SERVER_URL)

    @server_url.setter
    def server_url(self, value: str):
        self._config['server_url'] = value
        self.save()

    @property
    def username(self) -> str:
        return self._config.get('username', '')

    @username.setter
    def username(self, value: str):
        self._config['username'] = value
        self.save()

    @property
    def password(self) -> str:
        return self._config.get('password', '')

    @password.setter
    def password(self, value: str):
        self._config['password'] = value
        self.save()

    @property
    def double_click_delay_ms(self) -> int:
        try:
            return int(self._config.get('double_click_delay_ms', DEFAULT_DOUBLE_CLICK_DELAY_MS))
        except (TypeError, ValueError):
            return DEFAULT_DOUBLE_CLICK_DELAY_MS

    @double_click_delay_ms.setter
    def double_click_delay_ms(self, value: int):
        self._config['double_click_delay_ms'] = int(value)
        self.save()
