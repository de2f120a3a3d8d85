import os
import json
from typing import Dict, Any, Optional
from pathlib import Path


DEFAULT_REQUEST_DELAY_MS = 100
DEFAULT_MARKET = 'US'
DEFAULT_SEARCH_LIMIT = 20


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigManager:
    """Manages credentials and tunables.

    Values are looked up in the process environment first, then in the `.env` file of
    the config directory, then in `credentials.json`.
    """

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize config manager."""
        self.config_dir = Path(config_dir) if config_dir else Path.home() / '.playgen'
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.credentials_file = self.config_dir / 'credentials.json'
        self.env_file = self.config_dir / '.env'

    def load_credentials(self) -> Dict[str, Any]:
        """Load credentials from credentials.json file."""
        if not self.credentials_file.exists():
            return {}

        try:
            with open(self.credentials_file, 'r') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"Failed to load credentials from {self.credentials_file}: {e}")

    def load_env_vars(self) -> Dict[str, str]:
        """Load environment variables from .env file."""
        env_vars = {}

        if self.env_file.exists():
            try:
                with open(self.env_file, 'r') as f:
                    for line in f:
                        line = line.strip()
                        if line and not line.startswith('#') and '=' in line:
                            key, value = line.split('=', 1)
                            env_vars[key.strip()] = value.strip().strip('"\'')
            except IOError as e:
                raise ConfigError(f"Failed to load .env file {self.env_file}: {e}")

        return env_vars

    def get_value(self, key: str, section: Optional[str] = None,
                  field: Optional[str] = None) -> Optional[str]:
        """Resolve a setting from environment, .env file, then credentials.json."""
        value = os.getenv(key)
        if value:
            return value

        value = self.load_env_vars().get(key)
        if value:
            return value

        if section and field:
            stored = self.load_credentials().get(section) or {}
            value = stored.get(field)
            if value:
                return str(value)

        return None

    def _get_int(self, key: str, default: int) -> int:
        raw = self.get_value(key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(f"{key} must be an integer, got '{raw}'")

    def get_spotify_client_config(self) -> Dict[str, str]:
        """Get Spotify client-credentials configuration."""
        client_id = self.get_value('SPOTIFY_CLIENT_ID', 'spotify', 'client_id')
        client_secret = self.get_value('SPOTIFY_CLIENT_SECRET', 'spotify', 'client_secret')

        if not client_id:
            raise ConfigError("SPOTIFY_CLIENT_ID not found in environment")
        if not client_secret:
            raise ConfigError("SPOTIFY_CLIENT_SECRET not found in environment")

        return {
            'client_id': client_id,
            'client_secret': client_secret,
        }

    def get_lastfm_api_key(self) -> Optional[str]:
        """Get Last.fm API key, or None when play counts are unavailable."""
        return self.get_value('LASTFM_API_KEY', 'lastfm', 'api_key')

    def get_request_delay_ms(self) -> int:
        """Fixed delay before every outgoing request."""
        delay = self._get_int('PLAYGEN_REQUEST_DELAY_MS', DEFAULT_REQUEST_DELAY_MS)
        if delay < 0:
            raise ConfigError("PLAYGEN_REQUEST_DELAY_MS must not be negative")
        return delay

    def get_market(self) -> str:
        return self.get_value('PLAYGEN_MARKET') or DEFAULT_MARKET

    def get_search_limit(self) -> int:
        limit = self._get_int('PLAYGEN_SEARCH_LIMIT', DEFAULT_SEARCH_LIMIT)
        if not 1 <= limit <= 50:
            raise ConfigError("PLAYGEN_SEARCH_LIMIT must be between 1 and 50")
        return limit

    def validate_configuration(self) -> Dict[str, bool]:
        """Report which credentials are present."""
        return {
            'spotify_client_id': bool(self.get_value('SPOTIFY_CLIENT_ID', 'spotify', 'client_id')),
            'spotify_client_secret': bool(self.get_value('SPOTIFY_CLIENT_SECRET', 'spotify', 'client_secret')),
            'lastfm_api_key': bool(self.get_lastfm_api_key()),
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        validation = self.validate_configuration()

        return {
            'config_dir': str(self.config_dir),
            'credentials_file': str(self.credentials_file),
            'env_file': str(self.env_file),
            'validation': validation,
            'request_delay_ms': self.get_request_delay_ms(),
            'market': self.get_market(),
            'search_limit': self.get_search_limit(),
        }


_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global config manager, creating it on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def setup_config(config_dir: Optional[str] = None) -> ConfigManager:
    """Setup configuration with custom directory."""
    global _config_manager
    _config_manager = ConfigManager(config_dir)
    return _config_manager
