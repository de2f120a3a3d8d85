import json
import os
import shutil
import tempfile
from pathlib import Path

import pytest

from playgen.crosscutting import config as config_module
from playgen.crosscutting.config import (
    ConfigManager, ConfigError, get_config_manager, setup_config,
    DEFAULT_MARKET, DEFAULT_REQUEST_DELAY_MS, DEFAULT_SEARCH_LIMIT,
)


class TestConfigManager:
    """Tests for ConfigManager class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.manager = ConfigManager(self.temp_dir)

    def teardown_method(self):
        """Clean up test fixtures."""
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_initialization(self):
        """Test ConfigManager initialization."""
        assert self.manager.config_dir == Path(self.temp_dir)
        assert self.manager.credentials_file == Path(self.temp_dir) / 'credentials.json'
        assert self.manager.env_file == Path(self.temp_dir) / '.env'
        assert self.manager.config_dir.exists()

    def test_creates_missing_config_dir(self):
        nested = os.path.join(self.temp_dir, 'a', 'b')

        ConfigManager(nested)

        assert os.path.isdir(nested)

    def test_load_credentials_missing_file(self):
        """Test loading credentials from non-existent file."""
        assert self.manager.load_credentials() == {}

    def test_load_credentials_invalid_json(self):
        """Test loading credentials from corrupted file."""
        with open(self.manager.credentials_file, 'w') as f:
            f.write('{not json')

        with pytest.raises(ConfigError, match='Failed to load credentials'):
            self.manager.load_credentials()

    def _write_credentials(self, credentials):
        with open(self.manager.credentials_file, 'w') as f:
            json.dump(credentials, f)

    def _write_env(self, text):
        with open(self.manager.env_file, 'w') as f:
            f.write(text)

    def test_load_credentials(self):
        """Test reading stored credentials."""
        self._write_credentials({'lastfm': {'api_key': 'lastfm-key'}})

        assert self.manager.load_credentials() == {'lastfm': {'api_key': 'lastfm-key'}}

    def test_load_env_vars(self):
        """Test reading the .env file."""
        self._write_env('PLAYGEN_MARKET=SE\nLASTFM_API_KEY=k\n')

        assert self.manager.load_env_vars() == {'PLAYGEN_MARKET': 'SE', 'LASTFM_API_KEY': 'k'}

    def test_load_env_vars_skips_comments_and_quotes(self):
        self._write_env('# comment\n\nSPOTIFY_CLIENT_ID="quoted-id"\nnot a pair\n')

        assert self.manager.load_env_vars() == {'SPOTIFY_CLIENT_ID': 'quoted-id'}

    def test_environment_takes_precedence(self, monkeypatch):
        """Test value lookup order."""
        self._write_credentials({'spotify': {'client_id': 'stored-id', 'client_secret': 'stored-secret'}})
        self._write_env('SPOTIFY_CLIENT_ID=dotenv-id\n')
        monkeypatch.setenv('SPOTIFY_CLIENT_SECRET', 'env-secret')

        assert self.manager.get_spotify_client_config() == {
            'client_id': 'dotenv-id',
            'client_secret': 'env-secret',
        }

    def test_spotify_config_from_credentials_file(self):
        self._write_credentials({'spotify': {'client_id': 'stored-id', 'client_secret': 'stored-secret'}})

        config = self.manager.get_spotify_client_config()

        assert config['client_id'] == 'stored-id'
        assert config['client_secret'] == 'stored-secret'

    def test_spotify_config_missing_client_id(self):
        """Test error when client id is missing."""
        with pytest.raises(ConfigError, match='SPOTIFY_CLIENT_ID'):
            self.manager.get_spotify_client_config()

    def test_spotify_config_missing_client_secret(self, monkeypatch):
        monkeypatch.setenv('SPOTIFY_CLIENT_ID', 'id')

        with pytest.raises(ConfigError, match='SPOTIFY_CLIENT_SECRET'):
            self.manager.get_spotify_client_config()

    def test_lastfm_api_key_optional(self):
        assert self.manager.get_lastfm_api_key() is None

        self._write_credentials({'lastfm': {'api_key': 'stored-key'}})

        assert self.manager.get_lastfm_api_key() == 'stored-key'

    def test_tunable_defaults(self):
        """Test defaults when nothing is configured."""
        assert self.manager.get_request_delay_ms() == DEFAULT_REQUEST_DELAY_MS
        assert self.manager.get_market() == DEFAULT_MARKET
        assert self.manager.get_search_limit() == DEFAULT_SEARCH_LIMIT

    def test_tunables_from_environment(self, monkeypatch):
        monkeypatch.setenv('PLAYGEN_REQUEST_DELAY_MS', '250')
        monkeypatch.setenv('PLAYGEN_MARKET', 'GB')
        monkeypatch.setenv('PLAYGEN_SEARCH_LIMIT', '10')

        assert self.manager.get_request_delay_ms() == 250
        assert self.manager.get_market() == 'GB'
        assert self.manager.get_search_limit() == 10

    def test_zero_delay_allowed(self, monkeypatch):
        monkeypatch.setenv('PLAYGEN_REQUEST_DELAY_MS', '0')

        assert self.manager.get_request_delay_ms() == 0

    def test_negative_delay_rejected(self, monkeypatch):
        monkeypatch.setenv('PLAYGEN_REQUEST_DELAY_MS', '-5')

        with pytest.raises(ConfigError, match='must not be negative'):
            self.manager.get_request_delay_ms()

    def test_non_integer_delay_rejected(self, monkeypatch):
        monkeypatch.setenv('PLAYGEN_REQUEST_DELAY_MS', 'fast')

        with pytest.raises(ConfigError, match='must be an integer'):
            self.manager.get_request_delay_ms()

    @pytest.mark.parametrize('limit', ['0', '51'])
    def test_search_limit_bounds(self, monkeypatch, limit):
        monkeypatch.setenv('PLAYGEN_SEARCH_LIMIT', limit)

        with pytest.raises(ConfigError, match='between 1 and 50'):
            self.manager.get_search_limit()

    def test_validate_configuration(self, monkeypatch):
        """Test credential validation report."""
        monkeypatch.setenv('SPOTIFY_CLIENT_ID', 'id')

        assert self.manager.validate_configuration() == {
            'spotify_client_id': True,
            'spotify_client_secret': False,
            'lastfm_api_key': False,
        }

    def test_get_config_summary(self, monkeypatch):
        """Test configuration summary does not leak secrets."""
        monkeypatch.setenv('SPOTIFY_CLIENT_ID', 'very-secret-id')
        monkeypatch.setenv('SPOTIFY_CLIENT_SECRET', 'very-secret-secret')

        summary = self.manager.get_config_summary()

        assert summary['config_dir'] == self.temp_dir
        assert summary['validation']['spotify_client_secret'] is True
        assert summary['request_delay_ms'] == DEFAULT_REQUEST_DELAY_MS
        assert summary['market'] == DEFAULT_MARKET
        assert summary['search_limit'] == DEFAULT_SEARCH_LIMIT
        assert 'very-secret' not in json.dumps(summary)


class TestGlobalConfig:
    """Tests for the module level config manager."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        config_module._config_manager = None
        shutil.rmtree(self.temp_dir)

    def test_setup_config_replaces_global(self):
        manager = setup_config(self.temp_dir)

        assert get_config_manager() is manager
        assert manager.config_dir == Path(self.temp_dir)
