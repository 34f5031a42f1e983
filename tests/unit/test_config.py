"""
Unit tests for the server configuration module.

Tests configuration loading, override precedence and property defaults
using temporary files to avoid modifying actual config.
"""

import logging
import pytest
from unittest.mock import patch

# Import module under test
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from config import Config, ConfigError


@pytest.fixture
def loaded_config(temp_toml_file, tmp_path):
    """Config loaded from config.toml in a mocked config directory."""
    config_file = tmp_path / 'config.toml'
    config_file.write_text(temp_toml_file.read_text())

    with patch.object(Config, 'get_config_dir', return_value=tmp_path):
        return Config()


class TestConfigInitialization:
    """Test configuration initialization."""

    @pytest.mark.unit
    def test_config_loads_from_config_dir(self, loaded_config, tmp_path):
        """Config should load config.toml from the config directory."""
        assert loaded_config._config_file == tmp_path / 'config.toml'

    @pytest.mark.unit
    def test_explicit_config_file(self, temp_toml_file):
        """An explicit path takes precedence over the config directory."""
        config = Config(temp_toml_file)
        assert config.location == 'Test Location'

    @pytest.mark.unit
    def test_config_raises_on_missing_file(self, tmp_path):
        """Config should raise error when file is missing."""
        with patch.object(Config, 'get_config_dir', return_value=tmp_path):
            with pytest.raises(ConfigError, match="Failed to load"):
                Config()

    @pytest.mark.unit
    def test_config_raises_on_invalid_toml(self, tmp_path):
        """Config should raise error on invalid TOML syntax."""
        config_file = tmp_path / 'config.toml'
        config_file.write_text('invalid toml {{{{')

        with pytest.raises(ConfigError):
            Config(config_file)


class TestConfigProperties:
    """Test section properties read from file."""

    @pytest.mark.unit
    def test_network_section(self, loaded_config):
        assert loaded_config.ip_address == ''
        assert loaded_config.port == 5555
        assert loaded_config.threads == 4

    @pytest.mark.unit
    def test_server_section(self, loaded_config):
        assert loaded_config.location == 'Test Location'
        assert loaded_config.verbose_driver_exceptions is True

    @pytest.mark.unit
    def test_logging_section(self, loaded_config):
        assert loaded_config.log_level == logging.DEBUG
        assert loaded_config.log_to_stdout is False
        assert loaded_config.max_size_mb == 5
        assert loaded_config.num_keep_logs == 10

    @pytest.mark.unit
    def test_defaults_for_missing_values(self, tmp_path):
        """Missing items fall back to their defaults."""
        config_file = tmp_path / 'config.toml'
        config_file.write_text("[network]\nport = 5556\n")

        config = Config(config_file)

        assert config.port == 5556
        assert config.ip_address == ''
        assert config.threads == 4
        assert config.location == ''
        assert config.log_level == logging.INFO
        assert config.num_keep_logs == 10

    @pytest.mark.unit
    def test_unknown_log_level_falls_back_to_info(self, tmp_path):
        config_file = tmp_path / 'config.toml'
        config_file.write_text("[logging]\nlog_level = 'CHATTY'\n")

        assert Config(config_file).log_level == logging.INFO


class TestConfigOverrideAndReload:
    """Test the override file and reload."""

    @pytest.mark.unit
    def test_override_takes_precedence(self, temp_toml_file, tmp_path):
        override = tmp_path / 'override.toml'
        override.write_text("[network]\nport = 7777\n")

        with patch.object(Config, 'OVERRIDE_CONFIG_PATH', str(override)):
            config = Config(temp_toml_file)

        assert config.port == 7777
        assert config.threads == 4
        assert config.location == 'Test Location'

    @pytest.mark.unit
    def test_invalid_override_raises(self, temp_toml_file, tmp_path):
        override = tmp_path / 'override.toml'
        override.write_text('[network\n')

        with patch.object(Config, 'OVERRIDE_CONFIG_PATH', str(override)):
            with pytest.raises(ConfigError):
                Config(temp_toml_file)

    @pytest.mark.unit
    def test_reload_config(self, temp_toml_file):
        """reload() should refresh configuration from file."""
        config = Config(temp_toml_file)
        temp_toml_file.write_text(temp_toml_file.read_text().replace('Test Location', 'External Change'))

        config.reload()

        assert config.location == 'External Change'

    @pytest.mark.unit
    def test_repr_includes_class_name(self, loaded_config):
        repr_str = repr(loaded_config)
        assert 'Config' in repr_str
        assert 'config_file' in repr_str


class TestConfigConstants:
    """Test configuration class constants."""

    @pytest.mark.unit
    def test_default_config_file_name(self):
        assert Config.DEFAULT_CONFIG_FILE == 'config.toml'

    @pytest.mark.unit
    def test_section_constants_defined(self):
        assert Config.NETWORK_SECTION == 'network'
        assert Config.SERVER_SECTION == 'server'
        assert Config.LOGGING_SECTION == 'logging'
