"""Unit tests for ConfigManager.

Covers loading, saving, environment overrides and password encryption.
"""

from __future__ import annotations

import stat

import pytest
import toml
from cryptography.fernet import Fernet

from trsync.config.config import ENCRYPTED_PREFIX, ConfigManager, default_config_path
from trsync.models import Config, ConnectionConfig, LogLevel, UIConfig
from trsync.utils.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.config]


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "conf" / "trsync.toml"


@pytest.fixture
def manager(config_file):
    return ConfigManager(config_file)


@pytest.fixture
def config():
    return Config(
        connection=ConnectionConfig(host="nas.local", port=9092, username="admin", password="s3cret"),
        ui=UIConfig(language="ru"),
    )


def test_default_path_from_env(tmp_path):
    """$TRSYNC_CONFIG wins over the user config dir."""
    assert default_config_path() == tmp_path / "trsync.toml"
    assert ConfigManager().config_file == tmp_path / "trsync.toml"


def test_load_without_file_returns_none(manager):
    """Nothing persisted yet."""
    assert not manager.exists()
    assert manager.load() is None


def test_round_trip(manager, config):
    """Saved settings load back unchanged."""
    manager.save(config)
    assert manager.load() == config


def test_password_encrypted_at_rest(manager, config, config_file):
    """The password never reaches the file in plaintext."""
    manager.save(config)

    stored = toml.load(config_file)["connection"]["password"]
    assert stored != "s3cret"
    assert stored.startswith(ENCRYPTED_PREFIX)
    assert "s3cret" not in config_file.read_text()
    assert manager.key_file.exists()


def test_files_are_private(manager, config, config_file):
    """Config and key are readable by the owner only."""
    manager.save(config)
    assert stat.S_IMODE(config_file.stat().st_mode) == 0o600
    assert stat.S_IMODE(manager.key_file.stat().st_mode) == 0o600


def test_new_manager_reuses_key(manager, config, config_file):
    """A second manager decrypts with the stored key."""
    manager.save(config)
    assert ConfigManager(config_file).load().connection.password == "s3cret"


def test_plaintext_password_passes_through(manager, config_file):
    """Hand-edited plaintext passwords are accepted."""
    config_file.parent.mkdir(parents=True)
    config_file.write_text('[connection]\nhost = "h"\npassword = "plain"\n')
    assert manager.load().connection.password == "plain"


@pytest.mark.parametrize("password", ["gAAAAbcd", "gAAAAABkZmVybmV0LWxvb2thbGlrZQ==", "fernet:abc"])
def test_token_like_password_round_trips(manager, config_file, password):
    """Passwords that resemble stored tokens are still encrypted."""
    config = Config(connection=ConnectionConfig(host="h", password=password))
    manager.save(config)

    stored = toml.load(config_file)["connection"]["password"]
    assert stored.startswith(ENCRYPTED_PREFIX)
    assert stored != password
    assert ConfigManager(config_file).load().connection.password == password


def test_plaintext_resembling_fernet_token_passes_through(manager, config_file):
    """Only the prefix marks a stored value as encrypted."""
    config_file.parent.mkdir(parents=True)
    config_file.write_text('[connection]\nhost = "h"\npassword = "gAAAAbcd"\n')
    assert manager.load().connection.password == "gAAAAbcd"


def test_wrong_key_fails(manager, config, config_file):
    """A token from another key is a configuration error."""
    manager.save(config)
    manager.key_file.write_bytes(Fernet.generate_key())

    with pytest.raises(ConfigurationError, match="decrypt"):
        ConfigManager(config_file).load()


def test_env_overrides(manager, config, monkeypatch):
    """Environment variables override the file."""
    manager.save(config)
    monkeypatch.setenv("TRSYNC_HOST", "10.0.0.2")
    monkeypatch.setenv("TRSYNC_PORT", "51413")
    monkeypatch.setenv("TRSYNC_LOG_LEVEL", "debug")

    loaded = manager.load()

    assert loaded.connection.host == "10.0.0.2"
    assert loaded.connection.port == 51413
    assert loaded.connection.username == "admin"
    assert loaded.observability.log_level == LogLevel.DEBUG


def test_bad_env_port(manager, config, monkeypatch):
    """A non-numeric port override is rejected."""
    manager.save(config)
    monkeypatch.setenv("TRSYNC_PORT", "http")
    with pytest.raises(ConfigurationError, match="TRSYNC_PORT"):
        manager.load()


def test_invalid_toml(manager, config_file):
    """Unparseable files raise ConfigurationError."""
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[connection\nhost=")
    with pytest.raises(ConfigurationError, match="Failed to load"):
        manager.load()


def test_invalid_values(manager, config_file):
    """Values failing validation raise ConfigurationError."""
    config_file.parent.mkdir(parents=True)
    config_file.write_text("[connection]\nport = 70000\n")
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        manager.load()


def test_rpc_path_gets_leading_slash():
    """The RPC path is always absolute."""
    conn = ConnectionConfig(host="h", rpc_path="transmission/rpc", use_https=True)
    assert conn.url == "https://h:9091/transmission/rpc"
