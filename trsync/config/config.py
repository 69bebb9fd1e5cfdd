"""Configuration management for trsync.

Persists the client configuration as TOML, applies environment overrides
on load and keeps the daemon password encrypted at rest.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml
from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from trsync.models import Config
from trsync.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TRSYNC_CONFIG"
KEY_FILE_NAME = ".trsync_key"
# Stored passwords carrying this prefix are Fernet tokens
ENCRYPTED_PREFIX = "fernet:"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    "TRSYNC_HOST": "connection.host",
    "TRSYNC_PORT": "connection.port",
    "TRSYNC_USERNAME": "connection.username",
    "TRSYNC_PASSWORD": "connection.password",
    "TRSYNC_LANGUAGE": "ui.language",
    "TRSYNC_LOG_LEVEL": "observability.log_level",
}


def default_config_path() -> Path:
    """Return the config path from ``$TRSYNC_CONFIG`` or the user config dir."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".config" / "trsync" / "trsync.toml"


class ConfigManager:
    """Loads and saves the persisted configuration snapshot."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to the TOML config file. If None, uses
                ``$TRSYNC_CONFIG`` or ``~/.config/trsync/trsync.toml``.

        """
        self.config_file = Path(config_file) if config_file else default_config_path()
        self._encryption_key: bytes | None = None

    @property
    def key_file(self) -> Path:
        """Path of the Fernet key file stored beside the config."""
        return self.config_file.parent / KEY_FILE_NAME

    def exists(self) -> bool:
        """Return True when a persisted config is present."""
        return self.config_file.exists()

    def load(self) -> Config | None:
        """Load configuration from file and environment.

        Returns:
            The configuration, or None when nothing has been persisted yet.

        Raises:
            ConfigurationError: If the file cannot be parsed or is invalid.

        """
        if not self.exists():
            return None

        try:
            with open(self.config_file, encoding="utf-8") as f:
                config_data: dict[str, Any] = toml.load(f)
        except (OSError, toml.TomlDecodeError) as e:
            msg = f"Failed to load config file {self.config_file}: {e}"
            raise ConfigurationError(msg) from e

        connection = config_data.get("connection", {})
        if connection.get("password"):
            connection["password"] = self._decrypt_password(connection["password"])

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def save(self, config: Config) -> None:
        """Write ``config`` to disk with the password encrypted.

        Raises:
            ConfigurationError: If the file cannot be written.

        """
        data = config.model_dump(mode="json", exclude_none=True)
        password = data["connection"].get("password")
        if password:
            data["connection"]["password"] = self._encrypt_password(password)

        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(toml.dumps(data), encoding="utf-8")
            self.config_file.chmod(0o600)
        except OSError as e:
            msg = f"Failed to write config file {self.config_file}: {e}"
            raise ConfigurationError(msg) from e
        logger.debug("Saved configuration to %s", self.config_file)

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration overrides from environment variables."""
        env_config: dict[str, Any] = {}

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            value: Any = raw
            if cfg_path == "connection.port":
                try:
                    value = int(raw)
                except ValueError as e:
                    msg = f"{env_name} must be an integer, got {raw!r}"
                    raise ConfigurationError(msg) from e
            elif cfg_path == "observability.log_level":
                value = raw.upper()
            _set_nested(env_config, cfg_path, value)

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def _get_encryption_key(self) -> bytes:
        """Get or create the password encryption key."""
        if self._encryption_key is not None:
            return self._encryption_key

        key_file = self.key_file
        if key_file.exists():
            try:
                self._encryption_key = key_file.read_bytes().strip()
                return self._encryption_key
            except OSError as e:
                logger.warning("Failed to read encryption key: %s", e)

        self._encryption_key = Fernet.generate_key()
        try:
            key_file.parent.mkdir(parents=True, exist_ok=True)
            key_file.write_bytes(self._encryption_key)
            key_file.chmod(0o600)  # Read/write for owner only
            logger.info("Generated new credential encryption key")
        except OSError as e:
            # Key lives for this process only
            logger.warning("Failed to write encryption key: %s", e)

        return self._encryption_key

    def _encrypt_password(self, password: str) -> str:
        """Encrypt password for storage.

        Raises:
            ConfigurationError: If encryption fails

        """
        if not password:
            return password
        cipher = Fernet(self._get_encryption_key())
        try:
            token = cipher.encrypt(password.encode("utf-8")).decode("ascii")
        except (TypeError, ValueError) as e:
            msg = f"Failed to encrypt password: {e}"
            raise ConfigurationError(msg) from e
        return ENCRYPTED_PREFIX + token

    def _decrypt_password(self, stored: str) -> str:
        """Decrypt a stored password; values without the prefix are plaintext.

        Raises:
            ConfigurationError: If the token cannot be decrypted

        """
        if not stored.startswith(ENCRYPTED_PREFIX):
            return stored
        token = stored[len(ENCRYPTED_PREFIX) :]
        cipher = Fernet(self._get_encryption_key())
        try:
            return cipher.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            msg = "Failed to decrypt password: key does not match"
            raise ConfigurationError(msg) from e
