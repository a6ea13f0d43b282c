"""Encrypt-at-rest boundary for notification channel secrets.

Secret fields inside a channel config, and every value of its ``headers``
map, are stored as Fernet tokens. They are decrypted only right before
delivery and are shown redacted everywhere else.
"""

import logging
from collections.abc import Callable
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from marketpulse.errors import ConfigurationError, SecretDecryptionError

logger = logging.getLogger(__name__)

SECRET_FIELDS: frozenset[str] = frozenset(
    {"token", "password", "api_key", "apiKey", "secret", "auth_token"}
)
# Every value inside these maps is a secret (e.g. an Authorization header)
SECRET_CONTAINERS: frozenset[str] = frozenset({"headers"})
REDACTED = "***"


class SecretCipher:
    """Encrypts and decrypts the secret fields of channel configs."""

    def __init__(self, key: str | bytes):
        """Initialize the cipher.

        Args:
            key: Urlsafe base64-encoded 32-byte Fernet key

        Raises:
            ConfigurationError: If the key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError("Invalid channel encryption key") from e

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Copy of ``config`` with every secret field and header value encrypted."""
        return _map_secrets(config, self._encrypt)

    def decrypt_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Copy of ``config`` with every secret field and header value decrypted.

        Raises:
            SecretDecryptionError: If a secret is not a valid token for this key
        """
        return _map_secrets(config, self._decrypt)

    def _encrypt(self, field: str, value: Any) -> str:
        return self._fernet.encrypt(str(value).encode()).decode()

    def _decrypt(self, field: str, value: Any) -> str:
        try:
            return self._fernet.decrypt(str(value).encode()).decode()
        except InvalidToken as e:
            raise SecretDecryptionError(field) from e


def redact_config(config: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``config`` safe to log or return from an API."""
    return _map_secrets(config, lambda field, value: REDACTED)


def restore_redacted(config: dict[str, Any], stored: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``config`` where redaction markers take their value from ``stored``.

    Both configs are plaintext. Lets a client send back a config it read from
    the API without wiping the secrets it never saw.
    """
    restored = {}
    for key, value in config.items():
        if key in SECRET_CONTAINERS and isinstance(value, dict):
            previous = stored.get(key) if isinstance(stored.get(key), dict) else {}
            restored[key] = {
                name: (previous.get(name) if item == REDACTED else item)
                for name, item in value.items()
            }
        elif value == REDACTED:
            restored[key] = stored.get(key)
        else:
            restored[key] = value
    return restored


def _map_secrets(config: dict[str, Any], transform: Callable[[str, Any], Any]) -> dict[str, Any]:
    mapped = dict(config)
    for key, value in config.items():
        if key in SECRET_FIELDS and value:
            mapped[key] = transform(key, value)
        elif key in SECRET_CONTAINERS and isinstance(value, dict):
            mapped[key] = {
                name: (transform(f"{key}.{name}", item) if item else item)
                for name, item in value.items()
            }
    return mapped
