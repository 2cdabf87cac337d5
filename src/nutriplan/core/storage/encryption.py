"""Fernet-based encryption for profile demographics at rest.

Weight, height, date of birth, gender and target weight are encrypted
before writing to SQLite. Activity level, goal and computed metrics stay
in plain columns so the metrics job and the gate can query them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from nutriplan.domains.nutrition.domain_logic.plan_models import HealthProfile

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class ProfileEncryptor:
    """Seals and opens :class:`HealthProfile` values with a Fernet key.

    Usage::

        encryptor = ProfileEncryptor(ProfileEncryptor.generate_key())
        token = encryptor.seal_profile(profile)
        same_profile = encryptor.open_profile(token)
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def seal(self, data: dict[str, Any]) -> str:
        """Encrypt a JSON-serializable dict to a Fernet token string."""
        try:
            plaintext = json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def open(self, token: str) -> dict[str, Any]:
        """Decrypt a Fernet token string back to a dict."""
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            data = json.loads(plaintext)
        except json.JSONDecodeError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc
        if not isinstance(data, dict):
            raise EncryptionError("Decryption failed: payload is not an object")
        return data

    def seal_profile(self, profile: HealthProfile) -> str:
        return self.seal(profile.to_private_dict())

    def open_profile(self, token: str) -> HealthProfile:
        data = self.open(token)
        try:
            return HealthProfile.from_private_dict(data)
        except (KeyError, ValueError) as exc:
            raise EncryptionError(f"Stored profile is malformed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64 Fernet key."""
        return Fernet.generate_key().decode("utf-8")
