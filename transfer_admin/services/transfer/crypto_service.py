"""
Access key generation and hashing for transfer tokens

Implements:
- Random access key generation
- Validation of caller supplied access keys
- HMAC-SHA512 hashing keyed by the configured token salt
"""

import secrets
from typing import Any, Optional

from cryptography.hazmat.primitives import hashes, hmac

from .constants import ACCESS_KEY_BYTES, ACCESS_KEY_MIN_LENGTH
from .errors import ConfigurationError, ValidationError


class AccessKeyGenerator:
    """
    Produces and validates plaintext access keys.

    Generated keys are hex encoded, so their length is twice the number of
    random bytes drawn.
    """

    def __init__(
        self,
        length: int = ACCESS_KEY_BYTES,
        min_length: int = ACCESS_KEY_MIN_LENGTH
    ):
        if length <= 0:
            raise ValueError("Access key length must be positive")
        self._length = length
        self._min_length = min_length

    @property
    def key_length(self) -> int:
        """Number of characters in a generated access key"""
        return self._length * 2

    def generate(self) -> str:
        """
        Generate a cryptographically secure access key.

        Returns:
            Hex string of 2 * length characters
        """
        return secrets.token_hex(self._length)

    def validate(self, candidate: Any) -> str:
        """
        Validate an access key supplied by a caller.

        Args:
            candidate: Value to check

        Returns:
            The candidate, unchanged

        Raises:
            ValidationError: If candidate is not a string or is too short
        """
        if not isinstance(candidate, str):
            raise ValidationError("Access key needs to be a string")
        if len(candidate) < self._min_length:
            raise ValidationError(
                f"Access key needs to have at least {self._min_length} characters"
            )
        return candidate


def hash_access_key(access_key: str, salt: str) -> str:
    """
    Compute the HMAC-SHA512 of an access key using salt as the key.

    Args:
        access_key: Plaintext access key
        salt: HMAC key

    Returns:
        Hex digest (128 characters)
    """
    h = hmac.HMAC(salt.encode("utf-8"), hashes.SHA512())
    h.update(access_key.encode("utf-8"))
    return h.finalize().hex()


class AccessKeyHasher:
    """
    Hashes access keys with the configured token salt.

    The salt is checked before every hash so a missing salt can never
    produce an unkeyed digest.
    """

    def __init__(self, salt: Optional[str] = None):
        self._salt = salt

    def has_valid_salt(self) -> bool:
        """Check that the salt is a non-empty string"""
        return isinstance(self._salt, str) and len(self._salt) > 0

    def hash(self, access_key: str) -> str:
        """
        Hash an access key for storage.

        Raises:
            ConfigurationError: If no valid salt is configured
        """
        if not self.has_valid_salt():
            raise ConfigurationError("Required token salt is not defined")

        return hash_access_key(access_key, self._salt)
