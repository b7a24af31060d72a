"""
keys.py – Turning a typed password into cipher key material.

Every password accepted by the journal follows the same external contract:

  - An empty password (or None, when the prompt was cancelled) raises
    NoPassword.  This is a cancel signal, not a fault.
  - A password longer than MAX_PASSWORD_LENGTH characters raises
    PasswordTooLong.
  - Any other password maps deterministically to a key.

Two ways of producing a key sit behind that contract:

  - PaddedKeyNormalizer – the historical scheme.  The password is
    right-padded with '=' to 16 characters and used directly as an AES-128
    key.  Weak (low entropy, padded passwords share a visible suffix) but
    required to open entries written by older versions.
  - PBKDF2KeyDeriver – PBKDF2-HMAC-SHA256 over a per-entry salt, producing
    a Fernet-compatible key.  Used by the salted entry format in crypto.py.
"""

import base64
import hashlib
from typing import Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import KDF_ITERATIONS, MAX_KDF_ITERATIONS, MAX_PASSWORD_LENGTH

# AES-128 key size in bytes.
KEY_SIZE = MAX_PASSWORD_LENGTH

# Non-secret character used to pad short passwords.
FILLER = "="


class PasswordError(ValueError):
    """Base class for password input problems reported back to the user."""


class NoPassword(PasswordError):
    """Raised when no password was supplied; the caller should abort quietly."""

    def __init__(self) -> None:
        super().__init__("No password was entered.")


class PasswordTooLong(PasswordError):
    """
    Raised when a password exceeds the accepted length.

    Attributes
    ----------
    length : int
        Length of the rejected password in characters.
    limit : int
        The maximum accepted length.
    """

    def __init__(self, length: int, limit: int = MAX_PASSWORD_LENGTH) -> None:
        super().__init__(f"Password is too long ({length} > {limit} characters).")
        self.length: int = length
        self.limit: int = limit


def validate_password(password: Optional[str]) -> str:
    """Return *password* unchanged, or raise NoPassword / PasswordTooLong."""
    if not password:
        raise NoPassword()
    if len(password) > MAX_PASSWORD_LENGTH:
        raise PasswordTooLong(len(password))
    return password


def normalize_password(password: Optional[str]) -> bytes:
    """
    Map *password* to a 16-byte AES key by padding it with FILLER.

    "abc" becomes b"abc=============".  Non-ASCII passwords whose padded
    UTF-8 form is not exactly KEY_SIZE bytes are hashed to a 32-byte key
    instead, which keeps them usable and deterministic.
    """
    password = validate_password(password)
    material = password.ljust(KEY_SIZE, FILLER).encode("utf-8")
    if len(material) != KEY_SIZE:
        return hashlib.sha256(material).digest()
    return material


class PaddedKeyNormalizer:
    """Object form of normalize_password(), for code that takes a normalizer."""

    key_size = KEY_SIZE

    def normalize(self, password: Optional[str]) -> bytes:
        return normalize_password(password)


class PBKDF2KeyDeriver:
    """
    Derives a Fernet key from a password and a per-entry salt.

    Parameters
    ----------
    iterations : int
        PBKDF2 work factor.  Stored alongside each entry, so changing it
        only affects entries written afterwards.
    """

    def __init__(self, iterations: int = KDF_ITERATIONS) -> None:
        if not 1 <= iterations <= MAX_KDF_ITERATIONS:
            raise ValueError(
                f"iterations must be between 1 and {MAX_KDF_ITERATIONS}"
            )
        self.iterations: int = iterations

    def derive(self, password: Optional[str], salt: bytes) -> bytes:
        """
        Return the URL-safe base64-encoded 32-byte key for *password*.

        The password length contract is enforced first, so the same inputs
        that fail with the padded scheme fail here too.
        """
        password = validate_password(password)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.iterations,
            backend=default_backend(),
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))
