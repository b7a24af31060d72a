"""
crypto.py – Cryptographic operations for journal entries.

This module is the single place responsible for turning entry text into the
bytes stored on disk and back.  Two on-disk formats exist:

  - LegacyCipher: AES-128-ECB with PKCS#7 padding, keyed directly by the
    padded password (keys.normalize_password).  The file is the raw
    ciphertext with no header.  A wrong password is detected when the
    padding or the UTF-8 decoding of the result is invalid.
  - FernetCipher: a random per-entry salt, PBKDF2-HMAC-SHA256 and a Fernet
    token (AES-128-CBC + HMAC-SHA256, provided by the 'cryptography'
    package).  The file starts with FERNET_HEADER followed by the iteration
    count and the salt.  A wrong password fails the HMAC check.

Both ciphers raise DecryptionError for every integrity or decoding failure
so that the store can report a single "bad password" outcome.
"""

import logging
import os
import struct
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from config import APP_NAME, KDF_ITERATIONS, MAX_KDF_ITERATIONS
from keys import PaddedKeyNormalizer, PBKDF2KeyDeriver, validate_password

logger = logging.getLogger(APP_NAME)

# AES block size in bits, as expected by the PKCS#7 padder.
BLOCK_BITS = 128
BLOCK_SIZE = BLOCK_BITS // 8

# Marks a file written by FernetCipher.  Legacy files have no header.
FERNET_HEADER = b"CJRNL2"
SALT_SIZE = 16
_ITERATIONS = struct.Struct(">I")


class DecryptionError(Exception):
    """Raised when a blob cannot be decrypted with the given password."""


class LegacyCipher:
    """
    Header-less AES block format used by every earlier version.

    ECB needs no IV, so identical plaintext blocks produce identical
    ciphertext blocks.  Kept for compatibility with existing stores.
    """

    name = "legacy"

    def __init__(self, normalizer: Optional[PaddedKeyNormalizer] = None) -> None:
        self.normalizer = normalizer or PaddedKeyNormalizer()

    def _cipher(self, password: str) -> Cipher:
        key = self.normalizer.normalize(password)
        return Cipher(algorithms.AES(key), modes.ECB(), backend=default_backend())

    def encrypt(self, plaintext: str, password: str) -> bytes:
        cipher = self._cipher(password)
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = cipher.encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, blob: bytes, password: str) -> str:
        """
        Decrypt *blob* and return the text.

        Raises DecryptionError if the blob is not whole blocks, the padding
        is malformed or the result is not UTF-8.  Password validation errors
        from keys.py propagate unchanged.
        """
        cipher = self._cipher(password)
        if not blob or len(blob) % BLOCK_SIZE:
            raise DecryptionError("ciphertext is not a whole number of blocks")
        try:
            decryptor = cipher.decryptor()
            padded = decryptor.update(blob) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError as exc:
            # Covers bad padding and UnicodeDecodeError.
            logger.debug("Legacy decode failed: %s", type(exc).__name__)
            raise DecryptionError("legacy entry failed to decode") from exc


class FernetCipher:
    """
    Salted, authenticated entry format.

    Layout: FERNET_HEADER | iterations (4 bytes, big-endian) | salt | token.
    The iteration count is read back from the file, so entries written with
    a different work factor stay readable.
    """

    name = "fernet"

    def __init__(self, iterations: int = KDF_ITERATIONS) -> None:
        self.deriver = PBKDF2KeyDeriver(iterations)

    @property
    def iterations(self) -> int:
        return self.deriver.iterations

    def encrypt(self, plaintext: str, password: str) -> bytes:
        salt = os.urandom(SALT_SIZE)
        key = self.deriver.derive(password, salt)
        token = Fernet(key).encrypt(plaintext.encode("utf-8"))
        return FERNET_HEADER + _ITERATIONS.pack(self.iterations) + salt + token

    def decrypt(self, blob: bytes, password: str) -> str:
        # Password errors win over format errors.
        validate_password(password)

        prefix = len(FERNET_HEADER) + _ITERATIONS.size
        if not blob.startswith(FERNET_HEADER) or len(blob) <= prefix + SALT_SIZE:
            raise DecryptionError("blob is not in the salted entry format")

        (iterations,) = _ITERATIONS.unpack(blob[len(FERNET_HEADER):prefix])
        salt = blob[prefix:prefix + SALT_SIZE]
        token = blob[prefix + SALT_SIZE:]
        if not 1 <= iterations <= MAX_KDF_ITERATIONS:
            raise DecryptionError("invalid iteration count in entry header")

        key = PBKDF2KeyDeriver(iterations).derive(password, salt)
        try:
            return Fernet(key).decrypt(token).decode("utf-8")
        except (InvalidToken, UnicodeDecodeError) as exc:
            logger.debug("Fernet decode failed: %s", type(exc).__name__)
            raise DecryptionError("salted entry failed authentication") from exc


def cipher_for(name: str, iterations: int = KDF_ITERATIONS):
    """Return a cipher instance for a config value ("legacy" or "fernet")."""
    if name == LegacyCipher.name:
        return LegacyCipher()
    if name == FernetCipher.name:
        return FernetCipher(iterations)
    raise ValueError(f"Unknown cipher format: {name!r}")


def sniff_cipher(blob: bytes, iterations: int = KDF_ITERATIONS):
    """Return the cipher that wrote *blob*, judged by its header."""
    if blob.startswith(FERNET_HEADER):
        return FernetCipher(iterations)
    return LegacyCipher()
