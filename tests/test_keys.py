# Tests for password normalization and key derivation
# Covers: validate_password, normalize_password, PaddedKeyNormalizer,
#         PBKDF2KeyDeriver, NoPassword / PasswordTooLong

import base64

import pytest

from config import MAX_KDF_ITERATIONS
from keys import (
    FILLER,
    KEY_SIZE,
    NoPassword,
    PaddedKeyNormalizer,
    PasswordError,
    PasswordTooLong,
    PBKDF2KeyDeriver,
    normalize_password,
    validate_password,
)


class TestValidatePassword:
    def test_accepts_one_to_sixteen_chars(self):
        for length in range(1, KEY_SIZE + 1):
            password = "x" * length
            assert validate_password(password) == password

    def test_empty_is_no_password(self):
        with pytest.raises(NoPassword):
            validate_password("")

    def test_none_is_no_password(self):
        with pytest.raises(NoPassword):
            validate_password(None)

    def test_seventeen_chars_too_long(self):
        with pytest.raises(PasswordTooLong) as exc_info:
            validate_password("x" * 17)
        assert exc_info.value.length == 17
        assert exc_info.value.limit == KEY_SIZE

    def test_errors_are_distinct(self):
        assert not issubclass(NoPassword, PasswordTooLong)
        assert not issubclass(PasswordTooLong, NoPassword)
        assert issubclass(NoPassword, PasswordError)
        assert issubclass(PasswordTooLong, ValueError)


class TestNormalizePassword:
    def test_short_password_padded_with_filler(self):
        assert normalize_password("abc") == b"abc" + FILLER.encode() * 13

    def test_exact_length_unchanged(self):
        assert normalize_password("0123456789abcdef") == b"0123456789abcdef"

    def test_deterministic(self):
        assert normalize_password("abc") == normalize_password("abc")
        assert len(normalize_password("abc")) == KEY_SIZE

    def test_different_passwords_differ(self):
        assert normalize_password("abc") != normalize_password("abd")

    def test_non_ascii_maps_to_valid_aes_key(self):
        key = normalize_password("ключ-пароль-16ch")
        assert len(key) == 32
        assert key == normalize_password("ключ-пароль-16ch")

    def test_too_long_produces_no_key(self):
        with pytest.raises(PasswordTooLong):
            normalize_password("a" * 40)

    def test_normalizer_object(self):
        normalizer = PaddedKeyNormalizer()
        assert normalizer.normalize("secret") == normalize_password("secret")
        assert normalizer.key_size == 16


class TestPBKDF2KeyDeriver:
    def test_derive_is_deterministic_per_salt(self):
        deriver = PBKDF2KeyDeriver(iterations=1_000)
        salt = b"s" * 16
        assert deriver.derive("secret", salt) == deriver.derive("secret", salt)

    def test_salt_changes_key(self):
        deriver = PBKDF2KeyDeriver(iterations=1_000)
        assert deriver.derive("secret", b"a" * 16) != deriver.derive("secret", b"b" * 16)

    def test_key_is_fernet_sized(self):
        key = PBKDF2KeyDeriver(iterations=1_000).derive("secret", b"s" * 16)
        assert len(base64.urlsafe_b64decode(key)) == 32

    def test_same_length_contract(self):
        deriver = PBKDF2KeyDeriver(iterations=1_000)
        with pytest.raises(NoPassword):
            deriver.derive("", b"s" * 16)
        with pytest.raises(PasswordTooLong):
            deriver.derive("x" * 17, b"s" * 16)

    def test_rejects_non_positive_iterations(self):
        with pytest.raises(ValueError):
            PBKDF2KeyDeriver(iterations=0)

    def test_rejects_excessive_iterations(self):
        with pytest.raises(ValueError):
            PBKDF2KeyDeriver(iterations=MAX_KDF_ITERATIONS + 1)
        assert PBKDF2KeyDeriver(iterations=MAX_KDF_ITERATIONS).iterations == MAX_KDF_ITERATIONS
