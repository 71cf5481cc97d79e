"""
Tests for custody key encryption.
"""
import pytest
from unittest.mock import patch

from aramid_bot import encryption
from aramid_bot.encryption import (
    ENC_PREFIX,
    DecryptionError,
    EncryptionKeyMissingError,
    decrypt_private_key,
    encrypt_private_key,
    is_encrypted,
)


class TestEncryptDecrypt:
    """Test the stored key format."""

    def test_round_trip(self, encryption_key):
        stored = encrypt_private_key("5KQwr...secret")
        assert stored.startswith(ENC_PREFIX)
        assert "secret" not in stored
        assert decrypt_private_key(stored) == "5KQwr...secret"

    def test_already_encrypted_is_not_double_wrapped(self, encryption_key):
        stored = encrypt_private_key("seed")
        assert encrypt_private_key(stored) == stored

    def test_empty_key_rejected(self, encryption_key):
        with pytest.raises(ValueError):
            encrypt_private_key("")

    def test_plaintext_cannot_be_decrypted(self, encryption_key):
        with pytest.raises(DecryptionError):
            decrypt_private_key("plaintext-key")

    def test_wrong_key_fails(self, encryption_key):
        stored = encrypt_private_key("seed")
        with patch.object(encryption.app_config, "ENCRYPTION_KEY", "another-key"):
            encryption.reset_cipher()
            with pytest.raises(DecryptionError):
                decrypt_private_key(stored)

    def test_missing_key_raises(self):
        encryption.reset_cipher()
        with patch.object(encryption.app_config, "ENCRYPTION_KEY", None):
            with pytest.raises(EncryptionKeyMissingError):
                encrypt_private_key("seed")
        encryption.reset_cipher()


class TestIsEncrypted:
    def test_prefix_detection(self):
        assert is_encrypted(ENC_PREFIX + "abc")
        assert not is_encrypted("abc")
        assert not is_encrypted(None)
