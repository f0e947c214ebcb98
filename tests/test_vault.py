import base64

import pytest

from cartshift.exceptions import DecryptionError
from cartshift.services.vault import (
    AUTH_TAG_LENGTH, IV_LENGTH, SALT_LENGTH, CredentialVault, generate_master_key, resolve_master_key,
)


def test_encrypt_then_decrypt_returns_plaintext(vault):
    blob = vault.encrypt("shpat_123")
    assert blob != "shpat_123"
    assert vault.decrypt(blob) == "shpat_123"


def test_each_encryption_uses_fresh_salt_and_iv(vault):
    assert vault.encrypt("same") != vault.encrypt("same")


def test_blob_layout_is_salt_iv_tag_ciphertext(vault):
    raw = base64.b64decode(vault.encrypt("abcdef"))
    assert len(raw) == SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH + len("abcdef")


def test_object_round_trip(vault):
    auth = {"key": "ck_1", "secret": "cs_1", "wp_user": None}
    assert vault.decrypt_object(vault.encrypt_object(auth)) == auth


def test_wrong_master_key_fails(vault):
    blob = vault.encrypt("secret")
    other = CredentialVault("another-key", iterations=1000)
    with pytest.raises(DecryptionError):
        other.decrypt(blob)


def test_tampered_ciphertext_fails(vault):
    raw = bytearray(base64.b64decode(vault.encrypt("secret")))
    raw[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        vault.decrypt(base64.b64encode(bytes(raw)).decode("ascii"))


def test_garbage_and_truncated_blobs_fail(vault):
    with pytest.raises(DecryptionError):
        vault.decrypt("not base64!!")
    with pytest.raises(DecryptionError):
        vault.decrypt(base64.b64encode(b"short").decode("ascii"))


def test_non_json_payload_fails_object_decrypt(vault):
    with pytest.raises(DecryptionError):
        vault.decrypt_object(vault.encrypt("not json"))


def test_generate_master_key_is_256_bit_hex():
    key = generate_master_key()
    assert len(key) == 64
    int(key, 16)


def test_resolve_master_key_prefers_environment(monkeypatch):
    monkeypatch.setenv("MASTER_KEY", "from-env")
    assert resolve_master_key() == "from-env"


def test_resolve_master_key_generates_when_unset(monkeypatch):
    monkeypatch.delenv("MASTER_KEY", raising=False)
    monkeypatch.delenv("MASTER_KEY_SECRET", raising=False)
    assert len(resolve_master_key()) == 64
