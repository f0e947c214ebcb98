"""Credential encryption using AES-256-GCM with per-call PBKDF2 key derivation.

Every call to encrypt() draws a fresh salt and IV, derives a one-off key from
the master key, and stores everything needed to decrypt in a single blob:

    base64(salt[64] || iv[16] || auth_tag[16] || ciphertext)

The master key is read from MASTER_KEY, or from Google Secret Manager when
MASTER_KEY_SECRET names a secret. Without either, a key is generated and
logged once; credentials encrypted with it are unrecoverable if it is lost.
"""

import base64
import binascii
import json
import logging
import os
import secrets
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import DecryptionError

logger = logging.getLogger(__name__)

SALT_LENGTH = 64
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000


def generate_master_key() -> str:
    """Return a new random 256-bit master key as hex."""
    return secrets.token_hex(32)


def resolve_master_key() -> str:
    """Find the master key from the environment or Secret Manager, or mint one."""
    env_key = os.getenv("MASTER_KEY")
    if env_key:
        return env_key

    secret_name = os.getenv("MASTER_KEY_SECRET")
    if secret_name:
        from .secrets import SecretManagerService

        return SecretManagerService().get_secret(secret_name)

    new_key = generate_master_key()
    logger.warning("No MASTER_KEY found in environment.")
    logger.warning("Generated new key. Add this to your .env file:")
    logger.warning(f"MASTER_KEY={new_key}")
    return new_key


class CredentialVault:
    """AES-256-GCM encryption for connector credentials.

    Example:
        vault = CredentialVault(master_key)
        blob = vault.encrypt_object({"token": "shpat_..."})
        auth = vault.decrypt_object(blob)
    """

    def __init__(self, master_key: Optional[str] = None, iterations: int = PBKDF2_ITERATIONS):
        """Initialize the vault.

        Args:
            master_key: Long-lived secret. Defaults to resolve_master_key().
            iterations: PBKDF2 iteration count
        """
        key = master_key or resolve_master_key()
        self._master_key = key.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return the base64 blob."""
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = self._derive_key(salt)

        # AESGCM appends the tag to the ciphertext
        sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]

        return base64.b64encode(salt + iv + auth_tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by encrypt().

        Raises:
            DecryptionError: If the blob is malformed, was tampered with, or was
                sealed with a different master key.
        """
        try:
            combined = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError(f"Encrypted credentials are not valid base64: {e}")

        header_length = SALT_LENGTH + IV_LENGTH + AUTH_TAG_LENGTH
        if len(combined) < header_length:
            raise DecryptionError("Encrypted credentials are truncated")

        salt = combined[:SALT_LENGTH]
        iv = combined[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        auth_tag = combined[SALT_LENGTH + IV_LENGTH:header_length]
        ciphertext = combined[header_length:]

        key = self._derive_key(salt)
        try:
            plaintext = AESGCM(key).decrypt(iv, ciphertext + auth_tag, None)
        except InvalidTag:
            raise DecryptionError("Decryption failed - wrong master key or tampered data")

        return plaintext.decode("utf-8")

    def encrypt_object(self, obj: Any) -> str:
        """Encrypt a JSON-serializable object."""
        return self.encrypt(json.dumps(obj))

    def decrypt_object(self, blob: str) -> Any:
        """Decrypt a blob and parse the JSON inside."""
        plaintext = self.decrypt(blob)
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise DecryptionError(f"Decrypted credentials are not valid JSON: {e}")
