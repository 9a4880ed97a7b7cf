"""
Encryption of payment provider secrets using Fernet symmetric encryption.
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

OBFUSCATION_PREFIX = "••••••••…"


class CredentialEncryption:
    """Encrypt and decrypt provider API keys at rest."""

    def __init__(self, secret_key: str):
        """
        Initialize with the application secret key.

        Args:
            secret_key: Application secret key (hashed to 32 bytes for Fernet)
        """
        key_bytes = hashlib.sha256(secret_key.encode()).digest()
        self.fernet = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, value: str) -> str:
        if not value:
            return ""
        return self.fernet.encrypt(value.encode()).decode()

    def decrypt(self, encrypted_value: str) -> str:
        """
        Decrypt a stored value.

        Raises:
            ValueError: If the value was not produced with this secret key
        """
        if not encrypted_value:
            return ""

        try:
            return self.fernet.decrypt(encrypted_value.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt credential") from e


def encrypt_credential(value: str, secret_key: str) -> str:
    return CredentialEncryption(secret_key).encrypt(value)


def decrypt_credential(encrypted_value: str, secret_key: str) -> str:
    return CredentialEncryption(secret_key).decrypt(encrypted_value)


def obfuscate_secret(value: str | None) -> str | None:
    """Mask a secret for display, keeping only its last three characters."""
    if not value:
        return value
    return f"{OBFUSCATION_PREFIX}{value[-3:]}"
