"""
Security utilities: secret encryption and webhook signatures.
"""

from .encryption import CredentialEncryption, decrypt_credential, encrypt_credential, obfuscate_secret
from .signatures import hmac_signature, jwt_signature, verify_hmac_signature

__all__ = [
    "CredentialEncryption",
    "encrypt_credential",
    "decrypt_credential",
    "obfuscate_secret",
    "jwt_signature",
    "hmac_signature",
    "verify_hmac_signature",
]
