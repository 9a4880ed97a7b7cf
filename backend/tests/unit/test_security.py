"""
Unit tests for provider secret encryption and webhook signatures.
"""

import base64
import hashlib
import hmac

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from core.security import (
    CredentialEncryption,
    decrypt_credential,
    encrypt_credential,
    hmac_signature,
    jwt_signature,
    obfuscate_secret,
    verify_hmac_signature,
)

SECRET_KEY = "test-secret-key"


class TestCredentialEncryption:
    def test_encrypt_decrypt(self):
        encrypted = encrypt_credential("mh_live_key", SECRET_KEY)

        assert encrypted != "mh_live_key"
        assert decrypt_credential(encrypted, SECRET_KEY) == "mh_live_key"

    def test_empty_values(self):
        encryption = CredentialEncryption(SECRET_KEY)
        assert encryption.encrypt("") == ""
        assert encryption.decrypt("") == ""

    def test_wrong_secret_key(self):
        encrypted = encrypt_credential("mh_live_key", SECRET_KEY)

        with pytest.raises(ValueError, match="Failed to decrypt"):
            decrypt_credential(encrypted, "another-secret")

    def test_obfuscate_secret(self):
        assert obfuscate_secret("mh_live_key_123").endswith("123")
        assert "mh_live" not in obfuscate_secret("mh_live_key_123")
        assert obfuscate_secret(None) is None
        assert obfuscate_secret("") == ""


class TestHmacSignature:
    def test_matches_base64_hmac_sha256(self):
        body = '{"webhook_type":"invoice.payment_status_updated"}'
        expected = base64.b64encode(hmac.new(b"org_key", body.encode(), hashlib.sha256).digest()).decode()

        assert hmac_signature(body, "org_key") == expected

    def test_verify(self):
        signature = hmac_signature("{}", "org_key")

        assert verify_hmac_signature("{}", "org_key", signature)
        assert not verify_hmac_signature('{"a":1}', "org_key", signature)
        assert not verify_hmac_signature("{}", "other_key", signature)


class TestJwtSignature:
    @pytest.fixture(scope="class")
    def rsa_keys(self) -> tuple[str, str]:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        public_pem = key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        return private_pem, public_pem

    def test_token_carries_payload_and_issuer(self, rsa_keys):
        private_pem, public_pem = rsa_keys
        body = '{"webhook_type":"customer.payment_provider_created"}'

        token = jwt_signature(body, private_pem, "https://api.example.com")
        claims = jwt.decode(token, public_pem, algorithms=["RS256"], issuer="https://api.example.com")

        assert claims["data"] == body
        assert claims["iss"] == "https://api.example.com"
