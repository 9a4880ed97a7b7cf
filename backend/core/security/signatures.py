"""
Signatures for outgoing webhooks.

Receivers verify the X-Lago-Signature header with either the organization's
RSA public key (jwt) or its API key (hmac).
"""

import base64
import hashlib
import hmac

from jose import jwt

JWT_ALGORITHM = "RS256"


def jwt_signature(payload_json: str, private_key: str, issuer: str) -> str:
    """RS256 token whose `data` claim is the exact payload body sent."""
    return jwt.encode({"data": payload_json, "iss": issuer}, private_key, algorithm=JWT_ALGORITHM)


def hmac_signature(payload_json: str, api_key: str) -> str:
    """Base64 encoded HMAC-SHA256 of the payload body keyed with the api key."""
    digest = hmac.new(api_key.encode("utf-8"), payload_json.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_hmac_signature(payload_json: str, api_key: str, signature: str) -> bool:
    return hmac.compare_digest(hmac_signature(payload_json, api_key), signature)
