"""Hashing utilities for client identifiers.

Client addresses are never stored as-is in the rate-limit store; they are
replaced with an HMAC-SHA256 digest keyed by CLIENT_HASH_SECRET.
"""

import base64
import hashlib
import hmac
import os


def _get_client_hash_secret() -> bytes:
    """Get HMAC secret for client_hash generation.

    Raises:
        RuntimeError: If CLIENT_HASH_SECRET is not configured.
    """
    secret = os.environ.get("CLIENT_HASH_SECRET")
    if not secret:
        raise RuntimeError(
            "CLIENT_HASH_SECRET not configured. "
            "Generate with: openssl rand -hex 32"
        )
    return secret.encode()


def hash_client(client_id: str, scope: str = "notes") -> str:
    """Generate client_hash via HMAC-SHA256.

    Args:
        client_id: Client identifier (e.g. remote address). NEVER logged.
        scope: Namespace the hash is valid for.

    Returns:
        Base64url-encoded HMAC hash (first 32 chars).
    """
    secret = _get_client_hash_secret()
    message = f"{scope}|{client_id}".encode()
    digest = hmac.new(secret, message, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")[:32]
