"""
Basic security for operator endpoints and webhook delivery
"""

import hashlib
import hmac
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from offersync.core.config import Settings, get_settings

security = HTTPBasic()


def get_current_username(
    credentials: HTTPBasicCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Simple HTTP Basic Auth - checks username/password from settings
    """
    correct_username = settings.BASIC_AUTH_USERNAME
    correct_password = settings.BASIC_AUTH_PASSWORD

    # If no password is set in production, raise an error
    if not correct_password and settings.ENVIRONMENT == "production":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Basic auth password not configured"
        )

    # In development, allow a default password
    if not correct_password:
        correct_password = "changeme"

    is_correct_username = secrets.compare_digest(
        credentials.username.encode("utf8"),
        correct_username.encode("utf8")
    )
    is_correct_password = secrets.compare_digest(
        credentials.password.encode("utf8"),
        correct_password.encode("utf8")
    )

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of a raw webhook body"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_webhook_request(
    secret: str,
    body: bytes,
    signature: Optional[str] = None,
    inline_secret: Optional[str] = None,
) -> bool:
    """
    Accept a delivery when no secret is configured, when the signature header
    matches the body HMAC, or when the envelope carries the shared secret.
    """
    if not secret:
        return True
    if signature:
        return hmac.compare_digest(signature, compute_signature(secret, body))
    if inline_secret is not None:
        return hmac.compare_digest(str(inline_secret), secret)
    return False
