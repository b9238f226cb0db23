from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from config import load_config

USER_TOKEN_HEADER = "X-User-Token"
JOB_KEY_HEADER = "X-Job-Key"


def _get_auth_config() -> dict:
    return load_config().get("auth", {})


def _signature(secret: str, user_token: str) -> str:
    return hmac.new(secret.encode("utf-8"), user_token.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_user_token(user_token: str, secret: str) -> str:
    """`<token>:<hex hmac>` as issued by the gateway when a secret is configured."""
    return f"{user_token}:{_signature(secret, user_token)}"


def verify_user_token(header_value: Optional[str], secret: Optional[str]) -> Optional[str]:
    """The user token carried by the header, or None when it is missing or forged."""
    if not header_value or not header_value.strip():
        return None
    header_value = header_value.strip()
    if not secret:
        return header_value
    try:
        user_token, signature = header_value.rsplit(":", 1)
    except ValueError:
        return None
    if not user_token or not hmac.compare_digest(signature, _signature(secret, user_token)):
        return None
    return user_token


def require_user_token(x_user_token: Optional[str] = Header(default=None)) -> str:
    user_token = verify_user_token(x_user_token, _get_auth_config().get("secret"))
    if user_token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
    return user_token


def require_job_key(x_job_key: Optional[str] = Header(default=None)) -> None:
    job_key = _get_auth_config().get("job_key")
    if not job_key:
        return None
    if x_job_key and hmac.compare_digest(x_job_key, job_key):
        return None
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
