"""Security utilities for JWTs and visitor privacy.

WHAT:
    JWT helpers used by `deps.get_current_user`, and the one-way hash
    applied to visitor IP addresses before they are stored.

WHY:
    - Sessions are carried in an `access_token` cookie signed with JWT_SECRET.
    - Affiliate click uniqueness is counted on hashed IPs; raw addresses
      never reach the database or the logs.
"""

import hashlib
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from .utils.env import load_env_file, require_env


ALGORITHM = "HS256"
JWT_SECRET = os.getenv("JWT_SECRET", "")

if not JWT_SECRET:
    # Attempt to load from local .env if running in dev
    load_env_file()
    JWT_SECRET = require_env("JWT_SECRET")

JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "10080"))


def create_access_token(subject: str, expires_minutes: Optional[int] = None) -> str:
    """Create a signed JWT for the given subject (user email)."""
    if expires_minutes is None:
        expires_minutes = JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {"sub": subject, "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])


def hash_ip_address(ip_address: Optional[str]) -> Optional[str]:
    """sha256 hex digest of an IP address (None stays None)."""
    if not ip_address:
        return None
    return hashlib.sha256(ip_address.encode("utf-8")).hexdigest()
