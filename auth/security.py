"""
Shared authentication utilities for staff and student auth.
Bearer credentials are HS256 JWTs that carry the identity id and the session
token current at login; bcrypt hashes passwords.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt as _bcrypt
from jose import JWTError, jwt

# ─── Config ───────────────────────────────────────────────────────────────────

BCRYPT_ROUNDS = 12
DEFAULT_ALGORITHM = "HS256"
CREDENTIAL_TTL = timedelta(days=30)

CLAIM_BY_KIND = {"user": "userId", "student": "studentId"}


# ─── Password helpers ─────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return _bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


# ─── Token helpers ─────────────────────────────────────────────────────────────

def new_session_token() -> str:
    """64 hex characters from a CSPRNG."""
    return secrets.token_hex(32)


def create_credential(
    identity_id: str,
    kind: str,
    session_token: str,
    secret: str,
    algorithm: str = DEFAULT_ALGORITHM,
    expires_delta: Optional[timedelta] = None,
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        CLAIM_BY_KIND[kind]: identity_id,
        "sessionToken": session_token,
        "iat": now,
        "exp": now + (expires_delta or CREDENTIAL_TTL),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_credential(token: str, secret: str, algorithm: str = DEFAULT_ALGORITHM) -> Optional[dict]:
    """Decode a credential. Returns the claims or None if invalid/expired."""
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except (JWTError, ValueError, TypeError):
        return None
