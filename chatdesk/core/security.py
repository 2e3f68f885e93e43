"""
core/security.py
----------------
Password hashing, reset tokens, API access tokens and signed request tokens.

Design decisions:
  - bcrypt work factor 12 (good balance of security vs latency)
  - Access tokens carry sub (user_id), tenant_id and role so most endpoints
    can scope queries without an extra lookup. Signed with HS256.
  - Signed request tokens authenticate our outbound calls to the external
    workflow engine and document processor. They bind user + tenant +
    session (or document) identity, live for an hour and are signed with a
    separate secret, HS512 by default.
"""

import hashlib
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from passlib.context import CryptContext

from chatdesk.core.config import settings

# bcrypt context — rounds=12 is OWASP recommended minimum
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Constant-time comparison of plain password against stored hash."""
    return pwd_context.verify(plain, hashed)


def generate_temporary_password(length: int = 12) -> str:
    """Random password for invited users; they must change it on first login."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_reset_token() -> tuple[str, str]:
    """Return (token, sha256 digest). Only the digest is stored."""
    token = secrets.token_hex(32)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


# ── Access Tokens (API callers) ───────────────────────────────────────────────

def create_access_token(
    subject: str,
    tenant_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Mint a JWT access token.

    Args:
        subject: User UUID (stored in 'sub' claim).
        tenant_id: Home tenant UUID.
        role: 'ADMIN' | 'MANAGER' | 'SUPPORT_AGENT'
        expires_delta: Optional custom expiry; defaults to settings value.

    Returns:
        Signed JWT string.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {
        "sub": subject,
        "tenant_id": tenant_id,
        "role": role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT access token.

    Raises:
        JWTError: If the token is invalid, expired, or tampered with.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ── Signed Request Tokens (outbound workflow calls) ───────────────────────────

def issue_signed_request_token(
    *,
    user_id: str,
    tenant_id: str,
    session_id: Optional[str] = None,
    document_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Build the short-lived bearer token sent to the external workflow engine.

    Chat turns bind user + tenant + session; document hand-offs bind the
    document instead of a session.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.WORKFLOW_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict[str, Any] = {
        "userId": user_id,
        "tenantId": tenant_id,
        "timestamp": now.isoformat(),
        "iat": now,
        "exp": expire,
    }
    if session_id is not None:
        payload["sessionId"] = session_id
    if document_id is not None:
        payload["documentId"] = document_id
    return jwt.encode(
        payload, settings.workflow_secret, algorithm=settings.WORKFLOW_JWT_ALGORITHM
    )


def decode_signed_request_token(token: str) -> Dict[str, Any]:
    """Inverse of issue_signed_request_token."""
    return jwt.decode(
        token, settings.workflow_secret, algorithms=[settings.WORKFLOW_JWT_ALGORITHM]
    )
