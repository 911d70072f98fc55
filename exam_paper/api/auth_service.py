"""Bearer-token auth for the question API.

Tokens are ``<payload>.<signature>``: a base64url JSON claims object signed
with HMAC-SHA256 under ``AUTH_TOKEN_SECRET``. Claims carry ``sub`` (or the
legacy ``id``), ``role`` (``admin`` or ``teacher``, any case) and an optional
``exp`` in epoch seconds. The HTTP middleware resolves the principal once per
request and binds it to a context var; handlers call ``require_principal``.
"""
from __future__ import annotations

import base64
import contextvars
import hashlib
import hmac
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .settings import env_int, env_str, truthy

_log = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
TEACHER_ROLE = "teacher"
ROLES = (ADMIN_ROLE, TEACHER_ROLE)

OPEN_PATHS = frozenset({"/", "/health"})
DEFAULT_TOKEN_TTL_SEC = 8 * 3600

_principal_var: contextvars.ContextVar[Optional["AuthPrincipal"]] = contextvars.ContextVar(
    "auth_principal",
    default=None,
)


@dataclass(frozen=True)
class AuthPrincipal:
    actor_id: str
    role: str
    exp: Optional[int] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class AuthError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = int(status_code)
        self.detail = str(detail or "auth_error")


def _token_secret() -> str:
    return env_str("AUTH_TOKEN_SECRET", "").strip()


def auth_required() -> bool:
    raw = os.getenv("AUTH_REQUIRED")
    if raw is not None:
        return truthy(raw)
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    # No secret means tokens cannot be verified; local dev runs open.
    return bool(_token_secret())


def access_token_ttl_sec() -> int:
    return max(300, env_int("AUTH_ACCESS_TOKEN_TTL_SEC", DEFAULT_TOKEN_TTL_SEC))


def _encode_segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _decode_segment(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _signature(payload_segment: str, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload_segment.encode("ascii"), hashlib.sha256).digest()


def sign_token_claims(claims: Mapping[str, Any], *, secret: str) -> str:
    body = json.dumps(dict(claims or {}), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    payload_segment = _encode_segment(body)
    return f"{payload_segment}.{_encode_segment(_signature(payload_segment, secret))}"


def _split_token(token: str) -> Tuple[str, str]:
    text = str(token or "").strip()
    if not text:
        raise AuthError(401, "missing_bearer_token")
    payload_segment, sep, sig_segment = text.partition(".")
    if not sep or not payload_segment or "." in sig_segment:
        raise AuthError(401, "invalid_token_format")
    return payload_segment, sig_segment


def _verified_claims(token: str, *, secret: str) -> Dict[str, Any]:
    payload_segment, sig_segment = _split_token(token)
    try:
        got = _decode_segment(sig_segment)
        expected = _signature(payload_segment, secret)
    except ValueError:
        raise AuthError(401, "invalid_token_signature")
    if not hmac.compare_digest(got, expected):
        raise AuthError(401, "invalid_token_signature")
    try:
        claims = json.loads(_decode_segment(payload_segment).decode("utf-8"))
    except ValueError:
        raise AuthError(401, "invalid_token_payload")
    if not isinstance(claims, dict):
        raise AuthError(401, "invalid_token_payload")
    return claims


def _principal_from_claims(claims: Dict[str, Any]) -> AuthPrincipal:
    actor_id = str(claims.get("sub") or claims.get("id") or "").strip()
    role = str(claims.get("role") or "").strip().lower()
    if not actor_id or role not in ROLES:
        raise AuthError(401, "invalid_token_claims")

    exp: Optional[int] = None
    if claims.get("exp") is not None:
        try:
            exp = int(claims["exp"])
        except (TypeError, ValueError):
            raise AuthError(401, "invalid_token_exp")
        if exp <= int(time.time()):
            raise AuthError(401, "token_expired")
    return AuthPrincipal(actor_id=actor_id, role=role, exp=exp, claims=dict(claims))


def decode_access_token(token: str, *, secret: str) -> AuthPrincipal:
    return _principal_from_claims(_verified_claims(token, secret=secret))


def mint_access_token(*, subject_id: str, role: str) -> str:
    """Issue a signed token for an operator or a test client."""
    sid = str(subject_id or "").strip()
    role_norm = str(role or "").strip().lower()
    if not sid or role_norm not in ROLES:
        raise AuthError(400, "invalid_token_claims")
    secret = _token_secret()
    if not secret:
        _log.warning("AUTH_TOKEN_SECRET is not set; access tokens cannot be minted")
        raise AuthError(500, "auth_token_secret_missing")
    issued = int(time.time())
    return sign_token_claims(
        {"sub": sid, "role": role_norm, "iat": issued, "exp": issued + access_token_ttl_sec()},
        secret=secret,
    )


def resolve_principal_from_headers(
    headers: Mapping[str, Any],
    *,
    path: str = "",
    method: str = "",
) -> Optional[AuthPrincipal]:
    if not auth_required():
        return None
    if str(method or "").upper() == "OPTIONS" or (str(path or "").strip() or "/") in OPEN_PATHS:
        return None

    secret = _token_secret()
    if not secret:
        raise AuthError(500, "auth_token_secret_missing")

    authorization = str(headers.get("authorization") or headers.get("Authorization") or "").strip()
    if not authorization:
        raise AuthError(401, "Authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise AuthError(401, "invalid_authorization_scheme")
    return decode_access_token(token, secret=secret)


def set_current_principal(principal: Optional[AuthPrincipal]) -> contextvars.Token:
    return _principal_var.set(principal)


def reset_current_principal(token: contextvars.Token) -> None:
    _principal_var.reset(token)


def get_current_principal() -> Optional[AuthPrincipal]:
    return _principal_var.get()


def require_principal(*, roles: Optional[Sequence[str]] = None) -> Optional[AuthPrincipal]:
    principal = get_current_principal()
    if not auth_required():
        return principal
    if principal is None:
        raise AuthError(401, "Authentication required")
    allowed = {str(role or "").strip().lower() for role in roles or ()}
    if allowed and principal.role not in allowed:
        raise AuthError(403, "Access denied. Admins only." if allowed == {ADMIN_ROLE} else "forbidden")
    return principal


def principal_user_id(principal: Optional[AuthPrincipal], default: str = "anonymous") -> str:
    if principal is None:
        return default
    return principal.actor_id or default


__all__ = [
    "ADMIN_ROLE",
    "TEACHER_ROLE",
    "ROLES",
    "AuthPrincipal",
    "AuthError",
    "auth_required",
    "access_token_ttl_sec",
    "sign_token_claims",
    "decode_access_token",
    "mint_access_token",
    "resolve_principal_from_headers",
    "set_current_principal",
    "reset_current_principal",
    "get_current_principal",
    "require_principal",
    "principal_user_id",
]
