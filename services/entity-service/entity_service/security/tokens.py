"""Verification of access tokens minted by the identity service."""

from __future__ import annotations

from typing import Any

import jwt

from ..config import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Parameters
    ----------
    token:
        Encoded HS256 JWT issued by the identity service.

    Returns
    -------
    dict[str, Any]
        The decoded payload if signature, expiry and issuer checks succeed.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )


def subject_from_authorization(authorization: str | None) -> str:
    """Return the ``sub`` claim of a ``Bearer`` authorization header.

    Raises ``ValueError`` when the header is missing, malformed, or carries a
    token that fails verification.
    """
    if not authorization:
        raise ValueError("missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ValueError("malformed authorization header")
    try:
        claims = decode_access_token(token.strip())
    except jwt.PyJWTError as exc:
        raise ValueError(f"invalid access token: {exc}") from exc
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise ValueError("access token has no subject")
    return subject
