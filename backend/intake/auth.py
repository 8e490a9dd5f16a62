"""
Authentication dependency for Supabase JWT verification.

Authentication is optional: a request without an Authorization header is
anonymous and its tenant is None (its own isolated scope). A request that
does send a token must send a valid one.

Performance notes:
- get_optional_user verifies JWTs locally with python-jose when
  SUPABASE_JWT_SECRET is set, avoiding a network round-trip to the Supabase
  Auth API per request.
"""

import os
from typing import Optional

from fastapi import HTTPException, Header
from jose import jwt, JWTError, ExpiredSignatureError

from intake.db import get_supabase


def _get_jwt_secret() -> Optional[str]:
    # Read per call so tests can set it through the environment.
    return os.environ.get("SUPABASE_JWT_SECRET") or None


async def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """
    Resolve the tenant for a request.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        The user ID (the JWT ``sub`` claim), or None when no header was sent.

    Raises:
        HTTPException: 401 if a header was sent but the token is malformed,
        invalid, or expired
    """
    if not authorization:
        return None

    # Extract token from "Bearer <token>" format
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials"
        )

    token = parts[1]

    # ------------------------------------------------------------------
    # Fast path: local JWT verification, no network call
    # ------------------------------------------------------------------
    secret = _get_jwt_secret()
    if secret:
        return _verify_jwt_locally(token, secret)

    # ------------------------------------------------------------------
    # Fallback: remote Supabase Auth API verification
    # ------------------------------------------------------------------
    return _verify_jwt_remotely(token)


def _verify_jwt_locally(token: str, secret: str) -> str:
    """
    Verify a Supabase HS256 JWT with python-jose and return the user ID.

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase JWTs use the 'authenticated' role, not a fixed audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


def _verify_jwt_remotely(token: str) -> str:
    """
    Verify a JWT via the Supabase Auth API (fallback when no JWT secret is set).

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        response = get_supabase().auth.get_user(token)

        if not response.user:
            raise HTTPException(
                status_code=401,
                detail="Invalid token"
            )

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        if "expired" in str(e).lower():
            raise HTTPException(
                status_code=401,
                detail="Token expired"
            )

        raise HTTPException(
            status_code=401,
            detail="Invalid token"
        )
