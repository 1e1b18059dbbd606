from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException, status
from jose import jwk, jwt
from jose.exceptions import JWSError, JWTError
from jose.utils import base64url_decode

from funnel_builder.config import settings


logger = logging.getLogger("auth.clerk")

_JWKS_TTL_SECONDS = 300
_JWKS_FETCH_TIMEOUT = 10


class _JWKSCache:
    def __init__(self, ttl_seconds: int = _JWKS_TTL_SECONDS) -> None:
        self._jwks: Optional[Dict[str, Any]] = None
        self._cached_at = 0.0
        self._ttl_seconds = ttl_seconds
        self._lock = threading.Lock()

    def get(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            if self._jwks and (time.time() - self._cached_at) < self._ttl_seconds:
                return self._jwks
            return None

    def set(self, jwks: Dict[str, Any]) -> None:
        with self._lock:
            self._jwks = jwks
            self._cached_at = time.time()

    def invalidate(self) -> None:
        with self._lock:
            self._jwks = None
            self._cached_at = 0.0


_cache = _JWKSCache()


def _fetch_jwks() -> Dict[str, Any]:
    cached = _cache.get()
    if cached:
        return cached
    if not settings.CLERK_JWKS_URL:
        logger.error("CLERK_JWKS_URL is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )
    try:
        resp = httpx.get(settings.CLERK_JWKS_URL, timeout=_JWKS_FETCH_TIMEOUT)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as exc:
        logger.exception("JWKS fetch failed", extra={"jwks_url": settings.CLERK_JWKS_URL})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to fetch Clerk JWKS",
        ) from exc
    _cache.set(data)
    return data


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _get_public_key(token: str) -> Dict[str, Any]:
    try:
        headers = jwt.get_unverified_header(token)
    except JWTError as exc:
        logger.warning("Invalid token header", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    kid = headers.get("kid")
    if not kid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing kid in token")

    key = _find_key(_fetch_jwks(), kid)
    if key is None:
        # Keys may have rotated since the last fetch.
        _cache.invalidate()
        key = _find_key(_fetch_jwks(), kid)
    if key is None:
        logger.warning("Signing key not found", extra={"kid": kid})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Signing key not found")
    return key


def verify_clerk_token(token: str) -> Dict[str, Any]:
    try:
        public_key = _get_public_key(token)
        key = jwk.construct(public_key)

        message, encoded_sig = token.rsplit(".", 1)
        decoded_sig = base64url_decode(encoded_sig.encode())
        if not key.verify(message.encode(), decoded_sig):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token signature")

        claims = jwt.decode(
            token,
            key=key.to_pem().decode(),
            algorithms=[public_key.get("alg", "RS256")],
            audience=settings.CLERK_AUDIENCE,
            issuer=settings.CLERK_JWT_ISSUER,
        )
    except (JWTError, JWSError, ValueError) as exc:
        logger.warning("Token verification failed", exc_info=exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    logger.debug("Verified Clerk token", extra={"kid": public_key.get("kid"), "sub": claims.get("sub")})
    return claims
