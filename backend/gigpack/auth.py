"""Supabase Auth integration for the gig pack API.

Access tokens are verified locally: RS256/ES256 tokens against the project's
JWKS, HS256 tokens against the shared JWT secret. The Supabase user endpoint
is only consulted when ``SUPABASE_VERIFY_USER`` is enabled, which catches
sessions revoked before their token expires.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional

import httpx
import jwt
from dotenv import find_dotenv, load_dotenv
from fastapi import Depends, Header, HTTPException, status
from jwt import algorithms
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)


logger = logging.getLogger(__name__)

_ASYMMETRIC_ALGORITHMS = ("RS256", "ES256")


class SupabaseAuthSettings(BaseSettings):
    """Configuration required to validate Supabase access tokens."""

    model_config = SettingsConfigDict(extra="ignore")

    supabase_url: str
    supabase_anon_key: str
    supabase_jwt_audience: str = "authenticated"
    supabase_jwt_issuer: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    supabase_jwks_ttl_seconds: int = 3600
    supabase_http_timeout_seconds: float = 5.0
    supabase_verify_user: bool = False

    @property
    def issuer(self) -> str:
        return self.supabase_jwt_issuer or self.supabase_url.rstrip("/") + "/auth/v1"


class SupabaseAuthError(RuntimeError):
    """Raised when a Supabase access token cannot be validated."""


@lru_cache
def get_supabase_auth_settings() -> SupabaseAuthSettings:
    try:
        return SupabaseAuthSettings()
    except ValidationError as exc:  # pragma: no cover - configuration error
        raise RuntimeError("Supabase Auth environment variables are not configured") from exc


class _JWKSCache:
    """Caches the project's signing keys and refetches them on rotation."""

    def __init__(self, jwks_url: str, ttl_seconds: int, timeout: float, api_key: str) -> None:
        self._jwks_url = jwks_url
        self._ttl_seconds = ttl_seconds
        self._timeout = timeout
        self._headers = {"apikey": api_key}
        self._lock = asyncio.Lock()
        self._expires_at = 0.0
        self._keys: dict[str, Mapping[str, Any]] = {}

    async def _refresh(self) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._jwks_url, headers=self._headers)
            response.raise_for_status()
            payload = response.json()

        self._keys = {
            key["kid"]: key
            for key in payload.get("keys", [])
            if isinstance(key, Mapping) and "kid" in key
        }
        self._expires_at = time.monotonic() + self._ttl_seconds

    async def get_key(self, kid: str) -> Mapping[str, Any]:
        async with self._lock:
            if time.monotonic() >= self._expires_at or kid not in self._keys:
                await self._refresh()
            try:
                return self._keys[kid]
            except KeyError:
                raise KeyError(kid) from None


def collect_roles(*values: Any) -> tuple[str, ...]:
    """Normalize role claims; every valid token is at least ``authenticated``."""

    roles: set[str] = {"authenticated"}
    for value in values:
        if isinstance(value, str) and value:
            roles.add(value.lower())
        elif isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
            roles.update(item.lower() for item in value if isinstance(item, str) and item)
    return tuple(sorted(roles))


@dataclass(frozen=True)
class SupabaseUser:
    id: uuid.UUID
    email: Optional[str]
    roles: tuple[str, ...]
    user_metadata: Mapping[str, Any]

    def has_any_role(self, roles: Iterable[str]) -> bool:
        required = {role.lower() for role in roles}
        return any(role in required for role in self.roles)


@dataclass(frozen=True)
class SupabaseSession:
    user: SupabaseUser
    access_token: str
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= self.expires_at


class SupabaseAuth:
    """Turns bearer tokens into ``SupabaseSession`` objects."""

    def __init__(self, settings: SupabaseAuthSettings) -> None:
        self._settings = settings
        self._jwks = _JWKSCache(
            jwks_url=settings.supabase_url.rstrip("/") + "/auth/v1/.well-known/jwks.json",
            ttl_seconds=settings.supabase_jwks_ttl_seconds,
            timeout=settings.supabase_http_timeout_seconds,
            api_key=settings.supabase_anon_key,
        )

    async def _signing_key(self, header: Mapping[str, Any]) -> tuple[Any, str]:
        algorithm = header.get("alg")
        if algorithm in _ASYMMETRIC_ALGORITHMS:
            kid = header.get("kid")
            if not kid:
                raise SupabaseAuthError("Supabase access token is missing a key id")
            try:
                jwk = await self._jwks.get_key(kid)
            except httpx.HTTPError as exc:
                raise SupabaseAuthError("Unable to download Supabase signing keys") from exc
            except KeyError as exc:
                raise SupabaseAuthError("Supabase signing key not found; try logging in again") from exc
            try:
                key = algorithms.get_default_algorithms()[algorithm].from_jwk(json.dumps(dict(jwk)))
            except (KeyError, TypeError, ValueError) as exc:  # pragma: no cover - bad JWKS
                raise SupabaseAuthError("Supabase signing key is invalid") from exc
            return key, algorithm

        if algorithm == "HS256":
            if not self._settings.supabase_jwt_secret:
                raise SupabaseAuthError("Supabase JWT secret is not configured")
            return self._settings.supabase_jwt_secret, algorithm

        raise SupabaseAuthError("Supabase access token uses an unsupported algorithm")

    async def decode(self, token: str) -> Mapping[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise SupabaseAuthError("Supabase access token is malformed") from exc

        key, algorithm = await self._signing_key(header)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                audience=self._settings.supabase_jwt_audience,
                issuer=self._settings.issuer,
            )
        except jwt.ExpiredSignatureError as exc:
            raise SupabaseAuthError("Supabase access token has expired") from exc
        except jwt.PyJWTError as exc:
            raise SupabaseAuthError("Supabase access token validation failed") from exc

    async def _verify_user(self, token: str) -> None:
        url = self._settings.supabase_url.rstrip("/") + "/auth/v1/user"
        headers = {"authorization": f"Bearer {token}", "apikey": self._settings.supabase_anon_key}
        async with httpx.AsyncClient(timeout=self._settings.supabase_http_timeout_seconds) as client:
            response = await client.get(url, headers=headers)
        if response.status_code != 200:
            raise SupabaseAuthError("Supabase session is not valid; please sign in again")

    @staticmethod
    def build_session(token: str, claims: Mapping[str, Any]) -> SupabaseSession:
        try:
            user_id = uuid.UUID(str(claims["sub"]))
        except (KeyError, ValueError) as exc:
            raise SupabaseAuthError("Supabase access token has no valid user id") from exc
        try:
            expires_at = datetime.fromtimestamp(float(claims["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise SupabaseAuthError("Supabase access token is missing an expiration claim") from exc

        app_metadata = claims.get("app_metadata")
        user_metadata = claims.get("user_metadata")
        user = SupabaseUser(
            id=user_id,
            email=claims.get("email"),
            roles=collect_roles(
                claims.get("role"),
                app_metadata.get("roles") if isinstance(app_metadata, Mapping) else None,
            ),
            user_metadata=dict(user_metadata) if isinstance(user_metadata, Mapping) else {},
        )
        return SupabaseSession(user=user, access_token=token, expires_at=expires_at)

    async def get_session(self, token: str) -> SupabaseSession:
        claims = await self.decode(token)
        if self._settings.supabase_verify_user:
            await self._verify_user(token)
        return self.build_session(token, claims)


@lru_cache
def get_supabase_auth() -> SupabaseAuth:
    return SupabaseAuth(get_supabase_auth_settings())


async def get_current_supabase_session(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    auth: SupabaseAuth = Depends(get_supabase_auth),
) -> SupabaseSession:
    """FastAPI dependency that resolves the caller's Supabase session."""

    if not authorization:
        logger.warning("Supabase auth failed: missing Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is missing",
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        logger.warning("Supabase auth failed: Authorization header is not a bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must be a Bearer token",
        )

    try:
        return await auth.get_session(token)
    except SupabaseAuthError as exc:
        logger.warning("Supabase auth failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


async def require_authenticated_session(
    session: SupabaseSession = Depends(get_current_supabase_session),
) -> SupabaseSession:
    if session.is_expired:
        logger.warning("Supabase auth failed: session expired for user_id=%s", session.user.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Supabase session has expired",
        )
    return session


def require_roles(*roles: str):
    """Factory that returns a dependency enforcing one of ``roles`` is present."""

    if not roles:
        raise ValueError("At least one role must be provided to require_roles")

    async def dependency(
        session: SupabaseSession = Depends(require_authenticated_session),
    ) -> SupabaseSession:
        if not session.user.has_any_role(roles):
            logger.warning(
                "Supabase auth failed: user_id=%s missing required role (required=%s, user_roles=%s)",
                session.user.id,
                roles,
                session.user.roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return session

    return dependency
