"""
Security core: identity-provider token verification and roles.

Architecture:
  - Tokens are issued by the identity provider (Firebase Auth); this API only verifies them
  - FirebaseTokenVerifier checks RS256 ID tokens against Google's published x509 certs
  - LocalTokenVerifier accepts HS256 tokens signed with JWT_SECRET_KEY (dev and tests)
  - Roles are hierarchical: super_admin > admin > resident
  - What a role may do is decided in core.authz against the caller's stored user record
"""

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Protocol

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from housing_api.core.config import Settings, settings
from housing_api.core.logging import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

GOOGLE_CERTS_URL = (
    "https://www.googleapis.com/robot/v1/metadata/x509/securetoken@system.gserviceaccount.com"
)
_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


# ── Roles ──────────────────────────────────────────────────────────────────────
class Role(str, Enum):
    RESIDENT = "resident"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


# ── Identity ───────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Identity:
    uid: str
    email: str | None = None
    name: str | None = None
    email_verified: bool = False


class TokenVerificationError(Exception):
    pass


class TokenExpiredError(TokenVerificationError):
    pass


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Identity: ...

    async def aclose(self) -> None: ...


def _identity_from_claims(claims: dict[str, Any]) -> Identity:
    uid = claims.get("sub")
    if not uid or not isinstance(uid, str):
        raise TokenVerificationError("Token has no subject")
    return Identity(
        uid=uid,
        email=claims.get("email"),
        name=claims.get("name"),
        email_verified=claims.get("email_verified") is True,
    )


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens without the Admin SDK."""

    def __init__(
        self,
        project_id: str,
        http: httpx.AsyncClient | None = None,
        certs_url: str = GOOGLE_CERTS_URL,
    ) -> None:
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._certs_url = certs_url
        self._certs: dict[str, str] = {}
        self._certs_expire_at = 0.0
        self._lock = asyncio.Lock()

    async def _public_certs(self) -> dict[str, str]:
        if self._certs and time.monotonic() < self._certs_expire_at:
            return self._certs
        async with self._lock:
            if self._certs and time.monotonic() < self._certs_expire_at:
                return self._certs
            resp = await self._http.get(self._certs_url)
            resp.raise_for_status()
            match = _MAX_AGE_RE.search(resp.headers.get("cache-control", ""))
            max_age = int(match.group(1)) if match else 300
            self._certs = resp.json()
            self._certs_expire_at = time.monotonic() + max_age
            logger.debug("auth.certs_refreshed", keys=len(self._certs), max_age=max_age)
            return self._certs

    async def verify(self, token: str) -> Identity:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise TokenVerificationError("Malformed token") from e

        if header.get("alg") != "RS256":
            raise TokenVerificationError("Unexpected signing algorithm")

        try:
            certs = await self._public_certs()
        except httpx.HTTPError as e:
            raise TokenVerificationError("Could not fetch identity provider keys") from e

        cert = certs.get(header.get("kid", ""))
        if cert is None:
            raise TokenVerificationError("Unknown signing key")

        try:
            claims = jwt.decode(
                token,
                cert,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            raise TokenVerificationError(str(e)) from e

        return _identity_from_claims(claims)

    async def aclose(self) -> None:
        await self._http.aclose()


class LocalTokenVerifier:
    """HS256 tokens minted by create_access_token (AUTH_PROVIDER=local)."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            raise TokenVerificationError(str(e)) from e
        return _identity_from_claims(claims)

    async def aclose(self) -> None:
        return None


def create_access_token(
    uid: str,
    email: str | None = None,
    name: str | None = None,
    expires_minutes: int | None = None,
    email_verified: bool = True,
) -> str:
    """Mint a local HS256 token carrying the same claims as a Firebase ID token."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": uid,
        "email": email,
        "name": name,
        "email_verified": email_verified,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def build_token_verifier(config: Settings) -> TokenVerifier:
    if config.AUTH_PROVIDER == "local":
        return LocalTokenVerifier(config.JWT_SECRET_KEY, config.JWT_ALGORITHM)
    return FirebaseTokenVerifier(config.FIREBASE_PROJECT_ID)


# ── FastAPI dependencies ───────────────────────────────────────────────────────
def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Identity:
    """
    Dependency: verifies the Bearer token and returns the caller's identity.
    Does not require a stored user record (see core.authz.get_caller for that).
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Authentication token not provided")

    try:
        return await verifier.verify(credentials.credentials)
    except TokenExpiredError:
        logger.warning("auth.token_expired")
        raise _unauthorized("Token has expired")
    except TokenVerificationError as e:
        logger.warning("auth.token_invalid", error=str(e))
        raise _unauthorized("Invalid token")
