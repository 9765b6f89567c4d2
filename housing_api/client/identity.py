"""
Firebase Auth REST client (Identity Toolkit + Secure Token APIs).

Covers the sign-in flows the app offers: email/password sign-in and
registration, Google sign-in with a Google ID token, and ID token refresh.
Tokens returned here are what the API's FirebaseTokenVerifier accepts.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from housing_api.core.config import Settings
from housing_api.core.logging import get_logger

logger = get_logger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1"

# Identity Toolkit error codes → messages shown to the user
_FRIENDLY_ERRORS = {
    "EMAIL_NOT_FOUND": "No account exists with that email",
    "INVALID_PASSWORD": "Incorrect password",
    "INVALID_LOGIN_CREDENTIALS": "Incorrect email or password",
    "USER_DISABLED": "This account has been disabled",
    "EMAIL_EXISTS": "An account with that email already exists",
    "WEAK_PASSWORD": "Password should be at least 6 characters",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts, try again later",
    "TOKEN_EXPIRED": "Session expired, sign in again",
    "INVALID_REFRESH_TOKEN": "Session expired, sign in again",
}


class IdentityError(Exception):
    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or _FRIENDLY_ERRORS.get(code, code))
        self.code = code


@dataclass
class AuthTokens:
    id_token: str
    refresh_token: str
    uid: str
    expires_at: datetime
    email: str | None = None
    display_name: str | None = None

    def expires_within(self, seconds: int) -> bool:
        return datetime.now(timezone.utc) + timedelta(seconds=seconds) >= self.expires_at


def _expiry(expires_in: Any) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in or 3600))


class IdentityProviderClient:
    def __init__(
        self,
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._api_key = api_key
        self._http = httpx.AsyncClient(transport=transport, timeout=timeout)

    @classmethod
    def from_settings(cls, config: Settings) -> "IdentityProviderClient":
        if config.FIREBASE_WEB_API_KEY is None:
            raise IdentityError("CONFIGURATION", "FIREBASE_WEB_API_KEY is not set")
        return cls(config.FIREBASE_WEB_API_KEY.get_secret_value())

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._http.post(url, params={"key": self._api_key}, **kwargs)
        except httpx.TransportError as exc:
            raise IdentityError("NETWORK_ERROR", f"Identity provider unreachable: {exc}") from exc

        body = response.json() if response.content else {}
        if response.is_error:
            # "WEAK_PASSWORD : Password should be at least 6 characters" → WEAK_PASSWORD
            raw = (body.get("error") or {}).get("message", f"HTTP_{response.status_code}")
            code = raw.split(" ", 1)[0]
            logger.info("identity.request_failed", code=code, status_code=response.status_code)
            raise IdentityError(code)
        return body

    async def _account_call(self, method: str, payload: dict[str, Any]) -> AuthTokens:
        body = await self._post(f"{IDENTITY_TOOLKIT_URL}/accounts:{method}", json=payload)
        return AuthTokens(
            id_token=body["idToken"],
            refresh_token=body["refreshToken"],
            uid=body["localId"],
            expires_at=_expiry(body.get("expiresIn")),
            email=body.get("email"),
            display_name=body.get("displayName") or None,
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthTokens:
        return await self._account_call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )

    async def sign_up(
        self, email: str, password: str, display_name: str | None = None
    ) -> AuthTokens:
        tokens = await self._account_call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if display_name:
            await self._post(
                f"{IDENTITY_TOOLKIT_URL}/accounts:update",
                json={"idToken": tokens.id_token, "displayName": display_name},
            )
            tokens.display_name = display_name
        logger.info("identity.signed_up", uid=tokens.uid)
        return tokens

    async def sign_in_with_google(
        self, google_id_token: str, request_uri: str = "http://localhost"
    ) -> AuthTokens:
        return await self._account_call(
            "signInWithIdp",
            {
                "postBody": f"id_token={google_id_token}&providerId=google.com",
                "requestUri": request_uri,
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )

    async def refresh(self, tokens: AuthTokens) -> AuthTokens:
        body = await self._post(
            f"{SECURE_TOKEN_URL}/token",
            data={"grant_type": "refresh_token", "refresh_token": tokens.refresh_token},
        )
        return AuthTokens(
            id_token=body["id_token"],
            refresh_token=body["refresh_token"],
            uid=body.get("user_id", tokens.uid),
            expires_at=_expiry(body.get("expires_in")),
            email=tokens.email,
            display_name=tokens.display_name,
        )
