"""
Client session — identity tokens plus the backend profile of the signed-in user.

Every successful sign-in is followed by POST /users/sync, so the backend
profile always exists once login() / register() / login_with_google() return.
"""

from housing_api.client.api import HousingAPIClient
from housing_api.client.identity import AuthTokens, IdentityProviderClient
from housing_api.client.navigation import resolve_destination
from housing_api.core.logging import get_logger
from housing_api.models.user import User

logger = get_logger(__name__)

# Refresh the ID token when it has less than this many seconds left
REFRESH_MARGIN_SECONDS = 300


class NotAuthenticatedError(Exception):
    pass


class Session:
    def __init__(self, api: HousingAPIClient, identity: IdentityProviderClient):
        self.api = api
        self.identity = identity
        self.tokens: AuthTokens | None = None
        self.user: User | None = None
        api.token_provider = self.id_token

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None and self.user is not None

    async def id_token(self) -> str | None:
        """Current ID token, refreshed first when close to expiry."""
        if self.tokens is None:
            return None
        if self.tokens.expires_within(REFRESH_MARGIN_SECONDS):
            self.tokens = await self.identity.refresh(self.tokens)
            logger.debug("session.token_refreshed", uid=self.tokens.uid)
        return self.tokens.id_token

    async def _establish(self, tokens: AuthTokens, display_name: str | None = None) -> User:
        self.tokens = tokens
        try:
            user, created = await self.api.sync_user(display_name or tokens.display_name)
        except Exception:
            self.tokens = None
            raise
        self.user = user
        logger.info("session.established", user_id=user.id, created=created)
        return user

    async def login(self, email: str, password: str) -> User:
        tokens = await self.identity.sign_in_with_password(email, password)
        return await self._establish(tokens)

    async def register(self, email: str, password: str, display_name: str) -> User:
        tokens = await self.identity.sign_up(email, password, display_name)
        return await self._establish(tokens, display_name)

    async def login_with_google(self, google_id_token: str) -> User:
        tokens = await self.identity.sign_in_with_google(google_id_token)
        return await self._establish(tokens)

    async def reload(self) -> User:
        if self.tokens is None:
            raise NotAuthenticatedError("Sign in first")
        self.user = await self.api.get_me()
        return self.user

    def logout(self) -> None:
        if self.user is not None:
            logger.info("session.logged_out", user_id=self.user.id)
        self.tokens = None
        self.user = None

    def destination(self, path: str) -> str:
        return resolve_destination(self.user if self.is_authenticated else None, path)
