"""
Authentication session manager.

Owns the single Session for the process and moves it through

    unknown -> verifying -> authenticated | unauthenticated

Every operation either completes fully (remote call, credential store and
session all updated) or fails leaving the session as it was. Consumers get
immutable snapshots through `session` and `subscribe`; nothing outside this
class mutates session state.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..models.session import Session, SessionState
from ..models.user import UserProfile
from ..utils.exceptions import (
    AuthorizationError,
    HabitSyncError,
    NotAuthenticatedError,
    ServerError,
)
from ..utils.logger import get_logger
from .credential_store import CredentialStore

if TYPE_CHECKING:
    from ..api.gateway import GatewayClient

logger = get_logger(__name__)

SessionListener = Callable[[Session], Any]


def _parse_user(body: Dict[str, Any]) -> UserProfile:
    try:
        return UserProfile.model_validate(body.get("user"))
    except PydanticValidationError as e:
        raise ServerError(f"Malformed user profile in response: {e.error_count()} error(s)") from e


class AuthSessionManager:
    """Session state machine backed by the gateway and the credential store"""

    def __init__(self, gateway: GatewayClient, credential_store: CredentialStore):
        self.gateway = gateway
        self.credential_store = credential_store
        self._session = Session()
        self._listeners: List[SessionListener] = []
        self._settled = asyncio.Event()

    @property
    def session(self) -> Session:
        """Current read-only snapshot"""
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def user(self) -> Optional[UserProfile]:
        return self._session.user

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_until_settled(self) -> Session:
        """Wait until the session is authenticated or unauthenticated."""
        await self._settled.wait()
        return self._session

    def _transition(
        self,
        state: SessionState,
        token: Optional[str] = None,
        user: Optional[UserProfile] = None,
    ) -> Session:
        previous = self._session
        self._session = Session(state=state, token=token, user=user)

        if state.is_settled:
            self._settled.set()
        else:
            self._settled.clear()

        if previous.state != state:
            logger.info(
                "Session state changed",
                previous=previous.state.value,
                current=state.value,
            )

        for listener in list(self._listeners):
            try:
                listener(self._session)
            except Exception as e:
                logger.exception("Session listener failed", error=str(e))
        return self._session

    async def bootstrap(self) -> Session:
        """
        Restore the session from the stored credential.

        Always ends authenticated or unauthenticated; a stored token that
        cannot be verified for any reason is cleared.
        """
        try:
            stored = await self.credential_store.read()
        except HabitSyncError as e:
            logger.warning("Stored credential unreadable, clearing it", error=str(e))
            try:
                await self.credential_store.clear()
            finally:
                self._transition(SessionState.UNAUTHENTICATED)
            raise

        if not stored:
            logger.info("No stored credential")
            return self._transition(SessionState.UNAUTHENTICATED)

        self._transition(SessionState.VERIFYING)
        try:
            body = await self.gateway.get("/auth/verify")
            if not body.get("valid"):
                raise AuthorizationError("Stored session is no longer valid")
            user = _parse_user(body)
        except Exception as e:
            logger.warning("Stored credential failed verification", error=str(e))
            try:
                await self.credential_store.clear()
            finally:
                self._transition(SessionState.UNAUTHENTICATED)
            return self._session

        if self._session.state != SessionState.VERIFYING:
            # Settled elsewhere (e.g. logout) while verification was in flight
            return self._session

        logger.info("Session restored", user_id=user.id)
        return self._transition(SessionState.AUTHENTICATED, token=stored, user=user)

    async def _complete_login(self, body: Dict[str, Any]) -> Session:
        token = body.get("token")
        if not isinstance(token, str) or not token:
            raise ServerError("Login response did not include a session token")
        user = _parse_user(body)

        await self.credential_store.save(token)
        logger.info("Logged in", user_id=user.id)
        return self._transition(SessionState.AUTHENTICATED, token=token, user=user)

    async def login_with_identity_token(self, id_token: str) -> Session:
        """Exchange a third-party identity token (Google sign-in) for a session."""
        body = await self.gateway.post("/auth/google", json={"idToken": id_token})
        return await self._complete_login(body)

    async def login_with_password(self, email: str, password: str) -> Session:
        """Log in with email and password. Server error messages are raised verbatim."""
        body = await self.gateway.post(
            "/auth/login", json={"email": email, "password": password}
        )
        return await self._complete_login(body)

    async def signup(self, email: str, password: str, name: str) -> Session:
        """
        Register a new account and log in.

        Password policy is enforced by the server; a rejection arrives as a
        ValidationError whose details map holds the per-field reasons.
        """
        body = await self.gateway.post(
            "/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        return await self._complete_login(body)

    async def update_profile(self, name: str, password: Optional[str] = None) -> UserProfile:
        """Update the user's name (and optionally password). Only `user` changes."""
        if not self.is_authenticated:
            raise NotAuthenticatedError("Log in to update your profile")

        token = self._session.token
        payload: Dict[str, Any] = {"name": name}
        if password:
            payload["password"] = password

        try:
            body = await self.gateway.put("/auth/profile", json=payload)
        except AuthorizationError:
            await self.handle_authorization_failure()
            raise
        user = _parse_user(body)

        # A logout or re-login happened while the request was in flight
        if not self.is_authenticated or self._session.token != token:
            logger.info("Discarding stale profile update", user_id=user.id)
            return user

        self._transition(SessionState.AUTHENTICATED, token=token, user=user)
        logger.info("Profile updated", user_id=user.id)
        return user

    async def handle_authorization_failure(self) -> None:
        """Settle unauthenticated after some component observed a 401/403."""
        try:
            await self.credential_store.clear()
        finally:
            if self._session.state != SessionState.UNAUTHENTICATED:
                self._transition(SessionState.UNAUTHENTICATED)

    async def logout(self) -> None:
        """Forget the credential locally. Works offline; makes no network call."""
        user_id = self._session.user.id if self._session.user else None
        try:
            await self.credential_store.clear()
        finally:
            self._transition(SessionState.UNAUTHENTICATED)
        logger.info("Logged out", user_id=user_id)
