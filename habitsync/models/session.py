"""Session state model"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .user import UserProfile


class SessionState(str, Enum):
    """Authentication session lifecycle states"""
    UNKNOWN = "unknown"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"

    @property
    def is_settled(self) -> bool:
        return self in (SessionState.AUTHENTICATED, SessionState.UNAUTHENTICATED)


class Session(BaseModel):
    """
    Immutable snapshot of the client's session.

    token is present iff state is AUTHENTICATED; user is present iff token is.
    """

    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.UNKNOWN
    token: Optional[str] = None
    user: Optional[UserProfile] = None

    @model_validator(mode="after")
    def _check_invariant(self) -> "Session":
        authenticated = self.state == SessionState.AUTHENTICATED
        if authenticated != (self.token is not None):
            raise ValueError("token must be present exactly when the session is authenticated")
        if (self.user is not None) != (self.token is not None):
            raise ValueError("user must be present exactly when a token is present")
        return self

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    def __repr__(self) -> str:
        # Never leak the bearer token into logs or tracebacks
        user_id = self.user.id if self.user else None
        return f"Session(state={self.state.value!r}, user_id={user_id!r})"

    __str__ = __repr__
