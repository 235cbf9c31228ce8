"""
Explicit session state for the chat client.

Holds the bearer token and the role/email hints captured at login, and the
viewer identity once it has been resolved. Created at login, cleared at
logout; every client component receives it instead of reading global state.
"""

import logging
from typing import Any, Dict, Optional

from mathbridge.models.user import UserRole, Viewer
from mathbridge.utils.security import read_unverified_claims

logger = logging.getLogger(__name__)


class SessionContext:
    """Credentials and identity of the logged-in user"""

    def __init__(
        self,
        token: Optional[str] = None,
        email_hint: Optional[str] = None,
        role_hint: Optional[str] = None,
    ):
        self.token: Optional[str] = None
        self.email_hint: Optional[str] = None
        self.role_hint: Optional[UserRole] = None
        self.viewer: Optional[Viewer] = None
        if token:
            self.login(token, email_hint=email_hint, role_hint=role_hint)

    def login(
        self,
        token: str,
        email_hint: Optional[str] = None,
        role_hint: Optional[str] = None,
    ) -> None:
        """
        Start a session with a freshly issued token.

        Args:
            token: bearer token returned by the platform's login flow
            email_hint: email the user logged in with, if known
            role_hint: role selected at login (the tutor login page sets TUTOR)
        """
        if not token:
            raise ValueError("Session token cannot be empty")
        self.token = token
        self.email_hint = email_hint
        self.role_hint = None
        if role_hint:
            try:
                self.role_hint = UserRole.parse(role_hint)
            except ValueError:
                logger.warning(f"Ignoring unknown role hint: {role_hint}")
        self.viewer = None

    def logout(self) -> None:
        self.token = None
        self.email_hint = None
        self.role_hint = None
        self.viewer = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def identity_hints(self) -> Dict[str, Any]:
        """
        Email and role to look the viewer up with.

        Explicit hints given at login win over the token's own claims.
        """
        claims = read_unverified_claims(self.token) if self.token else {}
        email = self.email_hint or claims.get("email")
        if not email and isinstance(claims.get("sub"), str) and "@" in claims["sub"]:
            email = claims["sub"]
        role = self.role_hint
        if role is None and isinstance(claims.get("role"), str):
            try:
                role = UserRole.parse(claims["role"])
            except ValueError:
                role = None
        return {"email": email, "role": role}
