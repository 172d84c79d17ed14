"""Session collaborator interface.

The engine does not manage identity. It reads the bearer token and acting
account from whatever session object the application supplies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

AUTH_TOKEN_HEADER = "X-AIMS-Auth-Token"


class SessionProvider(Protocol):
    """Current identity and bearer token."""

    def get_token(self) -> str | None: ...

    def set_token(self, token: str | None) -> None: ...

    def get_acting_account_id(self) -> str | None: ...

    def set_acting_account_id(self, account_id: str | None) -> None: ...


@dataclass
class StaticSession:
    """In-memory SessionProvider."""

    token: str | None = None
    acting_account_id: str | None = None

    def get_token(self) -> str | None:
        return self.token

    def set_token(self, token: str | None) -> None:
        self.token = token

    def get_acting_account_id(self) -> str | None:
        return self.acting_account_id

    def set_acting_account_id(self, account_id: str | None) -> None:
        self.acting_account_id = account_id

    @classmethod
    def from_authentication(cls, descriptor: dict) -> StaticSession:
        """Build a session from an ``authenticate`` response body."""
        authentication = descriptor.get("authentication", {})
        account = authentication.get("account") or {}
        return cls(token=authentication.get("token"), acting_account_id=account.get("id"))
