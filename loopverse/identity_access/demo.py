"""
Deterministic demo identities for local development and tests.

Intent:
    Provide a minimal implementation of `IdentityProviderProtocol` that signs
    in three fixed accounts without contacting the remote provider.

Security:
    Wiring injects this provider only when demo accounts are enabled, which the
    configuration refuses in production-like environments.
"""

from __future__ import annotations

from typing import Mapping, Optional

from loopverse.identity_access.domain import SOURCE_DEMO
from loopverse.identity_access.session import Session


DEMO_PASSWORD = "password"

DEMO_ACCOUNTS: Mapping[str, Session] = {
    "admin@loopverse.com": Session(
        user_id="1", email="admin@loopverse.com", display_name="Admin User", role="admin", source=SOURCE_DEMO
    ),
    "teacher@loopverse.com": Session(
        user_id="2", email="teacher@loopverse.com", display_name="Teacher User", role="teacher", source=SOURCE_DEMO
    ),
    "student@loopverse.com": Session(
        user_id="3", email="student@loopverse.com", display_name="Student User", role="student", source=SOURCE_DEMO
    ),
}


class DemoIdentityProvider:
    """Return the table entry for an exact email match and the demo password."""

    def __init__(self, accounts: Mapping[str, Session] | None = None, password: str = DEMO_PASSWORD) -> None:
        self._accounts = dict(DEMO_ACCOUNTS if accounts is None else accounts)
        self._password = password

    def authenticate(self, email: str, password: str) -> Optional[Session]:
        account = self._accounts.get(email)
        if account is None or password != self._password:
            return None
        return account


def build() -> DemoIdentityProvider:
    """Factory used by wiring to instantiate the provider."""
    return DemoIdentityProvider()
