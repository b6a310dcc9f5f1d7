"""
Session value objects shared by the manager, adapters and web layer.

Intent:
    Keep the in-memory identity record and its cached JSON form in one place.
    The blob layout (`id`, `email`, `name`, `role`, `source`) is what the local
    cache stores under `USER_KEY`.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
import json

from loopverse.identity_access.domain import (
    SESSION_SOURCES,
    SOURCE_LOCAL_FALLBACK,
    normalize_role,
)


@dataclass(frozen=True)
class Session:
    user_id: str
    email: str
    display_name: str
    role: Optional[str]
    source: str

    def with_role(self, role: Optional[str]) -> "Session":
        return replace(self, role=normalize_role(role))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "name": self.display_name,
            "role": self.role,
            "source": self.source,
        }

    def to_blob(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_blob(cls, raw: str, *, role: Optional[str] = None) -> "Session":
        """Restore a Session from the cached user blob.

        Parameters:
            raw: JSON string previously produced by `to_blob` (or the legacy
                shape without `source`).
            role: The separately cached role value; it wins over the blob's
                role. Absent or unknown values leave the Session without role.

        Raises:
            ValueError: when the blob is not a JSON object with `id` and `email`.
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("user blob must be a JSON object")
        user_id = data.get("id")
        email = data.get("email")
        if not user_id or not email:
            raise ValueError("user blob is missing id or email")
        source = data.get("source")
        if source not in SESSION_SOURCES:
            source = SOURCE_LOCAL_FALLBACK
        return cls(
            user_id=str(user_id),
            email=str(email),
            display_name=str(data.get("name") or "User"),
            role=normalize_role(role),
            source=source,
        )


@dataclass
class AuthResult:
    """Outcome of sign-in / sign-up as reported to the UI layer."""

    success: bool
    user: Optional[Session] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, user: Session) -> "AuthResult":
        return cls(success=True, user=user)

    @classmethod
    def failed(cls, error: str) -> "AuthResult":
        return cls(success=False, error=error)


@dataclass
class RemoteUser:
    """Provider-neutral view of an authenticated remote user."""

    id: str
    email: str
    metadata: Dict[str, Any] = field(default_factory=dict)


__all__ = ["Session", "AuthResult", "RemoteUser"]
