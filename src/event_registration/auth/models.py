"""Authentication models"""

import enum
from typing import Optional

from pydantic import BaseModel, Field


class ActorRole(str, enum.Enum):
    PARTICIPANT = "participant"
    VENDOR = "vendor"
    ADMIN = "admin"


class Actor(BaseModel):
    """The authenticated caller of a core operation.

    Passed explicitly to every service method that needs authorization.
    """

    user_id: str
    role: ActorRole = ActorRole.PARTICIPANT
    name: Optional[str] = None
    email: Optional[str] = None
    claims: dict = Field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def role_from_claims(claims: dict) -> ActorRole:
    """
    Resolve the actor role from token claims.

    Looks at a ``roles`` claim (namespaced custom claims included) and then at
    the Auth0 ``permissions`` list. Anything unrecognised is a participant.
    """
    roles = set()
    for key, value in claims.items():
        if key == "roles" or key.endswith("/roles"):
            roles.update(value if isinstance(value, list) else [value])
    permissions = set(claims.get("permissions") or [])

    if "admin" in roles or "admin:all" in permissions:
        return ActorRole.ADMIN
    if "vendor" in roles or "manage:events" in permissions:
        return ActorRole.VENDOR
    return ActorRole.PARTICIPANT
