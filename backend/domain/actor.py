"""
Requester identity as supplied by the identity collaborator.
"""
from dataclasses import dataclass

from domain.enums import ActorRole


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


# Internal jobs (payment expiry sweeps and the like) act under this identity.
SYSTEM_ACTOR = Actor(user_id="system", role=ActorRole.SYSTEM)
