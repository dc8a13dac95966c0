"""
Role checks for the approval workflow.

Identity is always passed in explicitly as an Actor; nothing here reads
ambient session state.
"""

import uuid
from dataclasses import dataclass
from typing import Union

from payables.config import settings
from payables.errors import Unauthorized


@dataclass(frozen=True)
class Actor:
    actor_id: uuid.UUID
    role: str

    @property
    def is_authority(self) -> bool:
        return self.role in settings.approver_roles_set


def require_authority(actor: Actor, action: str) -> None:
    """Raise Unauthorized unless the actor may approve/reject."""
    if not actor.is_authority:
        raise Unauthorized(
            f"Role '{actor.role}' cannot {action}. "
            f"Required: {sorted(settings.approver_roles_set)}",
            {"role": actor.role},
        )


def require_owner(actor: Actor, owner_id: Union[str, uuid.UUID], action: str) -> None:
    """Only the original requester may act on their own draft/rejected request."""
    if str(actor.actor_id) != str(owner_id):
        raise Unauthorized(f"You can only {action} your own requests")
