"""Actor identity and party-role resolution.

An Actor is resolved once per request by the identity layer and passed
explicitly into every service call. The role an actor plays on a project
is derived from the project's client and worker ids, never stored.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from project_escrow.domain.enums import PartyRole


@dataclass(frozen=True)
class Actor:
    """The authenticated user a command is issued by."""

    user_id: uuid.UUID
    name: str = ""


def resolve_role(
    actor_id: uuid.UUID,
    client_id: uuid.UUID,
    worker_id: uuid.UUID,
) -> PartyRole | None:
    """Return the actor's role on a project, or None for outsiders."""
    if actor_id == client_id:
        return PartyRole.CLIENT
    if actor_id == worker_id:
        return PartyRole.WORKER
    return None
