"""
Access Control
Ownership checks shared by the blueprint store and the workflow engine.

Ownership is exclusive: one owner per blueprint/contract, no sharing. A
mismatch raises ForbiddenError, which callers see as a plain not-found.
"""

import logging
from typing import Optional

from .errors import AuthenticationError, ForbiddenError, NotFoundError
from .models import Actor

logger = logging.getLogger(__name__)


def require_actor(actor: Optional[Actor]) -> Actor:
    """Every core operation needs an explicit, non-anonymous actor"""
    if actor is None or not actor.id:
        raise AuthenticationError("An authenticated actor is required")
    return actor


def ensure_owner(resource: object, owner_id: str, actor: Actor, label: str) -> None:
    """
    Raise NotFoundError when `resource` is missing and ForbiddenError when
    it belongs to someone else; both carry the same message.
    """
    if resource is None:
        raise NotFoundError(f"{label} not found")
    if owner_id != actor.id:
        logger.debug("Actor %s denied access to a %s owned by %s", actor.id, label.lower(), owner_id)
        raise ForbiddenError(f"{label} not found")
