"""Managed-host directory: resolves host ids to hosts visible to an actor."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from src.common.exceptions import NotFoundError
from src.common.models import Actor, ManagedHost

logger = logging.getLogger(__name__)


class HostDirectory:
    """Looks up managed hosts scoped by actor visibility.

    A host is visible when it belongs to the actor's organization. Missing and
    invisible hosts are reported the same way so callers cannot test for
    existence.
    """

    def __init__(self, db: Session):
        self.db = db

    def find(self, host_id: int, actor: Actor) -> Optional[ManagedHost]:
        """Return the host if it exists and is visible to actor, else None."""
        return (
            self.db.query(ManagedHost)
            .filter(ManagedHost.id == host_id, ManagedHost.org_id == actor.org_id)
            .one_or_none()
        )

    def lookup(self, host_id: int, actor: Actor) -> ManagedHost:
        """Return the host visible to actor.

        Raises:
            NotFoundError: If the host does not exist or is not visible
        """
        host = self.find(host_id, actor)
        if host is None:
            logger.info(f"Host {host_id} not found for user {actor.login}")
            raise NotFoundError(f"Host {host_id} not found", context={"host_id": host_id})
        return host
