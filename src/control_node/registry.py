"""Path registry for Ansible control node path records.

Provides:
- PathRegistry: create/update/list/delete path records scoped to a host and actor
- validate_path_string: Shared validation and normalization of path strings
- coerce_kind: Parse a path kind from user input
"""

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.common.exceptions import NotFoundError, PathKindMismatchError, ValidationFailureError
from src.common.models import Actor, AnsiblePath, AnsiblePathKind, ManagedHost
from src.control_node.hosts import HostDirectory

logger = logging.getLogger(__name__)

PATH_FIELD = "path"
KIND_FIELD = "kind"
HOST_FIELD = "host_id"


def validate_path_string(path: Optional[str]) -> str:
    """Validate an absolute path on a control node and return it normalized.

    Rules:
    - non-empty
    - absolute
    - no ".." segments
    Duplicate and trailing slashes are collapsed.

    Raises:
        ValidationFailureError: On the first violated rule, annotated with field "path"
    """
    if path is None or not path.strip():
        raise ValidationFailureError.for_field(PATH_FIELD, "Path must not be empty")

    path = path.strip()
    if "\x00" in path:
        raise ValidationFailureError.for_field(PATH_FIELD, "Path contains invalid characters")

    pure = PurePosixPath(path)
    if not pure.is_absolute():
        raise ValidationFailureError.for_field(PATH_FIELD, f"Path must be absolute: {path}")

    if ".." in pure.parts:
        raise ValidationFailureError.for_field(
            PATH_FIELD, f"Path must not contain '..' segments: {path}"
        )

    return str(pure)


def coerce_kind(kind: Union[AnsiblePathKind, str, None]) -> AnsiblePathKind:
    """Parse a kind given as enum member or case-insensitive name.

    Raises:
        ValidationFailureError: If kind is missing or unknown
    """
    if isinstance(kind, AnsiblePathKind):
        return kind
    try:
        return AnsiblePathKind((kind or "").strip().lower())
    except ValueError:
        raise ValidationFailureError.for_field(
            KIND_FIELD, f"Unknown Ansible path kind: {kind}"
        ) from None


class PathRegistry:
    """Owns the lifecycle of Ansible path records.

    All lookups are scoped through the HostDirectory visibility rule; records on
    hosts the actor cannot see behave exactly like missing records.
    """

    def __init__(self, db: Session, hosts: Optional[HostDirectory] = None):
        """Initialize registry with database session.

        Args:
            db: SQLAlchemy session
            hosts: Host directory (built from db if not provided)
        """
        self.db = db
        self.hosts = hosts or HostDirectory(db)

    def list_paths(self, host_id: int, actor: Actor) -> list[AnsiblePath]:
        """List all path records of a host, ordered by kind, path and id.

        Raises:
            NotFoundError: If the host is unknown or not visible
        """
        host = self.hosts.lookup(host_id, actor)
        return (
            self.db.query(AnsiblePath)
            .filter(AnsiblePath.host_id == host.id)
            .order_by(AnsiblePath.kind, AnsiblePath.path, AnsiblePath.id)
            .all()
        )

    def list_paths_by_kind(
        self, host_id: int, kind: Union[AnsiblePathKind, str], actor: Actor
    ) -> list[AnsiblePath]:
        """List path records of one kind for a host."""
        path_kind = coerce_kind(kind)
        return [p for p in self.list_paths(host_id, actor) if p.kind == path_kind.value]

    def lookup(self, path_id: int, actor: Actor) -> AnsiblePath:
        """Return a path record visible to actor.

        Raises:
            NotFoundError: If unknown or not visible
        """
        record = (
            self.db.query(AnsiblePath)
            .join(ManagedHost, AnsiblePath.host_id == ManagedHost.id)
            .filter(AnsiblePath.id == path_id, ManagedHost.org_id == actor.org_id)
            .one_or_none()
        )
        if record is None:
            raise NotFoundError(f"Ansible path {path_id} not found", context={"path_id": path_id})
        return record

    def lookup_kind(
        self, path_id: int, kind: AnsiblePathKind, actor: Actor
    ) -> AnsiblePath:
        """Return a visible path record of the given kind.

        Raises:
            NotFoundError: If unknown or not visible
            PathKindMismatchError: If the record has a different kind
        """
        record = self.lookup(path_id, actor)
        if record.kind != kind.value:
            raise PathKindMismatchError(
                f"Ansible path {path_id} is not a {kind.value} path",
                context={"path_id": path_id, "kind": record.kind},
            )
        return record

    def create(
        self,
        kind: Union[AnsiblePathKind, str],
        host_id: int,
        path: Optional[str],
        actor: Actor,
    ) -> AnsiblePath:
        """Register a new path on a control node.

        Raises:
            NotFoundError: If the host is unknown or not visible
            ValidationFailureError: If kind/path are invalid, the host is not a
                control node, or the path is already registered with this kind
        """
        host = self.hosts.lookup(host_id, actor)
        path_kind = coerce_kind(kind)

        if not host.is_ansible_control_node:
            raise ValidationFailureError.for_field(
                HOST_FIELD, f"Host {host.hostname} is not an Ansible control node"
            )

        normalized = validate_path_string(path)
        self._check_unique(host.id, path_kind, normalized)

        now = datetime.utcnow()
        record = AnsiblePath(
            kind=path_kind.value,
            host_id=host.id,
            path=normalized,
            created_at=now,
            modified_at=now,
        )
        self.db.add(record)
        self._commit(normalized)
        self.db.refresh(record)

        logger.info(
            f"Created {path_kind.value} path {normalized} on host {host.id} "
            f"(id={record.id}, user={actor.login})"
        )
        return record

    def update(self, path_id: int, new_path: Optional[str], actor: Actor) -> AnsiblePath:
        """Change the path string of an existing record; kind and host stay fixed.

        Raises:
            NotFoundError: If unknown or not visible
            ValidationFailureError: If the new path is invalid or duplicate
        """
        record = self.lookup(path_id, actor)
        normalized = validate_path_string(new_path)

        if normalized == record.path:
            return record

        self._check_unique(record.host_id, record.path_kind, normalized, exclude_id=record.id)

        old_path = record.path
        record.path = normalized
        record.modified_at = datetime.utcnow()
        self._commit(normalized)
        self.db.refresh(record)

        logger.info(f"Updated path {record.id}: {old_path} -> {normalized} (user={actor.login})")
        return record

    def delete(self, path_id: int, actor: Actor) -> None:
        """Remove a path record.

        Raises:
            NotFoundError: If unknown, not visible, or already deleted
        """
        record = self.lookup(path_id, actor)
        self.db.delete(record)
        self.db.commit()
        logger.info(f"Deleted {record.kind} path {record.path} (id={path_id}, user={actor.login})")

    def _check_unique(
        self,
        host_id: int,
        kind: AnsiblePathKind,
        path: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        query = self.db.query(AnsiblePath).filter(
            AnsiblePath.host_id == host_id,
            AnsiblePath.kind == kind.value,
            AnsiblePath.path == path,
        )
        if exclude_id is not None:
            query = query.filter(AnsiblePath.id != exclude_id)

        if query.first() is not None:
            raise ValidationFailureError.for_field(
                PATH_FIELD, f"Path {path} is already registered as {kind.value} path"
            )

    def _commit(self, path: str) -> None:
        """Commit, reporting a unique constraint race as a validation failure."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Concurrent registration of {path} rejected: {e}")
            raise ValidationFailureError.for_field(
                PATH_FIELD, f"Path {path} is already registered"
            ) from e
