"""SQLAlchemy ORM models for control nodes and their Ansible path records.

Provides:
- ManagedHost: A host managed by the platform, possibly an Ansible control node
- AnsiblePath: Playbook or inventory location registered on a control node
- AnsiblePathKind: Kind of a path record
- Actor: Authenticated user context passed into every operation
"""

import enum
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base


class AnsiblePathKind(str, enum.Enum):
    """Kind of an Ansible path record."""

    PLAYBOOK = "playbook"
    INVENTORY = "inventory"


class ManagedHost(Base):
    """Managed host record.

    Only hosts flagged with is_ansible_control_node may own path records.
    Visibility is scoped by organization.
    """

    __tablename__ = "managed_hosts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hostname = Column(String(255), nullable=False)
    org_id = Column(Integer, nullable=False, index=True)
    is_ansible_control_node = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=func.now())

    # Relationships
    ansible_paths = relationship(
        "AnsiblePath",
        back_populates="host",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return (
            f"<ManagedHost(id={self.id}, hostname={self.hostname}, "
            f"org_id={self.org_id}, control_node={self.is_ansible_control_node})>"
        )


class AnsiblePath(Base):
    """Filesystem location on a control node holding playbooks or an inventory.

    Kind and host are fixed at creation; only the path string may change.
    """

    __tablename__ = "ansible_paths"
    __table_args__ = (
        UniqueConstraint("host_id", "kind", "path", name="uq_ansible_paths_host_kind_path"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(20), nullable=False)
    # Kind values: playbook|inventory
    host_id = Column(Integer, ForeignKey("managed_hosts.id"), nullable=False, index=True)
    path = Column(String(1024), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    modified_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    host = relationship("ManagedHost", back_populates="ansible_paths")

    @property
    def path_kind(self) -> AnsiblePathKind:
        return AnsiblePathKind(self.kind)

    def __repr__(self):
        return f"<AnsiblePath(id={self.id}, kind={self.kind}, host={self.host_id}, path={self.path})>"


class Actor(BaseModel):
    """Authenticated user on whose behalf an operation runs.

    Attributes:
        user_id: Platform user id
        login: User login, recorded as the scheduler of actions
        org_id: Organization the user belongs to; scopes host visibility
    """

    user_id: int = Field(..., description="Platform user id")
    login: str = Field(..., description="User login")
    org_id: int = Field(..., description="Organization id scoping visibility")
