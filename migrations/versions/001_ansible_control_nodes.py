"""Create managed_hosts and ansible_paths tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17

This migration creates the tables for:
- managed_hosts: hosts known to the platform, flagged when they are Ansible control nodes
- ansible_paths: playbook and inventory locations registered on control nodes
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: create managed_hosts and ansible_paths tables."""
    op.create_table(
        "managed_hosts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("hostname", sa.String(255), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column(
            "is_ansible_control_node",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_managed_hosts_org_id", "managed_hosts", ["org_id"])

    op.create_table(
        "ansible_paths",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, comment="playbook|inventory"),
        sa.Column("host_id", sa.Integer(), nullable=False),
        sa.Column("path", sa.String(1024), nullable=False, comment="Absolute path on the host"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("modified_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["host_id"], ["managed_hosts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("host_id", "kind", "path", name="uq_ansible_paths_host_kind_path"),
        sa.CheckConstraint("kind IN ('playbook', 'inventory')", name="ck_ansible_paths_kind"),
    )
    op.create_index("idx_ansible_paths_host_id", "ansible_paths", ["host_id"])


def downgrade() -> None:
    """Downgrade schema: drop ansible_paths and managed_hosts tables."""
    op.drop_index("idx_ansible_paths_host_id", table_name="ansible_paths")
    op.drop_table("ansible_paths")
    op.drop_index("idx_managed_hosts_org_id", table_name="managed_hosts")
    op.drop_table("managed_hosts")
