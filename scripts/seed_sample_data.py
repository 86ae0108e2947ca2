#!/usr/bin/env python3
"""Populate sample control nodes and path records for development.

Creates:
- Two control nodes and one regular host in organization 1
- One control node in organization 2 (invisible to organization 1 users)
- Playbook and inventory paths on the organization 1 control nodes
"""

import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path so imports work
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.common.database import SessionLocal
from src.common.models import AnsiblePath, AnsiblePathKind, ManagedHost


def create_sample_data():
    """Create and persist sample hosts and path records."""
    session = SessionLocal()

    try:
        now = datetime.utcnow()

        ansible_main = ManagedHost(
            hostname="ansible-main.example.com", org_id=1, is_ansible_control_node=True
        )
        ansible_lab = ManagedHost(
            hostname="ansible-lab.example.com", org_id=1, is_ansible_control_node=True
        )
        web = ManagedHost(hostname="web01.example.com", org_id=1, is_ansible_control_node=False)
        other_org = ManagedHost(
            hostname="ansible.other.example.com", org_id=2, is_ansible_control_node=True
        )

        session.add_all([ansible_main, ansible_lab, web, other_org])
        session.flush()  # Ensure IDs are available

        paths = [
            AnsiblePath(
                kind=AnsiblePathKind.PLAYBOOK.value,
                host_id=ansible_main.id,
                path="/srv/ansible/playbooks",
                created_at=now,
                modified_at=now,
            ),
            AnsiblePath(
                kind=AnsiblePathKind.INVENTORY.value,
                host_id=ansible_main.id,
                path="/srv/ansible/inventory",
                created_at=now,
                modified_at=now,
            ),
            AnsiblePath(
                kind=AnsiblePathKind.PLAYBOOK.value,
                host_id=ansible_lab.id,
                path="/home/ansible/lab",
                created_at=now,
                modified_at=now,
            ),
            AnsiblePath(
                kind=AnsiblePathKind.INVENTORY.value,
                host_id=other_org.id,
                path="/etc/ansible/hosts",
                created_at=now,
                modified_at=now,
            ),
        ]
        session.add_all(paths)
        session.commit()

        print(f"✓ Created 4 managed hosts (3 control nodes)")
        print(f"✓ Created {len(paths)} Ansible paths")

    except Exception as e:
        session.rollback()
        print(f"Error creating sample data: {e}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    create_sample_data()
