"""Inventory introspection on Ansible control nodes.

Provides:
- InventoryHost, InventoryGroup, InventoryTree: Structured inventory models
- parse_inventory_listing: Build a tree from `ansible-inventory --list` output
- InventoryIntrospector: Resolve an INVENTORY path record into a tree remotely

The control node resolves the inventory itself (static file, dynamic script
or directory of both), so the tree shape is independent of the source format.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.common.exceptions import ExecutionFailureError
from src.common.models import Actor, AnsiblePathKind
from src.control_node.gateway import RemoteAgentGateway
from src.control_node.registry import PathRegistry

logger = logging.getLogger(__name__)

INVENTORY_MODULE = "ansible.inventory"
UNGROUPED = "ungrouped"


class InventoryHost(BaseModel):
    """Host leaf with its variables."""

    name: str
    vars: dict[str, Any] = Field(default_factory=dict)


class InventoryGroup(BaseModel):
    """Group node with child groups and member hosts, both sorted by name."""

    name: str
    vars: dict[str, Any] = Field(default_factory=dict)
    children: list["InventoryGroup"] = Field(default_factory=list)
    hosts: list[InventoryHost] = Field(default_factory=list)

    def to_ansible_dict(self) -> dict[str, Any]:
        """Render in Ansible YAML inventory layout."""
        data: dict[str, Any] = {}
        if self.hosts:
            data["hosts"] = {host.name: host.vars or None for host in self.hosts}
        if self.vars:
            data["vars"] = self.vars
        if self.children:
            data["children"] = {child.name: child.to_ansible_dict() for child in self.children}
        return data


InventoryGroup.model_rebuild()


class InventoryTree(BaseModel):
    """Top-level groups of an inventory plus hosts that belong to no group.

    Attributes:
        groups: Children of the implicit "all" group, "ungrouped" excluded
        ungrouped: Hosts not member of any group
    """

    groups: list[InventoryGroup] = Field(default_factory=list)
    ungrouped: list[InventoryHost] = Field(default_factory=list)

    def group_names(self) -> list[str]:
        return [group.name for group in self.groups]

    def to_ansible_dict(self) -> dict[str, Any]:
        """Render as an Ansible YAML inventory rooted at "all"."""
        all_group: dict[str, Any] = {}
        if self.ungrouped:
            all_group["hosts"] = {host.name: host.vars or None for host in self.ungrouped}
        if self.groups:
            all_group["children"] = {group.name: group.to_ansible_dict() for group in self.groups}
        return {"all": all_group}


def _mapping(value: Any, what: str) -> dict[str, Any]:
    """Return value as a mapping; a missing section is empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Inventory {what} is not a mapping")
    return value


def _names(value: Any, what: str) -> list[str]:
    """Return value as a list of group or host names; a missing list is empty."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(name, str) for name in value):
        raise ValueError(f"Inventory {what} is not a list of names")
    return value


def parse_inventory_listing(listing: dict[str, Any]) -> InventoryTree:
    """Build an InventoryTree from `ansible-inventory --list` JSON.

    Expected layout::

        {
          "_meta": {"hostvars": {"web1": {"http_port": 80}}},
          "all": {"children": ["ungrouped", "web"]},
          "web": {"hosts": ["web1"], "vars": {...}, "children": [...]}
        }

    Groups referenced but absent from the listing are empty groups. A group
    that appears among its own ancestors is cut to stop cycles.

    Raises:
        ValueError: If the listing has an unexpected structure
    """
    listing = _mapping(listing, "listing")
    meta = _mapping(listing.get("_meta"), "'_meta' section")
    hostvars = _mapping(meta.get("hostvars"), "'hostvars' section")

    def entry_for(name: str) -> dict[str, Any]:
        return _mapping(listing.get(name), f"group '{name}'")

    def make_hosts(names: list[str]) -> list[InventoryHost]:
        return [
            InventoryHost(name=name, vars=_mapping(hostvars.get(name), f"host '{name}' vars"))
            for name in sorted(set(names))
        ]

    def build(name: str, ancestors: frozenset[str]) -> InventoryGroup:
        entry = entry_for(name)
        children = []
        for child in sorted(set(_names(entry.get("children"), f"group '{name}' children"))):
            if child in ancestors or child == name:
                logger.warning(f"Inventory group cycle cut at {name} -> {child}")
                continue
            children.append(build(child, ancestors | {name}))
        return InventoryGroup(
            name=name,
            vars=_mapping(entry.get("vars"), f"group '{name}' vars"),
            children=children,
            hosts=make_hosts(_names(entry.get("hosts"), f"group '{name}' hosts")),
        )

    if "all" in listing:
        all_entry = entry_for("all")
        top_level = list(_names(all_entry.get("children"), "group 'all' children"))
        ungrouped_names = list(_names(all_entry.get("hosts"), "group 'all' hosts"))
    else:
        # No explicit root: top-level groups are those nobody lists as a child
        nested = set()
        for name in listing:
            if name != "_meta":
                nested.update(_names(entry_for(name).get("children"), f"group '{name}' children"))
        top_level = [name for name in listing if name != "_meta" and name not in nested]
        ungrouped_names = []

    if UNGROUPED in top_level:
        top_level.remove(UNGROUPED)
        ungrouped_names.extend(_names(entry_for(UNGROUPED).get("hosts"), "group 'ungrouped' hosts"))

    groups = [build(name, frozenset({"all"})) for name in sorted(set(top_level))]
    return InventoryTree(groups=groups, ungrouped=make_hosts(ungrouped_names))


class InventoryIntrospector:
    """Resolves INVENTORY path records into inventory trees on the control node."""

    def __init__(self, registry: PathRegistry, gateway: RemoteAgentGateway):
        self.registry = registry
        self.gateway = gateway

    async def introspect(self, path_id: int, actor: Actor) -> Optional[InventoryTree]:
        """Introspect the inventory registered under path_id.

        Returns:
            The inventory tree, or None if the control node did not respond

        Raises:
            NotFoundError: If the path is unknown or not visible
            PathKindMismatchError: If the path is not an inventory path
            ExecutionFailureError: If the control node could not resolve the inventory
        """
        record = self.registry.lookup_kind(path_id, AnsiblePathKind.INVENTORY, actor)
        result = await self.gateway.run_module(
            record.host_id, INVENTORY_MODULE, {"inventory": record.path}
        )

        if result.is_unavailable:
            logger.info(f"Control node {record.host_id} did not answer introspection of {record.path}")
            return None
        if result.is_failure:
            raise ExecutionFailureError(
                result.message, context={"path_id": path_id, "path": record.path}
            )

        if not isinstance(result.payload, dict):
            raise ExecutionFailureError(
                f"Unexpected inventory output for {record.path}", context={"path_id": path_id}
            )
        try:
            tree = parse_inventory_listing(result.payload)
        except ValueError as e:
            raise ExecutionFailureError(str(e), context={"path_id": path_id}) from e

        logger.info(
            f"Introspected inventory {record.path} on host {record.host_id}: "
            f"{len(tree.groups)} groups, {len(tree.ungrouped)} ungrouped hosts"
        )
        return tree
