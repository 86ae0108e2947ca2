"""Playbook discovery on Ansible control nodes.

Provides:
- PlaybookFile, PlaybookDirectory, PlaybookTree: Navigable playbook directory models
- build_playbook_tree: Build a tree from a remote directory descriptor
- resolve_playbook_path: Join a relative playbook path to its registered root
- PlaybookDiscoverer: Discover playbooks and fetch playbook contents remotely
"""

import logging
import posixpath
from pathlib import PurePosixPath
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.common.exceptions import ExecutionFailureError, ValidationFailureError
from src.common.models import Actor, AnsiblePathKind
from src.control_node.gateway import RemoteAgentGateway
from src.control_node.registry import PathRegistry

logger = logging.getLogger(__name__)

PLAYBOOK_EXTENSIONS = (".yml", ".yaml")
REL_PATH_FIELD = "playbook_rel_path"


class PlaybookFile(BaseModel):
    """Playbook file leaf; path is relative to the registered root."""

    type: Literal["file"] = "file"
    name: str
    path: str


class PlaybookDirectory(BaseModel):
    """Directory node; the root has an empty relative path."""

    type: Literal["directory"] = "directory"
    name: str
    path: str = ""
    children: list[Union["PlaybookDirectory", PlaybookFile]] = Field(default_factory=list)


PlaybookDirectory.model_rebuild()


class PlaybookTree(BaseModel):
    """Playbooks found under a registered PLAYBOOK path.

    Attributes:
        root_path: Absolute registered path on the control node
        root: Directory node for root_path
    """

    root_path: str
    root: PlaybookDirectory

    def playbook_paths(self) -> list[str]:
        """Relative paths of every playbook in the tree, depth-first."""
        found: list[str] = []

        def collect(directory: PlaybookDirectory) -> None:
            for child in directory.children:
                if isinstance(child, PlaybookDirectory):
                    collect(child)
                else:
                    found.append(child.path)

        collect(self.root)
        return found


def _is_playbook(name: str) -> bool:
    return name.lower().endswith(PLAYBOOK_EXTENSIONS)


def build_playbook_tree(descriptor: dict[str, Any], root_path: str) -> PlaybookTree:
    """Build a PlaybookTree from a remote directory descriptor.

    Descriptor nodes carry name, type (directory|file|symlink), realpath and
    children. Symlinks carry target_type; a broken link has none. Any node whose
    canonical path was already visited is excluded, which stops symlink cycles.
    Hidden entries are skipped and directories without playbooks are pruned.

    Raises:
        ValueError: If the descriptor is malformed or the root is not a directory
    """
    visited: set[str] = set()

    def check_node(node: Any, where: str) -> dict[str, Any]:
        if not isinstance(node, dict) or not isinstance(node.get("name"), str):
            raise ValueError(f"Malformed directory entry under '{where}'")
        realpath = node.get("realpath")
        if realpath is not None and not isinstance(realpath, str):
            raise ValueError(f"Malformed realpath of '{node['name']}' under '{where}'")
        children = node.get("children")
        if children is not None and not isinstance(children, list):
            raise ValueError(f"Malformed children of '{node['name']}' under '{where}'")
        return node

    def effective_type(node: dict[str, Any]) -> Optional[str]:
        node_type = node.get("type")
        if node_type == "symlink":
            return node.get("target_type")
        return node_type

    def walk(
        node: dict[str, Any], rel_path: str, is_root: bool = False
    ) -> Optional[Union[PlaybookDirectory, PlaybookFile]]:
        name = node["name"]
        if not is_root and name.startswith("."):
            return None

        canonical = node.get("realpath") or posixpath.join(root_path, rel_path)
        if canonical in visited:
            logger.debug(f"Skipping already visited {canonical} (reached via {rel_path})")
            return None
        visited.add(canonical)

        node_type = effective_type(node)
        if node_type == "file":
            return PlaybookFile(name=name, path=rel_path) if _is_playbook(name) else None
        if node_type != "directory":
            return None

        where = rel_path or root_path
        entries = [check_node(child, where) for child in node.get("children") or []]

        children = []
        for child in sorted(entries, key=lambda c: c["name"]):
            built = walk(child, posixpath.join(rel_path, child["name"]))
            if built is not None:
                children.append(built)

        if not children and not is_root:
            return None

        children.sort(key=lambda c: (c.type != "directory", c.name))
        return PlaybookDirectory(name=name, path=rel_path, children=children)

    check_node(descriptor, root_path)
    if effective_type(descriptor) != "directory":
        raise ValueError(f"{root_path} is not a directory")

    root = walk(descriptor, "", is_root=True)
    return PlaybookTree(root_path=root_path, root=root)


def resolve_playbook_path(base_path: str, rel_path: Optional[str]) -> str:
    """Join rel_path to base_path, refusing anything that leaves base_path.

    Raises:
        ValidationFailureError: If rel_path is empty, absolute, or escapes the root
    """
    if rel_path is None or not rel_path.strip():
        raise ValidationFailureError.for_field(REL_PATH_FIELD, "Playbook path must not be empty")

    rel_path = rel_path.strip()
    if PurePosixPath(rel_path).is_absolute():
        raise ValidationFailureError.for_field(
            REL_PATH_FIELD, f"Playbook path must be relative: {rel_path}"
        )

    base = posixpath.normpath(base_path)
    full = posixpath.normpath(posixpath.join(base, rel_path))
    if not full.startswith(base.rstrip("/") + "/"):
        raise ValidationFailureError.for_field(
            REL_PATH_FIELD, f"Playbook path is outside of {base}: {rel_path}"
        )
    return full


class PlaybookDiscoverer:
    """Enumerates and reads playbooks under PLAYBOOK path records."""

    def __init__(self, registry: PathRegistry, gateway: RemoteAgentGateway):
        self.registry = registry
        self.gateway = gateway

    async def discover(self, path_id: int, actor: Actor) -> Optional[PlaybookTree]:
        """List playbooks under the registered path.

        Returns:
            The playbook tree, or None if the control node did not respond

        Raises:
            NotFoundError: If the path is unknown or not visible
            PathKindMismatchError: If the path is not a playbook path
            ExecutionFailureError: If the control node could not list the directory
        """
        record = self.registry.lookup_kind(path_id, AnsiblePathKind.PLAYBOOK, actor)
        result = await self.gateway.list_tree(record.host_id, record.path)

        if result.is_unavailable:
            logger.info(f"Control node {record.host_id} did not answer discovery of {record.path}")
            return None
        if result.is_failure:
            raise ExecutionFailureError(
                result.message, context={"path_id": path_id, "path": record.path}
            )

        if not isinstance(result.payload, dict):
            raise ExecutionFailureError(
                f"Unexpected directory listing for {record.path}", context={"path_id": path_id}
            )
        try:
            tree = build_playbook_tree(result.payload, record.path)
        except ValueError as e:
            raise ExecutionFailureError(str(e), context={"path_id": path_id}) from e

        logger.info(
            f"Discovered {len(tree.playbook_paths())} playbooks under {record.path} "
            f"on host {record.host_id}"
        )
        return tree

    async def fetch_playbook_contents(
        self, path_id: int, rel_path: Optional[str], actor: Actor
    ) -> Optional[str]:
        """Read a playbook below the registered path.

        The relative path is checked before any remote call is made.

        Returns:
            File contents, or None if the control node did not respond

        Raises:
            NotFoundError: If the path is unknown or not visible
            PathKindMismatchError: If the path is not a playbook path
            ValidationFailureError: If rel_path escapes the registered root
            ExecutionFailureError: If the file could not be read or decoded
        """
        record = self.registry.lookup_kind(path_id, AnsiblePathKind.PLAYBOOK, actor)
        full_path = resolve_playbook_path(record.path, rel_path)

        result = await self.gateway.read_file(record.host_id, full_path)
        if result.is_unavailable:
            logger.info(f"Control node {record.host_id} did not answer read of {full_path}")
            return None
        if result.is_failure:
            raise ExecutionFailureError(result.message, context={"path": full_path})

        contents = result.payload
        if isinstance(contents, str):
            return contents
        try:
            return bytes(contents).decode("utf-8")
        except (TypeError, UnicodeDecodeError) as e:
            raise ExecutionFailureError(
                f"Playbook {full_path} is not a UTF-8 text file", context={"path": full_path}
            ) from e
