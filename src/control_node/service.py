"""AnsibleIntegrationService: the single contract consumed by the HTTP boundary.

Composes the path registry, remote agent gateway, inventory introspector,
playbook discoverer and scheduler bridge, and turns every outcome into a
ResultPayload:

- ValidationFailureError -> validation_failure with field messages
- NotFoundError (including kind mismatch) -> not_found, no detail
- control node did not respond -> control_node_not_responding advisory
- ExecutionFailureError -> execution_failure with the remote diagnostic
- SchedulerUnavailableError -> scheduler_unavailable
"""

import enum
import logging
from datetime import datetime
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.common.config import Config
from src.common.exceptions import (
    AnsibleIntegrationError,
    ExecutionFailureError,
    NotFoundError,
    SchedulerUnavailableError,
    ValidationFailureError,
)
from src.common.models import Actor, AnsiblePath, AnsiblePathKind
from src.control_node.channel import RemoteExecutionChannel
from src.control_node.discovery import PlaybookDiscoverer
from src.control_node.gateway import RemoteAgentGateway
from src.control_node.hosts import HostDirectory
from src.control_node.inventory import InventoryIntrospector
from src.control_node.messages import get_message
from src.control_node.registry import PathRegistry
from src.control_node.scheduler import SchedulerBridge

logger = logging.getLogger(__name__)


class ResultKind(str, enum.Enum):
    OK = "ok"
    VALIDATION_FAILURE = "validation_failure"
    NOT_FOUND = "not_found"
    CONTROL_NODE_NOT_RESPONDING = "control_node_not_responding"
    EXECUTION_FAILURE = "execution_failure"
    SCHEDULER_UNAVAILABLE = "scheduler_unavailable"


class ResultPayload(BaseModel):
    """Success or structured failure returned to the boundary layer."""

    success: bool = Field(description="True only for kind=ok")
    kind: ResultKind = Field(description="Outcome classification")
    data: Any = Field(default=None, description="Result data on success")
    messages: list[str] = Field(default_factory=list, description="User-facing messages")
    field_messages: dict[str, list[str]] = Field(
        default_factory=dict, description="Per-field validation messages"
    )

    @classmethod
    def ok(cls, data: Any = None) -> "ResultPayload":
        return cls(success=True, kind=ResultKind.OK, data=data)

    @classmethod
    def error(
        cls,
        kind: ResultKind,
        messages: list[str],
        field_messages: Optional[dict[str, list[str]]] = None,
    ) -> "ResultPayload":
        return cls(success=False, kind=kind, messages=messages, field_messages=field_messages or {})


class AnsiblePathView(BaseModel):
    """Path record as presented to clients."""

    id: int
    kind: AnsiblePathKind
    host_id: int
    path: str
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AnsiblePath) -> "AnsiblePathView":
        return cls(
            id=record.id,
            kind=record.path_kind,
            host_id=record.host_id,
            path=record.path,
            created_at=record.created_at,
            modified_at=record.modified_at,
        )


def classify_error(error: AnsibleIntegrationError) -> ResultPayload:
    """Map an integration error onto its failure payload."""
    if isinstance(error, ValidationFailureError):
        messages = [error.message] if error.message else []
        return ResultPayload.error(ResultKind.VALIDATION_FAILURE, messages, error.field_errors)
    if isinstance(error, NotFoundError):
        return ResultPayload.error(ResultKind.NOT_FOUND, [get_message("ansible.not_found")])
    if isinstance(error, ExecutionFailureError):
        return ResultPayload.error(
            ResultKind.EXECUTION_FAILURE, [get_message("ansible.salt_error", error.message)]
        )
    if isinstance(error, SchedulerUnavailableError):
        return ResultPayload.error(
            ResultKind.SCHEDULER_UNAVAILABLE, [get_message("taskscheduler.down")]
        )
    raise error


def not_responding() -> ResultPayload:
    return ResultPayload.error(
        ResultKind.CONTROL_NODE_NOT_RESPONDING,
        [get_message("ansible.control_node_not_responding")],
    )


class AnsibleIntegrationService:
    """Facade over the Ansible control node integration.

    One instance serves one request: it holds the request's database session.
    """

    def __init__(
        self,
        db: Session,
        channel: RemoteExecutionChannel,
        config: Optional[Config] = None,
        scheduler: Optional[SchedulerBridge] = None,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy session for this request
            channel: Remote execution channel shared across requests
            config: Configuration (loaded from environment if not provided)
            scheduler: Scheduler bridge (built from config if not provided)
        """
        self.config = config or Config()
        self.hosts = HostDirectory(db)
        self.registry = PathRegistry(db, self.hosts)
        self.gateway = RemoteAgentGateway(channel)
        self.introspector = InventoryIntrospector(self.registry, self.gateway)
        self.discoverer = PlaybookDiscoverer(self.registry, self.gateway)
        self.scheduler = scheduler or SchedulerBridge(self.hosts, self.config)

    async def list_paths(self, host_id: int, actor: Actor) -> ResultPayload:
        try:
            records = self.registry.list_paths(host_id, actor)
        except AnsibleIntegrationError as e:
            return classify_error(e)
        return ResultPayload.ok([AnsiblePathView.from_record(r).model_dump(mode="json") for r in records])

    async def create_path(
        self, kind: AnsiblePathKind | str, host_id: int, path: Optional[str], actor: Actor
    ) -> ResultPayload:
        try:
            record = self.registry.create(kind, host_id, path, actor)
        except AnsibleIntegrationError as e:
            logger.info(f"Path creation on host {host_id} rejected: {e}")
            return classify_error(e)
        return self._saved(record)

    async def update_path(self, path_id: int, path: Optional[str], actor: Actor) -> ResultPayload:
        try:
            record = self.registry.update(path_id, path, actor)
        except AnsibleIntegrationError as e:
            logger.info(f"Path update {path_id} rejected: {e}")
            return classify_error(e)
        return self._saved(record)

    async def save_path(
        self,
        path_id: Optional[int],
        kind: AnsiblePathKind | str | None,
        host_id: Optional[int],
        path: Optional[str],
        actor: Actor,
    ) -> ResultPayload:
        """Create a path when path_id is None, otherwise update it."""
        if path_id is None:
            if host_id is None:
                return classify_error(
                    ValidationFailureError.for_field("host_id", "Host must be specified")
                )
            return await self.create_path(kind, host_id, path, actor)
        return await self.update_path(path_id, path, actor)

    async def delete_path(self, path_id: int, actor: Actor) -> ResultPayload:
        try:
            self.registry.delete(path_id, actor)
        except AnsibleIntegrationError as e:
            return classify_error(e)
        return ResultPayload.ok()

    async def fetch_playbook_contents(
        self, path_id: int, rel_path: Optional[str], actor: Actor
    ) -> ResultPayload:
        try:
            contents = await self.discoverer.fetch_playbook_contents(path_id, rel_path, actor)
        except AnsibleIntegrationError as e:
            return classify_error(e)
        if contents is None:
            return not_responding()
        return ResultPayload.ok(contents)

    async def schedule_playbook(
        self,
        playbook_path: Optional[str],
        inventory_path: Optional[str],
        control_node_id: int,
        earliest: Optional[datetime],
        actor: Actor,
        test_mode: bool = False,
    ) -> ResultPayload:
        try:
            action_id = await self.scheduler.schedule_playbook(
                playbook_path, inventory_path, control_node_id, earliest, actor, test_mode
            )
        except AnsibleIntegrationError as e:
            return classify_error(e)
        return ResultPayload.ok(action_id)

    async def introspect_inventory(
        self, path_id: int, actor: Actor, as_yaml: bool = False
    ) -> ResultPayload:
        """Introspect an inventory; as_yaml renders it as an Ansible YAML inventory."""
        try:
            tree = await self.introspector.introspect(path_id, actor)
        except AnsibleIntegrationError as e:
            return classify_error(e)
        if tree is None:
            return not_responding()
        if as_yaml:
            return ResultPayload.ok(
                yaml.safe_dump(tree.to_ansible_dict(), default_flow_style=False, sort_keys=False)
            )
        return ResultPayload.ok(tree.model_dump(mode="json"))

    async def discover_playbooks(self, path_id: int, actor: Actor) -> ResultPayload:
        try:
            tree = await self.discoverer.discover(path_id, actor)
        except AnsibleIntegrationError as e:
            return classify_error(e)
        if tree is None:
            return not_responding()
        return ResultPayload.ok(tree.model_dump(mode="json"))

    @staticmethod
    def _saved(record: AnsiblePath) -> ResultPayload:
        view = AnsiblePathView.from_record(record)
        return ResultPayload.ok({"new_path_id": view.id, "path": view.model_dump(mode="json")})
