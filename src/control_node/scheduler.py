"""Bridge to the external task scheduler for playbook runs.

Provides:
- ScheduledExecution: Playbook run request submitted to the scheduler
- SchedulerBridge: Validates and submits runs, returning the tracking id

Submission is fire-and-forget: the bridge returns as soon as the scheduler
has accepted the action and never waits for the playbook to run.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from src.common.config import Config
from src.common.exceptions import SchedulerUnavailableError, ValidationFailureError
from src.common.models import Actor
from src.control_node.hosts import HostDirectory

logger = logging.getLogger(__name__)

ACTIONS_ENDPOINT = "/api/v1/actions"
PLAYBOOK_ACTION_TYPE = "ansible.playbook"


class ScheduledExecution(BaseModel):
    """Playbook run request as submitted to the scheduler."""

    playbook_path: str = Field(..., min_length=1, description="Playbook to run")
    inventory_path: Optional[str] = Field(default=None, description="Inventory override")
    control_node_id: int = Field(..., description="Host running ansible-playbook")
    earliest: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Earliest execution time",
    )
    test_mode: bool = Field(default=False, description="Run in check mode")
    scheduler: str = Field(..., description="Login of the requesting user")
    org_id: int = Field(..., description="Organization of the requesting user")

    def action_name(self) -> str:
        return f"Execute playbook '{self.playbook_path}'"

    def to_request(self) -> dict[str, Any]:
        """JSON body for the scheduler API."""
        return {
            "type": PLAYBOOK_ACTION_TYPE,
            "name": self.action_name(),
            "host_id": self.control_node_id,
            "org_id": self.org_id,
            "scheduler": self.scheduler,
            "earliest": self.earliest.isoformat(),
            "details": {
                "playbook_path": self.playbook_path,
                "inventory_path": self.inventory_path,
                "test_mode": self.test_mode,
            },
        }


class SchedulerBridge:
    """Submits playbook runs to the external task scheduler."""

    def __init__(
        self,
        hosts: HostDirectory,
        config: Optional[Config] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the bridge.

        Args:
            hosts: Host directory used to resolve the control node
            config: Configuration with SCHEDULER_URL and scheduler_timeout_seconds
            transport: Optional httpx transport (tests inject a mock transport)
        """
        self.hosts = hosts
        self.config = config or Config()
        self.transport = transport

    async def schedule_playbook(
        self,
        playbook_path: Optional[str],
        inventory_path: Optional[str],
        control_node_id: int,
        earliest: Optional[datetime],
        actor: Actor,
        test_mode: bool = False,
    ) -> int:
        """Schedule a playbook run and return the scheduler's action id.

        Args:
            playbook_path: Playbook to run (required)
            inventory_path: Inventory override, None for the playbook default
            control_node_id: Control node that runs the playbook
            earliest: Earliest execution time; None means now
            actor: Requesting user
            test_mode: Run the playbook in check mode

        Raises:
            NotFoundError: If the control node is unknown or not visible
            ValidationFailureError: If the host is not a control node, or the
                playbook or inventory path is blank
            SchedulerUnavailableError: If the scheduler does not accept the action
        """
        host = self.hosts.lookup(control_node_id, actor)

        if not host.is_ansible_control_node:
            raise ValidationFailureError.for_field(
                "host_id", f"Host {host.hostname} is not an Ansible control node"
            )

        if playbook_path is None or not playbook_path.strip():
            raise ValidationFailureError.for_field(
                "playbook_path", "Playbook path must not be empty"
            )
        if inventory_path is not None and not inventory_path.strip():
            raise ValidationFailureError.for_field(
                "inventory_path", "Inventory path must not be blank"
            )

        execution = ScheduledExecution(
            playbook_path=playbook_path.strip(),
            inventory_path=inventory_path.strip() if inventory_path else None,
            control_node_id=host.id,
            test_mode=test_mode,
            scheduler=actor.login,
            org_id=actor.org_id,
            **({"earliest": earliest} if earliest is not None else {}),
        )

        action_id = await self.submit(execution)
        logger.info(
            f"Scheduled playbook {execution.playbook_path} on host {host.id} "
            f"as action {action_id} (earliest={execution.earliest.isoformat()}, user={actor.login})"
        )
        return action_id

    async def submit(self, execution: ScheduledExecution) -> int:
        """POST the action to the scheduler; a single attempt, no retry.

        Raises:
            SchedulerUnavailableError: On transport errors, refusals, or bad replies
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.config.SCHEDULER_URL,
                timeout=self.config.scheduler_timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(ACTIONS_ENDPOINT, json=execution.to_request())
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"Scheduler refused action: HTTP {exc.response.status_code}",
                extra={"body": exc.response.text[:500]},
            )
            raise SchedulerUnavailableError(
                f"Task scheduler refused the action (HTTP {exc.response.status_code})"
            ) from exc
        except httpx.RequestError as exc:
            logger.error(f"Task scheduler unreachable: {exc}", exc_info=exc)
            raise SchedulerUnavailableError("Task scheduler unreachable") from exc
        except ValueError as exc:
            logger.error(f"Task scheduler sent an invalid reply: {exc}")
            raise SchedulerUnavailableError("Task scheduler sent an invalid reply") from exc

        action_id = body.get("action_id") if isinstance(body, dict) else None
        if not isinstance(action_id, int) or isinstance(action_id, bool):
            logger.error(f"Task scheduler reply has no action id: {body!r}")
            raise SchedulerUnavailableError("Task scheduler reply has no action id")
        return action_id
