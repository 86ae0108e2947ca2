"""REST API endpoints for Ansible control node integration.

Provides:
- GET /api/v1/ansible/paths/{host_id}: List path records of a control node
- POST /api/v1/ansible/paths/save: Create or update a path record
- POST /api/v1/ansible/paths/delete: Delete a path record
- POST /api/v1/ansible/paths/playbook-contents: Fetch a playbook's contents
- POST /api/v1/ansible/schedule-playbook: Schedule a playbook run
- GET /api/v1/ansible/paths/introspect-inventory/{path_id}: Introspect an inventory
- GET /api/v1/ansible/paths/discover-playbooks/{path_id}: Discover playbooks

Responses are ResultPayload JSON. Not-found results become HTTP 404; every
other failure is a 200 response with success=false.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.common.config import Config
from src.common.database import get_db
from src.common.models import Actor
from src.control_node.channel import RemoteExecutionChannel
from src.control_node.service import AnsibleIntegrationService, ResultKind, ResultPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ansible", tags=["ansible"])


class AnsiblePathRequest(BaseModel):
    """Create (no id) or update (with id) a path record."""

    id: Optional[int] = Field(default=None, description="Path id when updating")
    kind: Optional[str] = Field(default=None, description="playbook|inventory")
    host_id: Optional[int] = Field(default=None, description="Control node host id")
    path: Optional[str] = Field(default=None, description="Absolute path on the control node")


class PlaybookContentsRequest(BaseModel):
    path_id: int = Field(description="PLAYBOOK path record id")
    playbook_rel_path: str = Field(description="Playbook path relative to the record")


class PlaybookExecutionRequest(BaseModel):
    playbook_path: str = Field(description="Playbook to run")
    inventory_path: Optional[str] = Field(default=None, description="Inventory override")
    control_node_id: int = Field(description="Control node host id")
    earliest: Optional[datetime] = Field(default=None, description="Earliest execution time")
    test_mode: bool = Field(default=False, description="Run in check mode")


def get_channel() -> RemoteExecutionChannel:
    """Get the remote execution channel.

    Actual implementation is injected in main.py via app.dependency_overrides.
    """
    raise RuntimeError("Remote execution channel not initialized")


def get_config() -> Config:
    """Get the application configuration.

    Actual implementation is injected in main.py via app.dependency_overrides.
    """
    raise RuntimeError("Configuration not initialized")


def get_service(
    db: Session = Depends(get_db),
    channel: RemoteExecutionChannel = Depends(get_channel),
    config: Config = Depends(get_config),
) -> AnsibleIntegrationService:
    return AnsibleIntegrationService(db, channel, config)


def get_actor(
    x_user_id: int = Header(description="Authenticated user id"),
    x_user_login: str = Header(description="Authenticated user login"),
    x_org_id: int = Header(description="Organization of the user"),
) -> Actor:
    """Read the authenticated actor set by the platform's auth proxy."""
    return Actor(user_id=x_user_id, login=x_user_login, org_id=x_org_id)


def respond(result: ResultPayload) -> dict:
    if result.kind == ResultKind.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.messages[0] if result.messages else None)
    return result.model_dump(mode="json")


@router.get("/paths/{host_id}")
async def list_paths(
    host_id: int,
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(await service.list_paths(host_id, actor))


@router.post("/paths/save")
async def save_path(
    req: AnsiblePathRequest,
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(await service.save_path(req.id, req.kind, req.host_id, req.path, actor))


@router.post("/paths/delete")
async def delete_path(
    path_id: int = Body(description="Path record id"),
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(await service.delete_path(path_id, actor))


@router.post("/paths/playbook-contents")
async def fetch_playbook_contents(
    req: PlaybookContentsRequest,
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(
        await service.fetch_playbook_contents(req.path_id, req.playbook_rel_path, actor)
    )


@router.post("/schedule-playbook")
async def schedule_playbook(
    req: PlaybookExecutionRequest,
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(
        await service.schedule_playbook(
            req.playbook_path,
            req.inventory_path,
            req.control_node_id,
            req.earliest,
            actor,
            test_mode=req.test_mode,
        )
    )


@router.get("/paths/introspect-inventory/{path_id}")
async def introspect_inventory(
    path_id: int,
    as_yaml: bool = Query(default=False, description="Render as Ansible YAML inventory"),
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(await service.introspect_inventory(path_id, actor, as_yaml=as_yaml))


@router.get("/paths/discover-playbooks/{path_id}")
async def discover_playbooks(
    path_id: int,
    actor: Actor = Depends(get_actor),
    service: AnsibleIntegrationService = Depends(get_service),
) -> dict:
    return respond(await service.discover_playbooks(path_id, actor))
