"""Pytest configuration and shared fixtures for control node integration tests."""

import json
from typing import Any, Callable, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.common.config import Config
from src.common.database import Base
from src.common.exceptions import AgentTimeoutError
from src.common.models import Actor, AnsiblePath, AnsiblePathKind, ManagedHost
from src.control_node.channel import RemoteExecutionChannel
from src.control_node.hosts import HostDirectory
from src.control_node.scheduler import SchedulerBridge

CONTROL_NODE_ID = 42
PLAIN_HOST_ID = 43
FOREIGN_HOST_ID = 99


class FakeChannel(RemoteExecutionChannel):
    """In-memory channel: canned replies per operation, every call recorded.

    A canned reply that is an exception instance is raised instead of returned.
    """

    def __init__(self):
        self.calls: list[tuple[str, int, tuple]] = []
        self.files: dict[str, Any] = {}
        self.trees: dict[str, Any] = {}
        self.modules: dict[str, Any] = {}
        self.default_error: Optional[Exception] = None

    def _reply(self, value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    async def read_file(self, host_id: int, path: str) -> bytes:
        self.calls.append(("read_file", host_id, (path,)))
        if path not in self.files:
            raise self.default_error or AgentTimeoutError()
        return self._reply(self.files[path])

    async def list_tree(self, host_id: int, path: str) -> dict[str, Any]:
        self.calls.append(("list_tree", host_id, (path,)))
        if path not in self.trees:
            raise self.default_error or AgentTimeoutError()
        return self._reply(self.trees[path])

    async def run_module(self, host_id: int, module_name: str, args: dict[str, Any]) -> Any:
        self.calls.append(("run_module", host_id, (module_name, args)))
        if module_name not in self.modules:
            raise self.default_error or AgentTimeoutError()
        return self._reply(self.modules[module_name])


class SchedulerStub:
    """httpx handler standing in for the task scheduler API."""

    def __init__(self, status_code: int = 201, action_id: Any = 1001):
        self.status_code = status_code
        self.action_id = action_id
        self.requests: list[dict[str, Any]] = []
        self.raise_error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.raise_error is not None:
            raise self.raise_error
        self.requests.append({"path": request.url.path, "body": json.loads(request.content)})
        return httpx.Response(self.status_code, json={"action_id": self.action_id})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def test_config() -> Config:
    return Config(SCHEDULER_URL="http://scheduler.test", scheduler_timeout_seconds=2)


@pytest.fixture
def test_db():
    """Fresh in-memory SQLite database shared across threads (for TestClient)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=7, login="admin", org_id=1)


@pytest.fixture
def other_actor() -> Actor:
    """User of a different organization."""
    return Actor(user_id=8, login="intruder", org_id=2)


@pytest.fixture
def hosts(test_db):
    """Control node 42, plain host 43 (org 1) and a control node of org 2."""
    control_node = ManagedHost(
        id=CONTROL_NODE_ID,
        hostname="ansible.example.com",
        org_id=1,
        is_ansible_control_node=True,
    )
    plain = ManagedHost(
        id=PLAIN_HOST_ID,
        hostname="web01.example.com",
        org_id=1,
        is_ansible_control_node=False,
    )
    foreign = ManagedHost(
        id=FOREIGN_HOST_ID,
        hostname="ansible.other.example.com",
        org_id=2,
        is_ansible_control_node=True,
    )
    test_db.add_all([control_node, plain, foreign])
    test_db.commit()
    return {"control_node": control_node, "plain": plain, "foreign": foreign}


@pytest.fixture
def add_path(test_db, hosts) -> Callable[..., AnsiblePath]:
    """Insert a path record directly, bypassing validation."""

    def _add(kind: AnsiblePathKind, path: str, host_id: int = CONTROL_NODE_ID) -> AnsiblePath:
        record = AnsiblePath(kind=kind.value, host_id=host_id, path=path)
        test_db.add(record)
        test_db.commit()
        return record

    return _add


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def scheduler_stub() -> SchedulerStub:
    return SchedulerStub()


@pytest.fixture
def scheduler_bridge(test_db, test_config, scheduler_stub) -> SchedulerBridge:
    return SchedulerBridge(HostDirectory(test_db), test_config, transport=scheduler_stub.transport)
