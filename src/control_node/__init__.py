"""Ansible control node integration.

Provides:
- PathRegistry: Lifecycle of playbook/inventory path records on control nodes
- HostDirectory: Resolves managed hosts visible to an actor
- RemoteAgentGateway: Three-outcome remote calls to control nodes
- InventoryIntrospector: Inventory path -> InventoryTree
- PlaybookDiscoverer: Playbook path -> PlaybookTree, playbook contents
- SchedulerBridge: Submits playbook runs to the external task scheduler
- AnsibleIntegrationService: Facade consumed by the HTTP boundary
"""

from .discovery import PlaybookDirectory, PlaybookDiscoverer, PlaybookFile, PlaybookTree
from .gateway import RemoteAgentGateway, RemoteOutcome, RemoteResult
from .hosts import HostDirectory
from .inventory import InventoryGroup, InventoryHost, InventoryIntrospector, InventoryTree
from .registry import PathRegistry
from .scheduler import ScheduledExecution, SchedulerBridge
from .service import AnsibleIntegrationService, ResultKind, ResultPayload

__all__ = [
    "PathRegistry",
    "HostDirectory",
    "RemoteAgentGateway",
    "RemoteOutcome",
    "RemoteResult",
    "InventoryIntrospector",
    "InventoryTree",
    "InventoryGroup",
    "InventoryHost",
    "PlaybookDiscoverer",
    "PlaybookTree",
    "PlaybookDirectory",
    "PlaybookFile",
    "SchedulerBridge",
    "ScheduledExecution",
    "AnsibleIntegrationService",
    "ResultKind",
    "ResultPayload",
]
