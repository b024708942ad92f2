"""complyflow: compliance lifecycle workflow engine."""

from .contracts import (
    Alert,
    EligibilityState,
    InstanceStatus,
    Priority,
    Severity,
    TaskOutcome,
    TaskState,
    TaskStatus,
    WorkflowEvent,
    WorkflowType,
)
from .discovery import BusinessProfile, RequirementDiscoveryEngine, discover
from .orchestrator import WorkflowOrchestrator
from .persistence import WorkflowInstance, get_repository
from .registry import REGISTRY, WorkflowDefinitionRegistry
from .status import StatusSnapshot
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "Alert",
    "BusinessProfile",
    "EligibilityState",
    "InstanceStatus",
    "Priority",
    "REGISTRY",
    "RequirementDiscoveryEngine",
    "Severity",
    "StatusSnapshot",
    "TaskOutcome",
    "TaskState",
    "TaskStatus",
    "WorkflowDefinitionRegistry",
    "WorkflowEvent",
    "WorkflowInstance",
    "WorkflowOrchestrator",
    "WorkflowType",
    "discover",
    "get_repository",
    "get_transport",
]
