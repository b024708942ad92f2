"""Typed errors raised by the compliance workflow engine.

Every error carries a human readable ``message``, a machine readable
``error_code`` and a ``details`` dict identifying the offending workflow,
phase, task or instance. Callers (request handlers, the CLI) map them to
responses; the engine itself never translates them into generic failures.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class ComplyFlowError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


# ----------------------------------------------------------------------
# Definition errors: raised while loading the registry, fatal at startup
# ----------------------------------------------------------------------
class DefinitionError(ComplyFlowError):
    """A workflow definition is missing or malformed."""


class UnknownWorkflowType(DefinitionError):
    def __init__(self, workflow_type: Any) -> None:
        name = str(getattr(workflow_type, "value", workflow_type))
        super().__init__(
            f"Unknown workflow type: {name}",
            "UNKNOWN_WORKFLOW_TYPE",
            {"workflow_type": name},
        )


class CyclicDependencyError(DefinitionError):
    """Task dependencies form a cycle; ``details['cycle']`` lists it in order."""

    def __init__(self, workflow_type: str, cycle: Sequence[str]) -> None:
        path = " -> ".join(cycle)
        super().__init__(
            f"Cyclic task dependency in {workflow_type}: {path}",
            "CYCLIC_DEPENDENCY",
            {"workflow_type": workflow_type, "cycle": list(cycle)},
        )


class DanglingDependencyError(DefinitionError):
    """A dependency or deadline anchor does not resolve to an earlier task."""

    def __init__(
        self, workflow_type: str, task_key: str, reference: str, reason: str
    ) -> None:
        super().__init__(
            f"Task {task_key!r} in {workflow_type} references {reference!r}: {reason}",
            "DANGLING_DEPENDENCY",
            {
                "workflow_type": workflow_type,
                "task_key": task_key,
                "reference": reference,
            },
        )


class DuplicateDefinitionError(DefinitionError):
    def __init__(self, workflow_type: str, kind: str, key: Any) -> None:
        super().__init__(
            f"Duplicate {kind} {key!r} in {workflow_type}",
            "DUPLICATE_DEFINITION",
            {"workflow_type": workflow_type, "kind": kind, "key": str(key)},
        )


# ----------------------------------------------------------------------
# Invariant violations: caller errors, never retried automatically
# ----------------------------------------------------------------------
class InvariantViolation(ComplyFlowError):
    """The requested operation would break an engine invariant."""


class DependencyNotSatisfiedError(InvariantViolation):
    def __init__(self, instance_id: str, task_key: str, unmet_dependency: str) -> None:
        super().__init__(
            f"Task {task_key!r} is locked: dependency {unmet_dependency!r} is not completed",
            "DEPENDENCY_NOT_SATISFIED",
            {
                "instance_id": instance_id,
                "task_key": task_key,
                "unmet_dependency": unmet_dependency,
            },
        )


class InstanceTerminalError(InvariantViolation):
    def __init__(self, instance_id: str, status: str) -> None:
        super().__init__(
            f"Workflow instance {instance_id} is {status} and cannot change",
            "INSTANCE_TERMINAL",
            {"instance_id": instance_id, "status": status},
        )


class ActiveInstanceExistsError(InvariantViolation):
    def __init__(
        self,
        business_entity_id: str,
        workflow_type: str,
        instance_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"An active {workflow_type} workflow already exists for {business_entity_id}",
            "ACTIVE_INSTANCE_EXISTS",
            {
                "business_entity_id": business_entity_id,
                "workflow_type": workflow_type,
                "instance_id": instance_id,
            },
        )


class TaskAlreadyCompletedError(InvariantViolation):
    def __init__(self, instance_id: str, task_key: str) -> None:
        super().__init__(
            f"Task {task_key!r} is already completed",
            "TASK_ALREADY_COMPLETED",
            {"instance_id": instance_id, "task_key": task_key},
        )


class UnknownTaskError(InvariantViolation):
    def __init__(self, workflow_type: str, task_key: str) -> None:
        super().__init__(
            f"Workflow {workflow_type} has no task {task_key!r}",
            "UNKNOWN_TASK",
            {"workflow_type": workflow_type, "task_key": task_key},
        )


class InvalidOutcomeError(InvariantViolation):
    def __init__(self, task_key: str, outcome: Any) -> None:
        super().__init__(
            f"Outcome {outcome!r} is not valid for task {task_key!r}",
            "INVALID_OUTCOME",
            {"task_key": task_key, "outcome": str(outcome)},
        )


class InvalidMetadataError(InvariantViolation):
    def __init__(self, task_key: str, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid metadata {field!r} for task {task_key!r}: {reason}",
            "INVALID_METADATA",
            {"task_key": task_key, "field": field},
        )


class UnsupportedOperationError(InvariantViolation):
    def __init__(self, operation: str, workflow_type: str) -> None:
        super().__init__(
            f"{operation} is not supported for {workflow_type} workflows",
            "UNSUPPORTED_OPERATION",
            {"operation": operation, "workflow_type": workflow_type},
        )


class InstanceNotFoundError(ComplyFlowError):
    def __init__(self, instance_id: str) -> None:
        super().__init__(
            f"Workflow instance not found: {instance_id}",
            "INSTANCE_NOT_FOUND",
            {"instance_id": instance_id},
        )


# ----------------------------------------------------------------------
# Concurrency errors: transient, retried by the orchestrator
# ----------------------------------------------------------------------
class ConcurrencyError(ComplyFlowError):
    """A concurrent writer won the race for an instance version."""


class VersionConflict(ConcurrencyError):
    def __init__(
        self, instance_id: str, expected_version: int, actual_version: Optional[int]
    ) -> None:
        super().__init__(
            f"Instance {instance_id} moved from version {expected_version} to {actual_version}",
            "VERSION_CONFLICT",
            {
                "instance_id": instance_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class ConcurrentModificationError(ConcurrencyError):
    def __init__(self, instance_id: str, attempts: int) -> None:
        super().__init__(
            f"Instance {instance_id} kept changing; gave up after {attempts} attempts",
            "CONCURRENT_MODIFICATION",
            {"instance_id": instance_id, "attempts": attempts},
        )


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------
class ProfileFieldError(ComplyFlowError):
    """A business profile field could not be evaluated by a rule.

    Raised inside rule evaluation only; ``discover`` turns it into a
    ``FieldIssue`` and flags the result as partial.
    """

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(
            f"Profile field {field!r} is malformed: {reason}",
            "PROFILE_FIELD_ERROR",
            {"field": field},
        )
        self.field = field
        self.reason = reason


__all__ = [
    "ComplyFlowError",
    "DefinitionError",
    "UnknownWorkflowType",
    "CyclicDependencyError",
    "DanglingDependencyError",
    "DuplicateDefinitionError",
    "InvariantViolation",
    "DependencyNotSatisfiedError",
    "InstanceTerminalError",
    "ActiveInstanceExistsError",
    "TaskAlreadyCompletedError",
    "UnknownTaskError",
    "InvalidOutcomeError",
    "InvalidMetadataError",
    "UnsupportedOperationError",
    "InstanceNotFoundError",
    "ConcurrencyError",
    "VersionConflict",
    "ConcurrentModificationError",
    "ProfileFieldError",
]
