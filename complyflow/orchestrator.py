"""Workflow orchestrator: the only component that mutates instances."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from .aggregation import CompletionAggregator
from .config import ComplyFlowConfig, load_config
from .constants import (
    NO_PENDING_ACTION,
    RESUBMIT_ACTION_PREFIX,
    WORKFLOW_CANCELLED,
    WORKFLOW_FINISHED,
)
from .contracts import (
    Alert,
    EligibilityState,
    InstanceStatus,
    TaskOutcome,
    TaskState,
    TaskStatus,
    WorkflowEvent,
    WorkflowType,
    utcnow,
)
from .db import TimelineDB
from .deadlines import DEADLINE_KEY, RESUBMIT_KEY, DeadlineTracker, as_date, parse_deadline
from .discovery import (
    BusinessProfile,
    RequirementDiscoveryEngine,
    RequirementRule,
    get_rule_corpus,
    supersede,
)
from .exceptions import (
    ActiveInstanceExistsError,
    ConcurrentModificationError,
    InstanceTerminalError,
    InvalidMetadataError,
    UnsupportedOperationError,
    VersionConflict,
)
from .persistence import WorkflowInstance, WorkflowInstanceStore, get_repository
from .persistence.repository import Mutator
from .registry import REGISTRY, WorkflowDefinitionRegistry
from .registry.models import WorkflowDefinition
from .resolver import TaskDependencyResolver
from .status import StatusSnapshot
from .transports import BaseTransport
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

PROFILE_TASK = "business_profile"
DISCOVERY_TASK = "requirement_discovery"


def _moment(as_of: date | datetime | None) -> datetime:
    if as_of is None:
        return utcnow()
    if isinstance(as_of, datetime):
        return as_of
    return datetime.combine(as_of, time(), tzinfo=timezone.utc)


def _ensure_active(instance: WorkflowInstance) -> None:
    if instance.is_terminal:
        raise InstanceTerminalError(instance.instance_id, instance.status.value)


class WorkflowOrchestrator:
    """Facade exposing initiate/advance/get_status/cancel.

    Every write is a read-validate-write cycle committed through the
    store's compare-and-swap. When another writer wins the race the cycle is
    repeated from a fresh read, up to ``retry.max_attempts`` times.
    """

    def __init__(
        self,
        store: WorkflowInstanceStore | None = None,
        registry: WorkflowDefinitionRegistry | None = None,
        config: ComplyFlowConfig | None = None,
        transport: BaseTransport | None = None,
        timeline: TimelineDB | None = None,
        discovery: RequirementDiscoveryEngine | None = None,
    ) -> None:
        self.config = config or load_config()
        self.store = store or get_repository(config=self.config)
        self.registry = registry or REGISTRY
        self.resolver = TaskDependencyResolver()
        self.aggregator = CompletionAggregator(self.resolver)
        self.deadlines = DeadlineTracker(self.config.alerts)
        self.discovery = discovery or RequirementDiscoveryEngine(get_rule_corpus(self.config))
        self.transport = transport
        self.timeline = timeline

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def _next_action(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        eligibility: Mapping[str, EligibilityState],
    ) -> str:
        if instance.status == InstanceStatus.CANCELLED:
            return WORKFLOW_CANCELLED
        if instance.status == InstanceStatus.COMPLETED:
            return WORKFLOW_FINISHED
        rejected: Optional[str] = None
        for _, task in definition.iter_tasks():
            state = eligibility[task.task_key]
            if state == EligibilityState.ELIGIBLE:
                return task.title
            if state == EligibilityState.REJECTED and rejected is None:
                rejected = f"{RESUBMIT_ACTION_PREFIX} {task.title}"
        return rejected or NO_PENDING_ACTION

    def snapshot(
        self,
        definition: WorkflowDefinition,
        instance: WorkflowInstance,
        as_of: date | datetime | None = None,
    ) -> StatusSnapshot:
        """Compute eligibility, completion and alerts for ``instance``."""
        eligibility = self.resolver.resolve(definition, instance)
        summary = self.aggregator.aggregate(definition, instance)
        alerts = self.deadlines.compute_deadlines(definition, instance, as_of)
        return StatusSnapshot(
            instance=instance,
            as_of=as_date(as_of),
            current_phase=summary.current_phase,
            overall_percent=summary.overall_percent,
            phases=summary.per_phase,
            eligibility=eligibility,
            alerts=alerts,
            next_action=self._next_action(definition, instance, eligibility),
            requirements=instance.active_requirements(),
        )

    # ------------------------------------------------------------------
    # Commit plumbing
    # ------------------------------------------------------------------
    async def _transact(
        self,
        instance_id: str,
        build: Callable[[WorkflowDefinition], Mutator],
    ) -> tuple[WorkflowDefinition, WorkflowInstance]:
        attempts = max(1, self.config.retry.max_attempts)
        for attempt in range(attempts):
            current = await self.store.get(instance_id)
            definition = self.registry.get_definition(current.workflow_type)
            try:
                committed = await self.store.compare_and_swap(
                    instance_id, current.version, build(definition)
                )
            except VersionConflict as exc:
                logger.warning(
                    f"Version conflict on {instance_id} (attempt {attempt + 1}/{attempts}): {exc.message}"
                )
                if attempt + 1 < attempts:
                    await schedule_retry(attempt, self.config.retry)
                continue
            return definition, committed
        raise ConcurrentModificationError(instance_id, attempts)

    async def _emit(
        self,
        event_type: str,
        instance: WorkflowInstance,
        task_key: Optional[str] = None,
        outcome: Optional[str] = None,
        alerts: Sequence[Alert] = (),
        payload: Optional[dict[str, Any]] = None,
    ) -> WorkflowEvent:
        event = WorkflowEvent(
            event_type=event_type,
            instance_id=instance.instance_id,
            business_entity_id=instance.business_entity_id,
            workflow_type=instance.workflow_type,
            version=instance.version,
            task_key=task_key,
            outcome=outcome,
            alerts=list(alerts),
            payload=payload or {},
        )
        if self.timeline is not None:
            await self.timeline.record(event)
        if self.transport is not None:
            try:
                await self.transport.publish(self.config.transport.topic, event)
            except Exception as e:
                logger.error(
                    f"Failed to publish {event_type} event for {instance.instance_id}: {e}"
                )
                raise
        return event

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def initiate(
        self,
        business_entity_id: str,
        workflow_type: WorkflowType | str,
        initial_context: Optional[Mapping[str, Any]] = None,
        as_of: date | datetime | None = None,
    ) -> WorkflowInstance:
        """Start a workflow for a business entity.

        Tasks start ``not_started`` when eligible and ``blocked`` otherwise.
        ``as_of`` sets the start time that ``after_start`` deadlines count from.
        """

        definition = self.registry.get_definition(workflow_type)
        existing = await self.store.find_active(business_entity_id, definition.workflow_type)
        if existing is not None:
            raise ActiveInstanceExistsError(
                business_entity_id, definition.workflow_type.value, existing.instance_id
            )

        started = _moment(as_of)
        instance = WorkflowInstance(
            business_entity_id=business_entity_id,
            workflow_type=definition.workflow_type,
            context=dict(initial_context or {}),
            task_states=self.resolver.initial_states(definition),
            created_at=started,
            updated_at=started,
        )
        created = await self.store.create(instance)
        logger.info(
            f"Initiated {definition.workflow_type.value} workflow {created.instance_id} for {business_entity_id}"
        )
        await self._emit("initiated", created)
        return created

    def _check_metadata(self, task_key: str, metadata: Any) -> dict[str, Any]:
        if metadata is None:
            return {}
        if not isinstance(metadata, Mapping):
            raise InvalidMetadataError(task_key, "metadata", "expected a mapping")
        cleaned = dict(metadata)
        for key in (DEADLINE_KEY, RESUBMIT_KEY):
            if key in cleaned:
                cleaned[key] = parse_deadline(task_key, key, cleaned[key]).isoformat()
        return cleaned

    async def advance(
        self,
        instance_id: str,
        task_key: str,
        outcome: TaskOutcome | str,
        metadata: Optional[Mapping[str, Any]] = None,
        as_of: date | datetime | None = None,
    ) -> StatusSnapshot:
        """Apply ``outcome`` to ``task_key`` and return the refreshed snapshot."""

        now = _moment(as_of)
        extra = self._check_metadata(task_key, metadata)

        def build(definition: WorkflowDefinition) -> Mutator:
            def mutate(current: WorkflowInstance) -> WorkflowInstance:
                _ensure_active(current)
                parsed = self.resolver.ensure_can_advance(definition, current, task_key, outcome)
                state = current.task_states.get(task_key) or TaskState()
                update: dict[str, Any] = {
                    "updated_at": now,
                    "metadata": {**state.metadata, **extra},
                }
                if parsed == TaskOutcome.COMPLETED:
                    update.update(status=TaskStatus.COMPLETED, completed_at=now)
                elif parsed == TaskOutcome.REJECTED:
                    update.update(status=TaskStatus.REJECTED, completed_at=None)
                else:
                    update.update(status=TaskStatus.IN_PROGRESS)
                task_states = self.resolver.sync_statuses(
                    definition,
                    {**current.task_states, task_key: state.model_copy(update=update)},
                )
                status = current.status
                if all(s.status == TaskStatus.COMPLETED for s in task_states.values()):
                    status = InstanceStatus.COMPLETED
                return current.model_copy(update={"task_states": task_states, "status": status})

            return mutate

        definition, committed = await self._transact(instance_id, build)
        snapshot = self.snapshot(definition, committed, now)
        parsed_outcome = TaskOutcome(outcome).value
        logger.info(
            f"Task {task_key} of {instance_id} -> {parsed_outcome} (version {committed.version}, {snapshot.overall_percent}%)"
        )
        event_type = "completed" if committed.status == InstanceStatus.COMPLETED else "advanced"
        await self._emit(
            event_type,
            committed,
            task_key=task_key,
            outcome=parsed_outcome,
            alerts=snapshot.alerts,
            payload={"overall_percent": snapshot.overall_percent},
        )
        return snapshot

    async def get_status(
        self, instance_id: str, as_of: date | datetime | None = None
    ) -> StatusSnapshot:
        """Pure read; recomputes every derived value from stored state."""
        instance = await self.store.get(instance_id)
        definition = self.registry.get_definition(instance.workflow_type)
        return self.snapshot(definition, instance, as_of)

    async def cancel(self, instance_id: str, reason: Optional[str] = None) -> WorkflowInstance:
        """Mark the instance ``cancelled``; task history is kept."""

        def build(definition: WorkflowDefinition) -> Mutator:
            def mutate(current: WorkflowInstance) -> WorkflowInstance:
                _ensure_active(current)
                return current.model_copy(
                    update={"status": InstanceStatus.CANCELLED, "status_reason": reason}
                )

            return mutate

        _, committed = await self._transact(instance_id, build)
        logger.info(f"Cancelled workflow {instance_id}")
        await self._emit("cancelled", committed, payload={"reason": reason})
        return committed

    async def submit_profile(
        self,
        instance_id: str,
        profile: BusinessProfile | Mapping[str, Any],
        corpus: Optional[Sequence[RequirementRule]] = None,
        as_of: date | datetime | None = None,
    ) -> StatusSnapshot:
        """Run discovery for a license workflow and record the requirements.

        The first submission completes the profile and discovery tasks. Any
        later submission supersedes the previous requirements, which are kept
        as ``stale`` history. Malformed profile fields do not fail the call;
        they are counted as issues and the discovery is marked partial.
        """

        instance = await self.store.get(instance_id)
        if instance.workflow_type != WorkflowType.LICENSE_DISCOVERY:
            raise UnsupportedOperationError("submit_profile", instance.workflow_type.value)
        _ensure_active(instance)

        now = _moment(as_of)
        result = await asyncio.to_thread(self.discovery.discover, profile, corpus)
        if not isinstance(profile, BusinessProfile):
            profile, _ = BusinessProfile.lenient(profile)

        def build(definition: WorkflowDefinition) -> Mutator:
            def mutate(current: WorkflowInstance) -> WorkflowInstance:
                _ensure_active(current)
                generation = current.requirement_generation + 1
                details = {
                    PROFILE_TASK: {"profile_digest": result.profile_digest},
                    DISCOVERY_TASK: {
                        "generation": generation,
                        "requirement_count": len(result),
                        "partial": result.partial,
                        "issue_count": len(result.issues),
                    },
                }
                task_states = dict(current.task_states)
                for task_key, meta in details.items():
                    state = task_states.get(task_key) or TaskState()
                    update: dict[str, Any] = {
                        "updated_at": now,
                        "metadata": {**state.metadata, **meta},
                    }
                    if state.status != TaskStatus.COMPLETED:
                        self.resolver.ensure_can_advance(
                            definition,
                            current.model_copy(update={"task_states": task_states}),
                            task_key,
                            TaskOutcome.COMPLETED,
                        )
                        update.update(status=TaskStatus.COMPLETED, completed_at=now)
                    task_states[task_key] = state.model_copy(update=update)
                return current.model_copy(
                    update={
                        "task_states": self.resolver.sync_statuses(definition, task_states),
                        "requirements": supersede(current.requirements, result, generation),
                        "requirement_generation": generation,
                        "context": {
                            **current.context,
                            "profile": profile.model_dump(mode="json"),
                        },
                    }
                )

            return mutate

        definition, committed = await self._transact(instance_id, build)
        snapshot = self.snapshot(definition, committed, now)
        logger.info(
            f"Recorded {len(result)} requirements (generation {committed.requirement_generation}) for {instance_id}"
        )
        await self._emit(
            "profile_submitted",
            committed,
            task_key=DISCOVERY_TASK,
            alerts=snapshot.alerts,
            payload={
                "generation": committed.requirement_generation,
                "requirement_count": len(result),
                "partial": result.partial,
            },
        )
        return snapshot

    async def find_active(
        self, business_entity_id: str, workflow_type: WorkflowType | str
    ) -> Optional[WorkflowInstance]:
        return await self.store.find_active(business_entity_id, WorkflowType(workflow_type))

    async def list_instances(
        self, business_entity_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        return await self.store.list_instances(business_entity_id)
