"""Shared fixtures for complyflow tests."""

from datetime import datetime, timezone

import pytest

from complyflow.config import ComplyFlowConfig, RetryConfig
from complyflow.contracts import WorkflowType
from complyflow.orchestrator import WorkflowOrchestrator
from complyflow.persistence import InMemoryWorkflowStore
from complyflow.registry import WorkflowDefinitionRegistry
from complyflow.registry.catalog import LICENSE_DISCOVERY, NAME_CHANGE
from complyflow.registry.models import (
    DeadlineRule,
    PhaseDefinition,
    TaskDefinition,
    WorkflowDefinition,
)

START = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def mini_dissolution() -> WorkflowDefinition:
    """Two phase dissolution: one decision task, two dependent filing tasks."""
    return WorkflowDefinition(
        workflow_type=WorkflowType.DISSOLUTION,
        title="Mini Dissolution",
        phases=(
            PhaseDefinition(
                phase_key="decision",
                order=1,
                tasks=(TaskDefinition(task_key="decide", is_critical=True),),
            ),
            PhaseDefinition(
                phase_key="filing",
                order=2,
                tasks=(
                    TaskDefinition(
                        task_key="file_articles",
                        depends_on=("decide",),
                        is_critical=True,
                        deadline_rule=DeadlineRule.after_task("decide", 10),
                    ),
                    TaskDefinition(
                        task_key="file_final_return",
                        depends_on=("decide", "file_articles"),
                        deadline_rule=DeadlineRule.after_start(60),
                    ),
                ),
            ),
        ),
    )


@pytest.fixture
def config() -> ComplyFlowConfig:
    return ComplyFlowConfig(retry=RetryConfig(max_attempts=5, initial_delay=0, jitter=0))


@pytest.fixture
def registry() -> WorkflowDefinitionRegistry:
    return WorkflowDefinitionRegistry([mini_dissolution(), NAME_CHANGE, LICENSE_DISCOVERY])


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def orchestrator(store, registry, config) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(store=store, registry=registry, config=config)


@pytest.fixture
def mini_definition() -> WorkflowDefinition:
    return mini_dissolution()
