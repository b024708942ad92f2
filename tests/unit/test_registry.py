"""Tests for workflow definition validation and lookup."""

import pytest
from pydantic import ValidationError

from complyflow.config import ComplyFlowConfig
from complyflow.contracts import WorkflowType
from complyflow.exceptions import (
    CyclicDependencyError,
    DanglingDependencyError,
    DefinitionError,
    DuplicateDefinitionError,
    UnknownWorkflowType,
)
from complyflow.registry import (
    REGISTRY,
    WorkflowDefinitionRegistry,
    get_registry,
    load_definitions,
)
from complyflow.registry.models import (
    DeadlineRule,
    PhaseDefinition,
    TaskDefinition,
    WorkflowDefinition,
)


def _definition(*phases: PhaseDefinition) -> WorkflowDefinition:
    return WorkflowDefinition(workflow_type=WorkflowType.DISSOLUTION, phases=phases)


def _phase(key: str, order: int, *tasks: TaskDefinition) -> PhaseDefinition:
    return PhaseDefinition(phase_key=key, order=order, tasks=tasks)


def test_builtin_catalog_phases():
    dissolution = REGISTRY.get_definition(WorkflowType.DISSOLUTION)
    assert [p.phase_key for p in dissolution.phases] == [
        "decision",
        "approval",
        "filing",
        "wind_down",
        "closure",
    ]
    name_change = REGISTRY.get_definition("name_change")
    assert [p.phase_key for p in name_change.phases] == [
        "internal_approval",
        "name_availability",
        "state_filing",
        "irs_notification",
        "license_updates",
    ]
    assert set(REGISTRY.workflow_types()) == set(WorkflowType)


def test_unknown_workflow_type():
    with pytest.raises(UnknownWorkflowType):
        REGISTRY.get_definition("bankruptcy")

    registry = WorkflowDefinitionRegistry([REGISTRY.get_definition("dissolution")])
    with pytest.raises(UnknownWorkflowType) as exc_info:
        registry.get_definition(WorkflowType.NAME_CHANGE)
    assert exc_info.value.details["workflow_type"] == "name_change"
    assert exc_info.value.message == "Unknown workflow type: name_change"
    assert "name_change" not in registry


def test_cycle_is_named():
    definition = _definition(
        _phase(
            "only",
            1,
            TaskDefinition(task_key="a", depends_on=("b",)),
            TaskDefinition(task_key="b", depends_on=("a",)),
        )
    )
    with pytest.raises(CyclicDependencyError) as exc_info:
        WorkflowDefinitionRegistry([definition])
    assert exc_info.value.details["cycle"] == ["a", "b", "a"]
    assert "a -> b -> a" in exc_info.value.message


def test_self_dependency_is_a_cycle():
    definition = _definition(_phase("only", 1, TaskDefinition(task_key="a", depends_on=("a",))))
    with pytest.raises(CyclicDependencyError):
        WorkflowDefinitionRegistry([definition])


def test_missing_dependency_is_dangling():
    definition = _definition(
        _phase("only", 1, TaskDefinition(task_key="a", depends_on=("ghost",)))
    )
    with pytest.raises(DanglingDependencyError) as exc_info:
        WorkflowDefinitionRegistry([definition])
    assert exc_info.value.details["reference"] == "ghost"


def test_dependency_on_later_phase_is_dangling():
    definition = _definition(
        _phase("first", 1, TaskDefinition(task_key="a", depends_on=("b",))),
        _phase("second", 2, TaskDefinition(task_key="b")),
    )
    with pytest.raises(DanglingDependencyError):
        WorkflowDefinitionRegistry([definition])


def test_deadline_anchor_must_resolve():
    definition = _definition(
        _phase(
            "only",
            1,
            TaskDefinition(task_key="a", deadline_rule=DeadlineRule.after_task("nope", 5)),
        )
    )
    with pytest.raises(DanglingDependencyError):
        WorkflowDefinitionRegistry([definition])


def test_resubmission_anchor_must_resolve():
    definition = _definition(
        _phase("first", 1, TaskDefinition(task_key="a")),
        _phase(
            "second",
            2,
            TaskDefinition(task_key="b", resubmission_rule=DeadlineRule.after_task("ghost", 5)),
        ),
    )
    with pytest.raises(DanglingDependencyError) as exc_info:
        WorkflowDefinitionRegistry([definition])
    assert exc_info.value.details["task_key"] == "b"
    assert exc_info.value.details["reference"] == "ghost"

    anchored = _definition(
        _phase("first", 1, TaskDefinition(task_key="a")),
        _phase(
            "second",
            2,
            TaskDefinition(task_key="b", resubmission_rule=DeadlineRule.after_task("a", 5)),
        ),
    )
    assert WorkflowDefinitionRegistry([anchored]).get_definition("dissolution") == anchored


def test_duplicate_task_and_phase_order():
    duplicate_task = _definition(
        _phase("first", 1, TaskDefinition(task_key="a")),
        _phase("second", 2, TaskDefinition(task_key="a")),
    )
    with pytest.raises(DuplicateDefinitionError):
        WorkflowDefinitionRegistry([duplicate_task])

    duplicate_order = _definition(
        _phase("first", 1, TaskDefinition(task_key="a")),
        _phase("second", 1, TaskDefinition(task_key="b")),
    )
    with pytest.raises(DuplicateDefinitionError):
        WorkflowDefinitionRegistry([duplicate_order])


def test_duplicate_workflow_type_requires_replace():
    definition = REGISTRY.get_definition("dissolution")
    registry = WorkflowDefinitionRegistry([definition])
    with pytest.raises(DuplicateDefinitionError):
        registry.register(definition)
    registry.register(definition, replace=True)
    assert registry.definitions() == [definition]


def test_model_validation():
    assert TaskDefinition(task_key="file_form_966").title == "File Form 966"
    with pytest.raises(ValidationError):
        DeadlineRule(kind="fixed")
    with pytest.raises(ValidationError):
        TaskDefinition(task_key="a", deadline_rule=DeadlineRule.after_rejection(3))
    phases = _definition(
        _phase("late", 2, TaskDefinition(task_key="b")),
        _phase("early", 1, TaskDefinition(task_key="a")),
    ).phases
    assert [p.phase_key for p in phases] == ["early", "late"]


DEFINITIONS_YAML = """
workflows:
  - workflow_type: dissolution
    title: Small LLC Dissolution
    phases:
      - phase_key: decision
        order: 1
        tasks:
          - task_key: member_vote
            is_critical: true
            deadline_rule: {kind: after_start, days: 5}
      - phase_key: filing
        order: 2
        tasks:
          - task_key: articles
            depends_on: [member_vote]
            deadline_rule: {kind: after_task, anchor_task: member_vote, days: 10}
"""


def test_load_definitions_and_overlay(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text(DEFINITIONS_YAML)

    definitions = load_definitions(path)
    assert len(definitions) == 1
    assert definitions[0].get_task("articles").depends_on == ("member_vote",)

    registry = get_registry(ComplyFlowConfig(definitions_path=str(path)))
    assert registry.get_definition("dissolution").title == "Small LLC Dissolution"
    assert registry.get_definition("name_change") is REGISTRY.get_definition("name_change")


def test_load_definitions_rejects_malformed(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text(
        "workflows:\n  - workflow_type: dissolution\n    phases:\n      - phase_key: x\n"
    )
    with pytest.raises(DefinitionError):
        load_definitions(path)
