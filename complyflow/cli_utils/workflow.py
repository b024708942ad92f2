"""Helpers for loading CLI inputs and rendering workflow state."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from complyflow.discovery import DiscoveryResult
from complyflow.registry.models import WorkflowDefinition
from complyflow.status import StatusSnapshot


def _load_mapping(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML document that must contain a mapping."""

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return data


def _parse_json_option(value: Optional[str], name: str) -> dict[str, Any]:
    if not value:
        return {}
    data = json.loads(value)
    if not isinstance(data, dict):
        raise ValueError(f"--{name} must be a JSON object")
    return data


def describe_definition(definition: WorkflowDefinition) -> str:
    task_count = len(definition.task_keys())
    return (
        f"{definition.workflow_type.value}\t{definition.title}\t"
        f"{len(definition.phases)} phases, {task_count} tasks"
    )


def render_snapshot(snapshot: StatusSnapshot) -> list[str]:
    instance = snapshot.instance
    lines = [
        f"Workflow {instance.instance_id}: {instance.status.value} "
        f"({instance.workflow_type.value}, entity {instance.business_entity_id}, version {instance.version})",
        f"Progress: {snapshot.overall_percent}% (current phase: {snapshot.current_phase or '-'})",
        f"Next action: {snapshot.next_action}",
    ]
    for phase in snapshot.phases:
        lines.append(f"- {phase.phase_key}: {phase.completed}/{phase.total} ({phase.percent}%)")
    for task_key, state in instance.task_states.items():
        lines.append(
            f"  {task_key}: {state.status.value} [{snapshot.eligibility[task_key].value}]"
            if task_key in snapshot.eligibility
            else f"  {task_key}: {state.status.value}"
        )
    for alert in snapshot.alerts:
        lines.append(f"! {alert.severity.value.upper()} {alert.message} (due {alert.due_date})")
    for req in snapshot.requirements:
        lines.append(f"* {req.priority.value}\t{req.name}\t{req.issuing_authority}")
    return lines


def render_discovery(result: DiscoveryResult) -> list[str]:
    lines = [
        f"{req.priority.value}\t{req.name}\t{req.issuing_authority}\t{req.jurisdiction}"
        for req in result.requirements
    ]
    if not lines:
        lines.append("No requirements discovered.")
    for issue in result.issues:
        lines.append(f"warning: {issue.field} ({issue.rule_id}): {issue.message}")
    return lines
