import asyncio
import json

import pytest
from typer.testing import CliRunner

import complyflow.persistence as persistence
from complyflow.cli import app
from complyflow.contracts import InstanceStatus, TaskStatus
from complyflow.persistence import InMemoryWorkflowStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("COMPLYFLOW_CONFIG", "COMPLYFLOW_DATABASE_URL", "DATABASE_URL", "COMPLYFLOW_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def repo(monkeypatch) -> InMemoryWorkflowStore:
    repo = InMemoryWorkflowStore()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    return repo


def _instances(repo):
    return asyncio.run(repo.list_instances())


def test_definitions_list():
    result = runner.invoke(app, ["definitions", "list"])
    assert result.exit_code == 0, result.output
    assert "dissolution\tBusiness Dissolution\t5 phases, 12 tasks" in result.output
    assert "name_change" in result.output
    assert "license_discovery" in result.output


def test_definitions_validate(tmp_path):
    result = runner.invoke(app, ["definitions", "validate"])
    assert result.exit_code == 0, result.output
    assert "3 workflow definition(s) valid" in result.output

    cyclic = tmp_path / "cyclic.yaml"
    cyclic.write_text(
        """
workflows:
  - workflow_type: dissolution
    phases:
      - phase_key: decision
        order: 1
        tasks:
          - {task_key: vote, depends_on: [notice]}
          - {task_key: notice, depends_on: [vote]}
"""
    )
    result = runner.invoke(app, ["definitions", "validate", str(cyclic)])
    assert result.exit_code == 1
    assert "vote -> notice -> vote" in result.output

    result = runner.invoke(app, ["definitions", "validate", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_discover_command(tmp_path):
    profile = tmp_path / "profile.yaml"
    profile.write_text("industry: '72'\nhandlesFood: true\n")

    result = runner.invoke(app, ["discover", str(profile)])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("critical\tFood Service Permit")
    assert lines[1].startswith("medium\tGeneral Business License")

    result = runner.invoke(app, ["discover", str(profile), "--json"])
    data = json.loads(result.output)
    assert [r["name"] for r in data["requirements"]] == [
        "Food Service Permit",
        "General Business License",
    ]
    assert data["partial"] is False


def test_discover_reports_partial(tmp_path):
    profile = tmp_path / "profile.json"
    profile.write_text(json.dumps({"industry": "restaurant"}))
    result = runner.invoke(app, ["discover", str(profile)])
    assert result.exit_code == 0, result.output
    assert "warning: industry_code (general_contractor_license)" in result.output


def test_workflow_list_empty(repo):
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert "No workflows found" in result.output


def test_workflow_lifecycle(repo):
    result = runner.invoke(app, ["workflow", "initiate", "biz-1", "dissolution"])
    assert result.exit_code == 0, result.output
    (instance,) = _instances(repo)
    assert f"Workflow initiated: {instance.instance_id}" in result.output

    result = runner.invoke(app, ["workflow", "advance", instance.instance_id, "member_approval"])
    assert result.exit_code == 0, result.output
    assert "Progress: 8%" in result.output
    assert "Next action: Board Resolution" in result.output

    result = runner.invoke(app, ["workflow", "advance", instance.instance_id, "form_966"])
    assert result.exit_code == 1
    assert "dependency 'state_filing' is not completed" in result.output

    result = runner.invoke(app, ["workflow", "list"])
    assert f"{instance.instance_id}\tdissolution\tbiz-1\tactive\tv2" in result.output

    result = runner.invoke(app, ["workflow", "show", instance.instance_id])
    assert result.exit_code == 0, result.output
    assert "member_approval: completed [completed]" in result.output
    assert "board_resolution: not_started [eligible]" in result.output

    result = runner.invoke(
        app, ["workflow", "cancel", instance.instance_id, "--reason", "Owner withdrew"]
    )
    assert result.exit_code == 0, result.output
    (cancelled,) = _instances(repo)
    assert cancelled.status == InstanceStatus.CANCELLED
    assert cancelled.status_reason == "Owner withdrew"

    result = runner.invoke(app, ["workflow", "advance", instance.instance_id, "board_resolution"])
    assert result.exit_code == 1
    assert "cancelled" in result.output


def test_workflow_advance_with_metadata(repo):
    runner.invoke(app, ["workflow", "initiate", "biz-9", "name_change"])
    (instance,) = _instances(repo)
    runner.invoke(app, ["workflow", "advance", instance.instance_id, "approve_resolution"])

    result = runner.invoke(
        app,
        [
            "workflow",
            "advance",
            instance.instance_id,
            "check_name_availability",
            "rejected",
            "--metadata",
            '{"conflict": true}',
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Next action: Re-submit Verify Name Availability" in result.output
    (stored,) = _instances(repo)
    state = stored.task_states["check_name_availability"]
    assert state.status == TaskStatus.REJECTED
    assert state.metadata == {"conflict": True}

    result = runner.invoke(
        app,
        ["workflow", "advance", instance.instance_id, "file_state_amendment", "--metadata", "[1]"],
    )
    assert result.exit_code == 1
    assert "--metadata must be a JSON object" in result.output


def test_workflow_submit_profile(repo, tmp_path):
    runner.invoke(app, ["workflow", "initiate", "biz-5", "license_discovery"])
    (instance,) = _instances(repo)
    profile = tmp_path / "profile.yaml"
    profile.write_text("handlesFood: true\n")

    result = runner.invoke(app, ["workflow", "submit-profile", instance.instance_id, str(profile)])
    assert result.exit_code == 0, result.output
    assert "* critical\tFood Service Permit\tLocal Health Department" in result.output
    assert "Next action: Submit License Applications" in result.output


def test_workflow_errors(repo):
    result = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert result.exit_code == 1
    assert "Workflow instance not found: missing-id" in result.output

    result = runner.invoke(app, ["workflow", "initiate", "biz-1", "bankruptcy"])
    assert result.exit_code == 1
    assert "Unknown workflow type: bankruptcy" in result.output
