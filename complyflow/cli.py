"""Command line interface for operating compliance workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, Optional, TypeVar

import typer
from pydantic import ValidationError

from complyflow import get_repository, get_transport
from complyflow.cli_utils.workflow import (
    _load_mapping,
    _parse_json_option,
    describe_definition,
    render_discovery,
    render_snapshot,
)
from complyflow.config import load_config
from complyflow.db import TimelineDB
from complyflow.discovery import RequirementDiscoveryEngine, get_rule_corpus, load_rule_corpus
from complyflow.exceptions import ComplyFlowError
from complyflow.orchestrator import WorkflowOrchestrator
from complyflow.registry import WorkflowDefinitionRegistry, get_registry, load_definitions

T = TypeVar("T")

app = typer.Typer(help="CLI for complyflow compliance workflows")

# Command groups
definitions_app = typer.Typer(help="Commands for inspecting workflow definitions")
workflow_app = typer.Typer(help="Commands for managing workflow instances")

app.add_typer(definitions_app, name="definitions")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level"),
) -> None:
    """complyflow CLI entry point."""
    logging.basicConfig(level=log_level.upper())


def _fail(message: str) -> NoReturn:
    typer.secho(f"Error: {message}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _run(operation: Callable[[WorkflowOrchestrator], Awaitable[T]]) -> T:
    """Build an orchestrator from configuration and run ``operation`` on it."""

    config = load_config()

    async def runner() -> T:
        timeline = None
        if config.timeline_url:
            timeline = TimelineDB(config.timeline_url)
            await timeline.init_db()
        orchestrator = WorkflowOrchestrator(
            store=get_repository(),
            registry=get_registry(config),
            config=config,
            transport=get_transport(config=config),
            timeline=timeline,
        )
        try:
            return await operation(orchestrator)
        finally:
            if timeline is not None:
                await timeline.close()

    try:
        return asyncio.run(runner())
    except ComplyFlowError as exc:
        _fail(exc.message)
    except ValidationError as exc:
        _fail(str(exc))


# ----------------------------------------------------------------------
# Definitions
# ----------------------------------------------------------------------
@definitions_app.command("list")
def definitions_list() -> None:
    """
    List registered workflow types.

    Example:
        complyflow definitions list
        # Output: dissolution    Business Dissolution    5 phases, 12 tasks
    """
    try:
        registry = get_registry(load_config())
    except ComplyFlowError as exc:
        _fail(exc.message)
    for definition in registry.definitions():
        typer.echo(describe_definition(definition))


@definitions_app.command("validate")
def definitions_validate(path: Optional[Path] = typer.Argument(None)) -> None:
    """
    Validate workflow definitions.

    Checks dependency cycles, dangling references and duplicate keys. Without
    a path the built-in catalog plus configured overrides are checked.

    Example:
        complyflow definitions validate ./workflows.yaml
    """
    try:
        if path is None:
            registry = get_registry(load_config())
        else:
            registry = WorkflowDefinitionRegistry(load_definitions(path))
    except ComplyFlowError as exc:
        _fail(exc.message)
    except FileNotFoundError:
        _fail(f"{path} does not exist")
    typer.secho(
        f"{len(registry.definitions())} workflow definition(s) valid", fg=typer.colors.GREEN
    )


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------
@app.command("discover")
def discover(
    profile: Path,
    rules: Optional[Path] = typer.Option(None, help="YAML rule corpus to use"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """
    Discover license requirements for a business profile.

    PROFILE is a JSON or YAML file with fields such as industry, handlesFood
    and operatingLocations.

    Example:
        complyflow discover ./profile.yaml
        # Output: critical    Food Service Permit    Local Health Department    County
    """
    try:
        data = _load_mapping(profile)
        corpus = load_rule_corpus(rules) if rules else get_rule_corpus(load_config())
        result = RequirementDiscoveryEngine(corpus).discover(data)
    except (OSError, ValueError) as exc:
        _fail(str(exc))
    except ComplyFlowError as exc:
        _fail(exc.message)
    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return
    for line in render_discovery(result):
        typer.echo(line)


# ----------------------------------------------------------------------
# Workflow instances
# ----------------------------------------------------------------------
@workflow_app.command("list")
def workflow_list(entity: Optional[str] = typer.Option(None, help="Business entity id")) -> None:
    """
    List workflow instances with their status and version.

    Example:
        complyflow workflow list
        # Output: 0b9e...    dissolution    biz-1    active    v3
    """
    instances = _run(lambda o: o.list_instances(entity))
    if not instances:
        typer.echo("No workflows found")
        return
    for inst in instances:
        typer.echo(
            f"{inst.instance_id}\t{inst.workflow_type.value}\t{inst.business_entity_id}\t"
            f"{inst.status.value}\tv{inst.version}"
        )


@workflow_app.command("show")
def workflow_show(instance_id: str) -> None:
    """
    Show progress, eligibility and alerts for an instance.

    Example:
        complyflow workflow show 0b9e...
    """
    snapshot = _run(lambda o: o.get_status(instance_id))
    for line in render_snapshot(snapshot):
        typer.echo(line)


@workflow_app.command("initiate")
def workflow_initiate(
    entity: str,
    workflow_type: str,
    context: Optional[str] = typer.Option(None, help="Initial context as a JSON object"),
) -> None:
    """
    Start a workflow for a business entity.

    Example:
        complyflow workflow initiate biz-1 dissolution
    """
    try:
        initial: dict[str, Any] = _parse_json_option(context, "context")
    except (json.JSONDecodeError, ValueError) as exc:
        _fail(str(exc))
    instance = _run(lambda o: o.initiate(entity, workflow_type, initial))
    typer.echo(f"Workflow initiated: {instance.instance_id}")


@workflow_app.command("advance")
def workflow_advance(
    instance_id: str,
    task_key: str,
    outcome: str = typer.Argument("completed"),
    metadata: Optional[str] = typer.Option(None, help="Task metadata as a JSON object"),
) -> None:
    """
    Report a task outcome (in_progress, completed or rejected).

    Example:
        complyflow workflow advance 0b9e... member_approval completed
        complyflow workflow advance 0b9e... check_name_availability rejected --metadata '{"conflict": true}'
    """
    try:
        extra = _parse_json_option(metadata, "metadata")
    except (json.JSONDecodeError, ValueError) as exc:
        _fail(str(exc))
    snapshot = _run(lambda o: o.advance(instance_id, task_key, outcome, extra))
    for line in render_snapshot(snapshot):
        typer.echo(line)


@workflow_app.command("submit-profile")
def workflow_submit_profile(instance_id: str, profile: Path) -> None:
    """
    Submit a business profile to a license discovery workflow.

    Example:
        complyflow workflow submit-profile 0b9e... ./profile.yaml
    """
    try:
        data = _load_mapping(profile)
    except (OSError, ValueError) as exc:
        _fail(str(exc))
    snapshot = _run(lambda o: o.submit_profile(instance_id, data))
    for line in render_snapshot(snapshot):
        typer.echo(line)


@workflow_app.command("cancel")
def workflow_cancel(
    instance_id: str, reason: Optional[str] = typer.Option(None, help="Cancellation reason")
) -> None:
    """
    Cancel an active workflow; its history is kept.

    Example:
        complyflow workflow cancel 0b9e... --reason "Owner withdrew"
    """
    instance = _run(lambda o: o.cancel(instance_id, reason))
    typer.echo(f"Workflow {instance.instance_id}: {instance.status.value}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
