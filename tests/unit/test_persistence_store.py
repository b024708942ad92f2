import pytest

import complyflow.persistence as persistence
from complyflow.contracts import InstanceStatus, Priority, TaskState, TaskStatus, WorkflowType
from complyflow.discovery import Requirement
from complyflow.exceptions import (
    ActiveInstanceExistsError,
    InstanceNotFoundError,
    UnknownTaskError,
    VersionConflict,
)
from complyflow.persistence import (
    InMemoryWorkflowStore,
    SQLiteWorkflowStore,
    WorkflowInstance,
    get_repository,
)

from conftest import START


@pytest.fixture(params=["inmemory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteWorkflowStore(tmp_path / "complyflow.db")
    return InMemoryWorkflowStore()


def _instance(entity="biz-1", workflow_type=WorkflowType.DISSOLUTION) -> WorkflowInstance:
    return WorkflowInstance(
        business_entity_id=entity,
        workflow_type=workflow_type,
        created_at=START,
        updated_at=START,
        context={"state": "DE"},
        task_states={
            "member_approval": TaskState(
                status=TaskStatus.COMPLETED,
                completed_at=START,
                updated_at=START,
                metadata={"vote": "unanimous"},
            ),
            "board_resolution": TaskState(),
        },
        requirements=[
            Requirement(
                requirement_id="req-1",
                name="Food Service Permit",
                license_category="health-safety",
                priority=Priority.CRITICAL,
                issuing_authority="Local Health Department",
                jurisdiction="County",
                rule_ids=("food_service_permit",),
            )
        ],
        requirement_generation=1,
    )


def _cancel(instance: WorkflowInstance) -> WorkflowInstance:
    return instance.model_copy(update={"status": InstanceStatus.CANCELLED})


@pytest.mark.asyncio
async def test_create_and_get_round_trip(any_store):
    created = await any_store.create(_instance())
    loaded = await any_store.get(created.instance_id)

    assert loaded == created
    assert loaded.version == 1
    assert loaded.created_at == START
    assert loaded.task_states["member_approval"].metadata == {"vote": "unanimous"}
    assert loaded.requirements[0].priority == Priority.CRITICAL


@pytest.mark.asyncio
async def test_missing_instance(any_store):
    with pytest.raises(InstanceNotFoundError):
        await any_store.get("nope")


@pytest.mark.asyncio
async def test_one_active_instance_per_entity_and_type(any_store):
    first = await any_store.create(_instance())
    with pytest.raises(ActiveInstanceExistsError) as exc_info:
        await any_store.create(_instance())
    assert exc_info.value.details["instance_id"] == first.instance_id

    # A different type or entity is fine.
    await any_store.create(_instance(workflow_type=WorkflowType.NAME_CHANGE))
    await any_store.create(_instance(entity="biz-2"))

    await any_store.compare_and_swap(first.instance_id, 1, _cancel)
    assert await any_store.find_active("biz-1", WorkflowType.DISSOLUTION) is None
    replacement = await any_store.create(_instance())
    found = await any_store.find_active("biz-1", WorkflowType.DISSOLUTION)
    assert found.instance_id == replacement.instance_id


@pytest.mark.asyncio
async def test_compare_and_swap_bumps_version(any_store):
    created = await any_store.create(_instance())

    def start_board(instance):
        states = dict(instance.task_states)
        states["board_resolution"] = TaskState(status=TaskStatus.IN_PROGRESS)
        return instance.model_copy(update={"task_states": states})

    committed = await any_store.compare_and_swap(created.instance_id, 1, start_board)
    assert committed.version == 2
    assert committed.updated_at > START

    loaded = await any_store.get(created.instance_id)
    assert loaded.version == 2
    assert loaded.task_status("board_resolution") == TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_stale_version_conflicts(any_store):
    created = await any_store.create(_instance())
    await any_store.compare_and_swap(created.instance_id, 1, lambda i: i)

    with pytest.raises(VersionConflict) as exc_info:
        await any_store.compare_and_swap(created.instance_id, 1, _cancel)
    assert exc_info.value.details["actual_version"] == 2
    assert (await any_store.get(created.instance_id)).status == InstanceStatus.ACTIVE


@pytest.mark.asyncio
async def test_mutator_errors_leave_state_untouched(any_store):
    created = await any_store.create(_instance())

    def reject(instance):
        raise UnknownTaskError("dissolution", "publish_notice")

    with pytest.raises(UnknownTaskError):
        await any_store.compare_and_swap(created.instance_id, 1, reject)
    assert (await any_store.get(created.instance_id)).version == 1


@pytest.mark.asyncio
async def test_list_instances(any_store):
    await any_store.create(_instance())
    await any_store.create(_instance(entity="biz-2"))

    assert len(await any_store.list_instances()) == 2
    (only,) = await any_store.list_instances("biz-2")
    assert only.business_entity_id == "biz-2"


@pytest.mark.asyncio
async def test_returned_copies_are_detached():
    store = InMemoryWorkflowStore()
    created = await store.create(_instance())
    created.context["state"] = "CA"

    loaded = await store.get(created.instance_id)
    assert loaded.context == {"state": "DE"}


def test_get_repository_backends(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    monkeypatch.delenv("COMPLYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    store = get_repository(f"sqlite://{tmp_path / 'repo.db'}")
    assert isinstance(store, SQLiteWorkflowStore)
    assert get_repository() is store

    with pytest.raises(ValueError):
        get_repository("mysql://db/complyflow")
