"""Walk a dissolution workflow through its first phases."""

import asyncio

from complyflow import WorkflowOrchestrator, get_transport
from complyflow.persistence import InMemoryWorkflowStore


async def main():
    """Basic dissolution example."""
    transport = get_transport("inmemory")
    orchestrator = WorkflowOrchestrator(store=InMemoryWorkflowStore(), transport=transport)

    instance = await orchestrator.initiate(
        "biz-123", "dissolution", {"state": "DE", "entity_type": "LLC"}
    )
    print(f"✅ Dissolution started: {instance.instance_id}")

    for task_key in ("member_approval", "board_resolution"):
        snapshot = await orchestrator.advance(instance.instance_id, task_key, "completed")
        print(f"📋 {task_key} done, {snapshot.overall_percent}% complete")

    snapshot = await orchestrator.get_status(instance.instance_id)
    print(f"➡️  Next action: {snapshot.next_action}")
    for alert in snapshot.alerts:
        print(f"⚠️  [{alert.severity.value}] {alert.message}")

    for event in transport.pending("complyflow.events"):
        print(f"🔗 {event.event_type} v{event.version}")


if __name__ == "__main__":
    asyncio.run(main())
