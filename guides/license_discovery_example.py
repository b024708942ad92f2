"""Discover license requirements for a restaurant and re-run discovery after a change."""

import asyncio

from complyflow import BusinessProfile, WorkflowOrchestrator, discover
from complyflow.persistence import InMemoryWorkflowStore


async def main():
    profile = BusinessProfile(
        industry="722511",
        handlesFood=True,
        hasPhysicalLocation=True,
        salesChannels=["retail"],
        operatingLocations=["Austin, Travis County, TX"],
    )

    # Stateless discovery
    for requirement in discover(profile).requirements:
        print(f"{requirement.priority.value:<9} {requirement.name} ({requirement.issuing_authority})")

    # Discovery tracked by a workflow
    orchestrator = WorkflowOrchestrator(store=InMemoryWorkflowStore())
    instance = await orchestrator.initiate("biz-456", "license_discovery")
    snapshot = await orchestrator.submit_profile(instance.instance_id, profile)
    print(f"📋 {len(snapshot.requirements)} requirements, next: {snapshot.next_action}")

    # The owner starts hiring: earlier requirements become stale history
    updated = profile.model_copy(update={"has_employees": True})
    snapshot = await orchestrator.submit_profile(instance.instance_id, updated)
    stale = [r for r in snapshot.instance.requirements if r.status == "stale"]
    print(f"🔁 {len(snapshot.requirements)} active, {len(stale)} superseded")


if __name__ == "__main__":
    asyncio.run(main())
