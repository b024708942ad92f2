"""Transport tests."""

import pytest

from complyflow.config import ComplyFlowConfig, RedisConfig, TransportConfig
from complyflow.contracts import WorkflowEvent, WorkflowType
from complyflow.transports import get_transport
from complyflow.transports.inmemory import InMemoryTransport
from complyflow.transports.redis import RedisTransport


def _event(event_type="advanced", version=2) -> WorkflowEvent:
    return WorkflowEvent(
        event_type=event_type,
        instance_id="inst-1",
        business_entity_id="biz-1",
        workflow_type=WorkflowType.DISSOLUTION,
        version=version,
        task_key="member_approval",
        outcome="completed",
        payload={"overall_percent": 9},
    )


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    """Test basic InMemoryTransport publish/subscribe."""
    transport = InMemoryTransport()
    await transport.publish("complyflow.events", _event())
    assert [e.version for e in transport.pending("complyflow.events")] == [2]

    message_received = False
    async for raw_msg, received in transport.subscribe("complyflow.events"):
        assert received.instance_id == "inst-1"
        assert received.payload["overall_percent"] == 9
        await transport.ack(raw_msg)
        message_received = True
        break

    assert message_received
    assert transport.pending("complyflow.events") == []


@pytest.mark.asyncio
async def test_inmemory_subscribe_lifespan_ends():
    transport = InMemoryTransport()
    received = [event async for _, event in transport.subscribe("empty", lifespan=0.05)]
    assert received == []


def test_event_json_round_trip():
    event = _event()
    assert WorkflowEvent.from_json(event.to_json()) == event


class _FakeRedis:
    def __init__(self, messages):
        self.messages = list(messages)

    async def brpop(self, key, timeout=0):
        if self.messages:
            return key, self.messages.pop(0)
        return None


@pytest.mark.asyncio
async def test_redis_subscribe_skips_malformed_events():
    transport = RedisTransport()
    assert transport.queue_name("complyflow.events") == "complyflow:complyflow.events"
    transport._redis = _FakeRedis(["{not json", _event(version=3).to_json()])

    async for raw, event in transport.subscribe("complyflow.events"):
        assert event.version == 3
        assert raw.startswith("{")
        break


def test_get_transport_backends(monkeypatch):
    monkeypatch.delenv("COMPLYFLOW_TRANSPORT", raising=False)

    assert get_transport(config=ComplyFlowConfig()) is None
    assert isinstance(get_transport("inmemory", ComplyFlowConfig()), InMemoryTransport)

    config = ComplyFlowConfig(
        transport=TransportConfig(backend="redis", redis=RedisConfig(host="cache", port=6380))
    )
    transport = get_transport(config=config)
    assert isinstance(transport, RedisTransport)
    assert (transport.host, transport.port) == ("cache", 6380)

    with pytest.raises(ValueError):
        get_transport("kafka", ComplyFlowConfig())
