import asyncio
from unittest.mock import AsyncMock

import pytest

from api.realtime import OrderSubscription, RealtimeHub, extract_change, join_message, websocket_url

pytestmark = pytest.mark.unit


def test_websocket_url():
    assert websocket_url("https://abc.supabase.co", "anon") == \
        "wss://abc.supabase.co/realtime/v1/websocket?apikey=anon&vsn=1.0.0"
    assert websocket_url("http://localhost:54321", "k").startswith("ws://localhost:54321/")


def test_join_watches_order_and_its_assignment():
    message = join_message("o-1", "token", ref="3")
    assert message["topic"] == "realtime:order-o-1"
    assert message["event"] == "phx_join"
    assert message["ref"] == "3"
    changes = message["payload"]["config"]["postgres_changes"]
    assert {c["table"]: c["filter"] for c in changes} == {
        "orders": "id=eq.o-1",
        "delivery_assignments": "order_id=eq.o-1",
    }


def test_extract_change_only_for_own_topic():
    push = {
        "topic": "realtime:order-o-1",
        "event": "postgres_changes",
        "payload": {"data": {"table": "orders", "type": "UPDATE", "record": {"status": "delivered"}}},
    }
    assert extract_change(push, "o-1") == {
        "table": "orders", "type": "UPDATE", "record": {"status": "delivered"},
    }
    assert extract_change(push, "o-2") is None
    assert extract_change({"topic": "realtime:order-o-1", "event": "phx_reply"}, "o-1") is None


def test_disabled_hub_does_not_connect():
    hub = RealtimeHub("https://abc.supabase.co", "anon", enabled=False)
    assert asyncio.run(hub.subscribe(1, "o-1", AsyncMock())) is None
    assert len(hub) == 0


def test_prune_drops_dead_subscriptions():
    hub = RealtimeHub("https://abc.supabase.co", "anon")
    hub._subscriptions[1] = OrderSubscription(None, hub.url, "anon", "o-1", AsyncMock())

    assert asyncio.run(hub.prune(60)) == 1
    assert hub.get(1) is None
