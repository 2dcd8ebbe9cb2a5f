import asyncio
import json
from datetime import datetime
from decimal import Decimal

import aiohttp
import pytest

from api.errors import BackendError, NotFound, OrderNotFound
from api.supabase_client import SupabaseClient, in_, json_default_serializer

pytestmark = pytest.mark.unit


class FakeResponse:
    def __init__(self, status, body, reason="Error"):
        self.status = status
        self.reason = reason
        self._body = body

    async def text(self):
        return self._body if isinstance(self._body, str) else json.dumps(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def make_client(session):
    client = SupabaseClient("https://demo.supabase.co/", "anon-key")
    client._session = session
    return client


def test_success_returns_parsed_payload():
    session = FakeSession(FakeResponse(200, [{"id": "o-1"}]))
    client = make_client(session)
    rows = asyncio.run(client.select("orders", {"id": "eq.o-1"}))
    assert rows == [{"id": "o-1"}]
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://demo.supabase.co/rest/v1/orders")
    assert kwargs["params"] == {"id": "eq.o-1"}


def test_backend_message_is_kept_verbatim():
    body = {"code": "42501", "message": "new row violates row-level security policy"}
    client = make_client(FakeSession(FakeResponse(403, body)))
    with pytest.raises(BackendError) as exc:
        asyncio.run(client.update("orders", {"status": "delivered"}, {"id": "eq.o-1"}))
    assert exc.value.status == 403
    assert exc.value.code == "42501"
    assert exc.value.message == "new row violates row-level security policy"


def test_plain_text_error_body():
    client = make_client(FakeSession(FakeResponse(502, "Bad gateway")))
    with pytest.raises(BackendError) as exc:
        asyncio.run(client.select("orders"))
    assert exc.value.message == "Bad gateway"


def test_connection_error_becomes_backend_error():
    client = make_client(FakeSession(error=aiohttp.ClientConnectionError("refused")))
    with pytest.raises(BackendError) as exc:
        asyncio.run(client.select("orders"))
    assert exc.value.status == 0
    assert "connection" in exc.value.message


def test_select_single_raises_given_not_found():
    client = make_client(FakeSession(FakeResponse(200, [])))
    with pytest.raises(OrderNotFound):
        asyncio.run(client.select_single("orders", {"id": "eq.x"}, not_found=OrderNotFound("x")))
    with pytest.raises(NotFound):
        asyncio.run(client.select_single("orders", {"id": "eq.x"}))


def test_upload_returns_public_url():
    session = FakeSession(FakeResponse(200, {"Key": "deliveries/orders/o-1/a.jpg"}))
    client = make_client(session)
    url = asyncio.run(client.upload_file("deliveries", "orders/o-1/a.jpg", b"img", "image/jpeg"))
    assert url == "https://demo.supabase.co/storage/v1/object/public/deliveries/orders/o-1/a.jpg"
    _, _, kwargs = session.calls[0]
    assert kwargs["headers"]["x-upsert"] == "true"
    assert kwargs["data"] == b"img"


def test_filter_helpers_and_serializer():
    assert in_(["pending", "ready_for_pickup"]) == 'in.("pending","ready_for_pickup")'
    assert json_default_serializer(Decimal("1.50")) == 1.5
    assert json_default_serializer(datetime(2025, 1, 2, 3, 4)) == "2025-01-02T03:04:00"
    with pytest.raises(TypeError):
        json_default_serializer(object())
