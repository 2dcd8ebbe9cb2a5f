"""
Supabase Realtime (Phoenix channel over websocket) for open order screens.

Events are only a nudge: whatever arrives, the screen re-fetches the order the
same way the refresh button does, so duplicates and out-of-order events are
harmless.
"""
import asyncio
import json
import time
from contextlib import suppress
from typing import Awaitable, Callable, Hashable, Optional

import aiohttp

from utils.logger import get_logger

log = get_logger("[Realtime]")

HEARTBEAT_SECONDS = 30
OnChange = Callable[[dict], Awaitable[None]]


def order_topic(order_id: str) -> str:
    return f"realtime:order-{order_id}"


def join_message(order_id: str, access_token: str, ref: str = "1") -> dict:
    return {
        "topic": order_topic(order_id),
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {"event": "UPDATE", "schema": "public", "table": "orders", "filter": f"id=eq.{order_id}"},
                    {"event": "*", "schema": "public", "table": "delivery_assignments",
                     "filter": f"order_id=eq.{order_id}"},
                ],
            },
            "access_token": access_token,
        },
        "ref": ref,
    }


def heartbeat_message(ref: str) -> dict:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def extract_change(message: dict, order_id: str) -> Optional[dict]:
    """The changed record of a postgres_changes push for this order, else None."""
    if message.get("event") != "postgres_changes" or message.get("topic") != order_topic(order_id):
        return None
    data = (message.get("payload") or {}).get("data") or {}
    return {
        "table": data.get("table"),
        "type": data.get("type"),
        "record": data.get("record") or {},
    }


def websocket_url(base_url: str, api_key: str) -> str:
    ws_base = base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
    return f"{ws_base}/realtime/v1/websocket?apikey={api_key}&vsn=1.0.0"


class OrderSubscription:
    def __init__(self, session: aiohttp.ClientSession, url: str, api_key: str, order_id: str, on_change: OnChange):
        self.session = session
        self.url = url
        self.api_key = api_key
        self.order_id = order_id
        self.on_change = on_change
        self.last_seen = time.monotonic()
        self._task: Optional[asyncio.Task] = None
        self._ref = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"realtime-{self.order_id}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not ws.closed:
            await asyncio.sleep(HEARTBEAT_SECONDS)
            await ws.send_json(heartbeat_message(self._next_ref()))

    async def _run(self) -> None:
        heartbeat = None
        try:
            async with self.session.ws_connect(self.url) as ws:
                await ws.send_json(join_message(self.order_id, self.api_key, self._next_ref()))
                heartbeat = asyncio.create_task(self._heartbeat(ws))
                log.debug(f"Subscribed to order {self.order_id}")
                async for msg in ws:
                    if msg.type != aiohttp.WSMsgType.TEXT:
                        if msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
                        continue
                    try:
                        change = extract_change(json.loads(msg.data), self.order_id)
                    except ValueError:
                        log.warning(f"Bad realtime frame for order {self.order_id}")
                        continue
                    if change is None:
                        continue
                    try:
                        await self.on_change(change)
                    except Exception as e:
                        log.exception(f"Realtime callback failed for order {self.order_id}: {e}")
        except asyncio.CancelledError:
            raise
        except aiohttp.ClientError as e:
            # No reconnect: the screen still has its refresh button
            log.warning(f"Realtime connection for order {self.order_id} lost: {e}")
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
            log.debug(f"Unsubscribed from order {self.order_id}")


class RealtimeHub:
    """One live subscription per chat: the order screen currently open there."""

    def __init__(self, base_url: str, api_key: str, enabled: bool = True):
        self.url = websocket_url(base_url, api_key)
        self.api_key = api_key
        self.enabled = enabled
        self._session: Optional[aiohttp.ClientSession] = None
        self._subscriptions: dict[Hashable, OrderSubscription] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def get(self, key: Hashable) -> Optional[OrderSubscription]:
        return self._subscriptions.get(key)

    async def subscribe(self, key: Hashable, order_id: str, on_change: OnChange) -> Optional[OrderSubscription]:
        if not self.enabled:
            return None
        current = self._subscriptions.get(key)
        if current is not None and current.order_id == order_id and current.running:
            current.on_change = on_change
            current.touch()
            return current
        await self.unsubscribe(key)

        subscription = OrderSubscription(await self._get_session(), self.url, self.api_key, order_id, on_change)
        subscription.start()
        self._subscriptions[key] = subscription
        return subscription

    async def unsubscribe(self, key: Hashable) -> None:
        subscription = self._subscriptions.pop(key, None)
        if subscription is not None:
            await subscription.stop()

    async def prune(self, max_idle_seconds: float) -> int:
        now = time.monotonic()
        stale = [
            key for key, sub in self._subscriptions.items()
            if not sub.running or now - sub.last_seen > max_idle_seconds
        ]
        for key in stale:
            await self.unsubscribe(key)
        return len(stale)

    async def close(self) -> None:
        for key in list(self._subscriptions):
            await self.unsubscribe(key)
        if self._session and not self._session.closed:
            await self._session.close()

    def __len__(self) -> int:
        return len(self._subscriptions)
