import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

import aiohttp

from api.errors import BackendError, NotFound
from utils.logger import get_logger

log = get_logger("[SupabaseAPI]")


def json_default_serializer(obj):
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


# --- PostgREST filter values ---

def eq(value: Any) -> str:
    return f"eq.{value}"


def in_(values: Iterable[str]) -> str:
    quoted = ",".join(f'"{v}"' for v in values)
    return f"in.({quoted})"


def is_null() -> str:
    return "is.null"


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error_description", "error", "msg"):
            if payload.get(key):
                return str(payload[key])
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return fallback


class SupabaseClient:
    """
    Thin aiohttp client for the Supabase REST (PostgREST) and Storage endpoints.
    Every non-2xx answer is raised as BackendError with the backend message.
    """

    def __init__(self, url: str, key: str):
        self._base_url = url.rstrip("/")
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_key(self) -> str:
        return self._headers["apikey"]

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                json_serialize=lambda obj: json.dumps(obj, default=json_default_serializer),
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _make_request(
            self,
            method: str,
            path: str,
            json_payload: Optional[Any] = None,
            params: Optional[Dict] = None,
            headers: Optional[Dict] = None,
            data: Optional[bytes] = None,
    ) -> Any:
        session = await self._get_session()
        url = self._base_url + path
        try:
            async with session.request(method, url, json=json_payload, params=params,
                                       headers=headers, data=data) as response:
                text = await response.text()
                try:
                    payload = json.loads(text) if text else None
                except ValueError:
                    payload = text

                if 200 <= response.status < 300:
                    log.debug(f"{method} {path} -> {response.status}")
                    return payload

                message = _error_message(payload, response.reason or "Request failed")
                code = payload.get("code") if isinstance(payload, dict) else None
                log.error(f"Supabase error ({response.status}) {method} {path}: {message}")
                raise BackendError(response.status, message, code=code)
        except aiohttp.ClientError as e:
            log.exception(f"Connection error on {method} {path}: {e}")
            raise BackendError(0, "Could not reach the server. Check your connection and try again.") from e

    # --- 1. REST ---

    async def select(self, table: str, params: Optional[Dict] = None) -> list[dict]:
        return await self._make_request("GET", f"/rest/v1/{table}", params=params) or []

    async def select_single(
            self,
            table: str,
            params: Dict,
            not_found: Optional[BackendError] = None,
    ) -> dict:
        """One row or `not_found` (NotFound by default) when there is none."""
        rows = await self.select(table, {**params, "limit": "1"})
        if not rows:
            raise not_found or NotFound(f"No {table} row matches {params}")
        return rows[0]

    async def insert(self, table: str, payload: Dict) -> list[dict]:
        return await self._make_request(
            "POST", f"/rest/v1/{table}",
            json_payload=payload,
            headers={"Prefer": "return=representation"},
        ) or []

    async def update(self, table: str, payload: Dict, params: Dict) -> list[dict]:
        return await self._make_request(
            "PATCH", f"/rest/v1/{table}",
            json_payload=payload,
            params=params,
            headers={"Prefer": "return=representation"},
        ) or []

    # --- 2. STORAGE ---

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{bucket}/{path}"

    async def upload_file(self, bucket: str, path: str, content: bytes, content_type: str = "image/jpeg") -> str:
        """Uploads an object (overwriting) and returns its public URL."""
        await self._make_request(
            "POST", f"/storage/v1/object/{bucket}/{path}",
            data=content,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        log.info(f"Uploaded {len(content)} bytes to {bucket}/{path}")
        return self.public_url(bucket, path)

