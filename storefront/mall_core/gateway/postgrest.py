"""
PostgREST store gateway.

Talks to the storefront's relational store through its PostgREST HTTP
interface (as exposed by Supabase). It uses httpx for async requests.

Invariants:
    - Every request targets the configured schema via Accept-Profile /
      Content-Profile headers
    - Writes ask for return=representation so affected rows come back
    - PostgreSQL unique violations (23505) become Conflict, everything
      else becomes RemoteFailure
    - The API key is never logged

How to change safely:
    - Keep query encoding in the small _encode_* helpers
    - Test new encodings against httpx.MockTransport before production
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

import httpx

from ..config import GatewayConfig
from ..errors import Conflict, RemoteFailure
from .base import Embed, Eq, Filter, In, Order, Row

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
_CONSTRAINT_RE = re.compile(r'unique constraint "([^"]+)"')
_RESERVED = set(',.:()"')


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode_list_value(value: Any) -> str:
    text = _encode_value(value)
    if any(ch in _RESERVED for ch in text) or text.strip() != text:
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _encode_filter(f: Filter) -> Tuple[str, str]:
    if isinstance(f, Eq):
        if f.value is None:
            return f.column, "is.null"
        return f.column, f"eq.{_encode_value(f.value)}"
    return f.column, "in.(" + ",".join(_encode_list_value(v) for v in f.values) + ")"


def _encode_embed(embed: Embed) -> str:
    target = embed.table if embed.many else embed.fk_column
    hint = "!inner" if embed.inner else ""
    return f"{embed.alias}:{target}{hint}({encode_select(embed.columns, embed.embeds)})"


def encode_select(columns: str, embeds: Sequence[Embed] = ()) -> str:
    """Render a PostgREST select clause.

    Example:
        >>> encode_select("*", (Embed("ymedia", "ymedia", "ymediaidfk"),))
        '*,ymedia:ymediaidfk(*)'
    """
    parts = [columns] if columns else []
    parts.extend(_encode_embed(e) for e in embeds)
    return ",".join(parts)


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Extract the total from a Content-Range header ("0-9/42", "*/42").

    Returns None when the store did not report a total.
    """
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class PostgrestGateway:
    """StoreGateway backed by a PostgREST endpoint.

    Thread safety:
        Shares one httpx.AsyncClient; safe for concurrent coroutines.

    Example:
        >>> gateway = PostgrestGateway(GatewayConfig(url="https://x.supabase.co/rest/v1"))
        >>> rows = await gateway.select("ypanier", [Eq("yuseridfk", "u1")])
        >>> await gateway.close()
    """

    def __init__(
        self,
        config: GatewayConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            config: Gateway configuration
            client: Optional preconfigured client (tests pass a MockTransport)
        """
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.url.rstrip("/"),
            timeout=config.timeout_seconds,
        )

    def _headers(self, write: bool, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Profile" if write else "Accept-Profile": self.config.schema,
        }
        if self.config.api_key:
            headers["apikey"] = self.config.api_key
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: List[Tuple[str, str]],
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        write = method in ("POST", "PATCH", "DELETE")
        try:
            response = await self._client.request(
                method,
                f"/{table}",
                params=params,
                json=json_body,
                headers=self._headers(write, prefer),
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Store request failed: {e}",
                extra={"method": method, "table": table},
            )
            raise RemoteFailure(f"Store request failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_error(response, method, table)
        return response

    def _raise_for_error(self, response: httpx.Response, method: str, table: str) -> None:
        store_code = None
        message = response.reason_phrase or "Store error"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            store_code = body.get("code")
            message = body.get("message") or message

        if store_code == UNIQUE_VIOLATION:
            match = _CONSTRAINT_RE.search(message)
            raise Conflict(message, constraint=match.group(1) if match else None)

        logger.warning(
            "Store returned an error",
            extra={
                "method": method,
                "table": table,
                "status": response.status_code,
                "store_code": store_code,
            },
        )
        raise RemoteFailure(message, status=response.status_code, store_code=store_code)

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        embeds: Sequence[Embed] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows through GET /table."""
        params = [("select", encode_select(columns, embeds))]
        params.extend(_encode_filter(f) for f in filters)
        if order is not None:
            params.append(("order", f"{order.column}.{'desc' if order.descending else 'asc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        response = await self._request("GET", table, params)
        return response.json()

    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row through POST /table."""
        response = await self._request(
            "POST", table, [], json_body=row, prefer="return=representation"
        )
        rows = response.json()
        if not rows:
            raise RemoteFailure(f"Insert into {table} returned no row", status=response.status_code)
        return rows[0]

    async def update(self, table: str, values: Row, filters: Sequence[Filter]) -> List[Row]:
        """Update rows through PATCH /table?filters."""
        params = [_encode_filter(f) for f in filters]
        response = await self._request(
            "PATCH", table, params, json_body=values, prefer="return=representation"
        )
        return response.json()

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        """Delete rows through DELETE /table?filters."""
        params = [_encode_filter(f) for f in filters]
        response = await self._request("DELETE", table, params, prefer="return=representation")
        return response.json()

    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        embeds: Sequence[Embed] = (),
    ) -> int:
        """Count rows through HEAD /table with Prefer: count=exact."""
        first_column = "*" if not embeds else ""
        params = [("select", encode_select(first_column, embeds) or "*")]
        params.extend(_encode_filter(f) for f in filters)
        response = await self._request("HEAD", table, params, prefer="count=exact")
        total = parse_content_range(response.headers.get("Content-Range"))
        if total is None:
            logger.warning("Store did not report a count", extra={"table": table})
            return 0
        return total

    async def close(self) -> None:
        """Close the underlying client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()
