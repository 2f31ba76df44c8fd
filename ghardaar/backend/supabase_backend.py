"""Supabase-backed implementation of the Backend interface.

Uses the async supabase client with the service-role key, so row-level
security does not apply here: callers must authorize before touching a
table.
"""

import asyncio
import inspect
from itertools import count
from typing import Any

from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, AuthError, acreate_client

from ghardaar.backend.base import (
    AuthUser,
    Backend,
    BackendError,
    ChangeCallback,
    ChangeEvent,
    Filters,
    Row,
    Subscription,
)
from ghardaar.logging.audit import get_audit_logger

_EVENT_TYPES = {"INSERT": "insert", "UPDATE": "update", "DELETE": "delete"}
_channel_ids = count(1)


def _to_auth_user(user: Any) -> AuthUser:
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def parse_change_payload(table: str, payload: dict) -> ChangeEvent | None:
    """Normalize a realtime postgres_changes payload into a ChangeEvent.

    Accepts both the {"data": {"type", "record", "old_record"}} shape and
    the flat {"eventType", "new", "old"} shape.
    """
    data = payload.get("data", payload)
    kind = data.get("type") or data.get("eventType") or ""
    event_type = _EVENT_TYPES.get(str(kind).upper())
    if event_type is None:
        return None
    return ChangeEvent(
        type=event_type,
        table=data.get("table", table),
        record=dict(data.get("record") or data.get("new") or {}),
        old_record=dict(data.get("old_record") or data.get("old") or {}),
    )


class SupabaseSubscription(Subscription):
    def __init__(self, client: AsyncClient, channel: Any):
        self._client = client
        self._channel = channel

    async def unsubscribe(self) -> None:
        await self._client.remove_channel(self._channel)


class SupabaseBackend(Backend):
    """Talks to a Supabase project (PostgREST + GoTrue + Realtime)."""

    def __init__(self, url: str, service_role_key: str):
        self._url = url
        self._key = service_role_key
        self._client: AsyncClient | None = None
        self._pending: set[asyncio.Task] = set()

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await acreate_client(
                self._url,
                self._key,
                options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
            )
        return self._client

    @staticmethod
    def _apply_filters(query, filters: Filters | None):
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        return query

    async def _execute(self, query) -> list[Row]:
        try:
            response = await query.execute()
        except APIError as e:
            raise BackendError(e.message or str(e), code=e.code) from e
        return list(response.data or [])

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order: str | None = None,
        descending: bool = False,
        columns: str = "*",
    ) -> list[Row]:
        client = await self._get_client()
        query = self._apply_filters(client.table(table).select(columns), filters)
        if order:
            query = query.order(order, desc=descending)
        return await self._execute(query)

    async def insert(self, table: str, row: Row) -> Row:
        client = await self._get_client()
        rows = await self._execute(client.table(table).insert(row))
        if not rows:
            raise BackendError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        client = await self._get_client()
        query = self._apply_filters(client.table(table).update(values), filters)
        return await self._execute(query)

    async def delete(self, table: str, filters: Filters) -> None:
        client = await self._get_client()
        query = self._apply_filters(client.table(table).delete(), filters)
        await self._execute(query)

    async def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        client = await self._get_client()
        logger = get_audit_logger()

        def _on_change(payload: dict) -> None:
            event = parse_change_payload(table, payload)
            if event is None:
                logger.debug("Ignoring realtime payload", extra={"audit_data": {"table": table}})
                return
            result = callback(event)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        channel = client.channel(f"{table}_changes_{next(_channel_ids)}")
        channel.on_postgres_changes("*", schema="public", table=table, callback=_on_change)
        await channel.subscribe()
        return SupabaseSubscription(client, channel)

    async def get_user(self, token: str) -> AuthUser | None:
        client = await self._get_client()
        try:
            response = await client.auth.get_user(token)
        except AuthError:
            return None
        if response is None or response.user is None:
            return None
        return _to_auth_user(response.user)

    async def create_user(self, email: str, password: str, metadata: dict | None = None) -> AuthUser:
        client = await self._get_client()
        attributes: dict[str, Any] = {"email": email, "password": password, "email_confirm": True}
        if metadata:
            attributes["user_metadata"] = metadata
        try:
            response = await client.auth.admin.create_user(attributes)
        except AuthError as e:
            raise BackendError(e.message, code=getattr(e, "code", None)) from e
        if response.user is None:
            raise BackendError("Failed to create user")
        return _to_auth_user(response.user)

    async def update_user(self, user_id: str, attributes: dict) -> None:
        client = await self._get_client()
        try:
            await client.auth.admin.update_user_by_id(user_id, attributes)
        except AuthError as e:
            raise BackendError(e.message, code=getattr(e, "code", None)) from e

    async def delete_user(self, user_id: str) -> None:
        client = await self._get_client()
        try:
            await client.auth.admin.delete_user(user_id)
        except AuthError as e:
            raise BackendError(e.message, code=getattr(e, "code", None)) from e

    async def list_users(self) -> list[AuthUser]:
        client = await self._get_client()
        try:
            users = await client.auth.admin.list_users()
        except AuthError as e:
            raise BackendError(e.message, code=getattr(e, "code", None)) from e
        return [_to_auth_user(u) for u in users]

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        if self._client is not None:
            await self._client.remove_all_channels()
            self._client = None
