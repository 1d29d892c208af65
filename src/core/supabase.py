"""Supabase (PostgREST) client wrapper for the live analytics store."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from supabase import Client, create_client

from src.config import StoreScope, get_settings

logger = logging.getLogger(__name__)

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000


class LiveStoreNotConfiguredError(Exception):
    """Raised when a live store is used without URL and service key."""

    def __init__(self, scope: StoreScope):
        self.scope = scope
        super().__init__(
            f"Live analytics store '{scope.value}' is not configured: "
            "set its Supabase URL and service role key"
        )


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class SupabaseClient:
    """Wrapper for read-only queries against one live store scope."""

    _instances: dict[StoreScope, "SupabaseClient"] = {}

    def __new__(cls, scope: StoreScope = StoreScope.PROD) -> "SupabaseClient":
        if scope not in cls._instances:
            instance = super().__new__(cls)
            instance.scope = scope
            instance._client = None
            cls._instances[scope] = instance
        return cls._instances[scope]

    @property
    def client(self) -> Client:
        """Get or create the Supabase client, failing when unconfigured."""
        if self._client is None:
            url, key = get_settings().live_store_credentials(self.scope)
            if not (url and key):
                raise LiveStoreNotConfiguredError(self.scope)
            self._client = create_client(url, key)
            logger.info(f"Connected to live analytics store ({self.scope.value})")
        return self._client

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Mapping[str, Any] | None = None,
        in_: Mapping[str, Sequence[Any]] | None = None,
        gte: Mapping[str, Any] | None = None,
        lt: Mapping[str, Any] | None = None,
        order: str | None = None,
        desc: bool = True,
        key: str = "id",
    ) -> list[dict[str, Any]]:
        """Select every matching row, paging past the server row cap.

        Pages are cut from a total order: rows are sorted by ``order`` and
        then by the unique ``key`` column, so rows sharing a sort value are
        neither skipped nor repeated across page boundaries.
        """
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            query = self.client.table(table).select(columns)
            for column, value in (eq or {}).items():
                query = query.eq(column, _filter_value(value))
            for column, values in (in_ or {}).items():
                query = query.in_(column, list(values))
            for column, value in (gte or {}).items():
                query = query.gte(column, value)
            for column, value in (lt or {}).items():
                query = query.lt(column, value)
            if order:
                query = query.order(order, desc=desc)
            if order != key:
                query = query.order(key)
            response = query.range(offset, offset + PAGE_SIZE - 1).execute()
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE


def get_supabase_client(scope: StoreScope = StoreScope.PROD) -> SupabaseClient:
    """Get Supabase client instance for a scope (dependency injection)."""
    return SupabaseClient(scope)
