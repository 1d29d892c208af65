"""Repositories backed by the live Supabase store."""

import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any, Protocol

from src.config import get_settings

from .filters import (
    analyses_most_recent_first,
    exclude_dev_session_rows,
    filter_analyses,
    filter_sessions,
    is_dev_session_row,
    sessions_most_recent_first,
)
from .mappers import LIVE_SCHEMA, map_analysis, map_message, map_session
from .models import (
    ChatMessage,
    ChatSessionFilters,
    DateRange,
    Session,
    SessionAnalysis,
    SessionWithAnalysis,
)
from .repositories import (
    AnalysisRepository,
    MessageRepository,
    SessionRepository,
    join_analyses,
)

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "chat_sessions"
ANALYSES_TABLE = "chat_session_analyses"
# One analysis per session, keyed by its session
ANALYSES_KEY = "session_id"
MESSAGES_TABLE = "chat_messages"

# Embeds the analysis row of each session through its foreign key
SESSION_WITH_ANALYSIS_COLUMNS = f"*, analysis:{ANALYSES_TABLE}(*)"

# Columns read to tell dev sessions apart without loading whole rows
DEV_CHECK_COLUMNS = ", ".join(
    LIVE_SCHEMA.session_column(field)
    for field in (
        "id",
        "domain",
        "ip_address",
        "is_dev",
        "total_messages",
        "user_messages",
        "assistant_messages",
    )
)

# Keeps `in.(...)` filters well inside URL length limits
IN_CHUNK_SIZE = 200


class LiveStore(Protocol):
    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
        gte: dict[str, Any] | None = None,
        lt: dict[str, Any] | None = None,
        order: str | None = None,
        desc: bool = True,
        key: str = "id",
    ) -> list[dict[str, Any]]: ...


def _iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def _range_bounds(column: str, date_range: DateRange | None) -> dict[str, dict[str, str]]:
    bounds: dict[str, dict[str, str]] = {}
    if date_range is not None and date_range.start is not None:
        bounds["gte"] = {column: _iso(date_range.start)}
    if date_range is not None and date_range.end is not None:
        bounds["lt"] = {column: _iso(date_range.end)}
    return bounds


def _chunks(values: list[str], size: int = IN_CHUNK_SIZE) -> Iterator[list[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _embedded_analysis(row: dict[str, Any]) -> dict[str, Any] | None:
    """PostgREST embeds a one-to-one relation as an object or a one-item list."""
    embedded = row.get("analysis")
    if isinstance(embedded, list):
        return embedded[0] if embedded else None
    return embedded if isinstance(embedded, dict) else None


class LiveSessionRepository(SessionRepository):
    def __init__(self, store: LiveStore, exclude_dev_sessions: bool | None = None):
        self.store = store
        if exclude_dev_sessions is None:
            exclude_dev_sessions = get_settings().exclude_dev_sessions
        self.exclude_dev_sessions = exclude_dev_sessions

    async def _fetch(
        self, owner_field: str, owner_id: str, filters: ChatSessionFilters | None
    ) -> list[SessionWithAnalysis]:
        columns = LIVE_SCHEMA.session_fields
        eq: dict[str, Any] = {columns[owner_field]: owner_id}
        if filters is not None and filters.device_type is not None:
            eq[columns["device_type"]] = filters.device_type
        if filters is not None and filters.country is not None:
            eq[columns["visitor_country"]] = filters.country

        rows = await self.store.select(
            SESSIONS_TABLE,
            SESSION_WITH_ANALYSIS_COLUMNS,
            eq=eq,
            order=columns["session_started_at"],
            **_range_bounds(
                columns["session_started_at"], filters.date_range if filters else None
            ),
        )
        if self.exclude_dev_sessions:
            rows = exclude_dev_session_rows(rows, LIVE_SCHEMA)

        sessions = [map_session(row, LIVE_SCHEMA) for row in rows]
        analyses: dict[str, SessionAnalysis] = {}
        for row, session in zip(rows, sessions):
            embedded = _embedded_analysis(row)
            if embedded is not None:
                analyses[session.id] = map_analysis(
                    {"session_id": session.id, **embedded}, LIVE_SCHEMA
                )

        matched = sessions_most_recent_first(filter_sessions(sessions, filters, analyses))
        return join_analyses(matched, analyses)

    @staticmethod
    def _plain(sessions: list[SessionWithAnalysis]) -> list[Session]:
        return [
            Session(**{field: value for field, value in session if field != "analysis"})
            for session in sessions
        ]

    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        return self._plain(await self._fetch("assistant_id", assistant_id, filters))

    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        return self._plain(await self._fetch("tenant_id", tenant_id, filters))

    async def get_by_id(self, session_id: str) -> Session | None:
        rows = await self.store.select(SESSIONS_TABLE, eq={"id": session_id})
        if not rows:
            return None
        if self.exclude_dev_sessions and is_dev_session_row(rows[0], LIVE_SCHEMA):
            return None
        return map_session(rows[0], LIVE_SCHEMA)

    async def get_with_analysis_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        return await self._fetch("assistant_id", assistant_id, filters)

    async def get_with_analysis_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        return await self._fetch("tenant_id", tenant_id, filters)


class LiveAnalysisRepository(AnalysisRepository):
    def __init__(self, store: LiveStore, exclude_dev_sessions: bool | None = None):
        self.store = store
        if exclude_dev_sessions is None:
            exclude_dev_sessions = get_settings().exclude_dev_sessions
        self.exclude_dev_sessions = exclude_dev_sessions

    @staticmethod
    def _pushdown(filters: ChatSessionFilters | None) -> dict[str, Any]:
        if filters is None:
            return {}
        columns = LIVE_SCHEMA.analysis_fields
        candidates = {
            columns["sentiment"]: filters.sentiment.value if filters.sentiment else None,
            columns["category"]: filters.category,
            columns["resolution_status"]: filters.resolution.value if filters.resolution else None,
            columns["escalated"]: filters.escalated,
            columns["language"]: filters.language,
        }
        return {column: value for column, value in candidates.items() if value is not None}

    async def _session_rows(self, session_ids: list[str]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for chunk in _chunks(session_ids):
            rows.extend(await self.store.select(SESSIONS_TABLE, in_={"id": chunk}))
        return rows

    async def _finish(
        self,
        rows: list[dict[str, Any]],
        filters: ChatSessionFilters | None,
        check_dev_sessions: bool = True,
    ) -> list[SessionAnalysis]:
        analyses = [map_analysis(row, LIVE_SCHEMA) for row in rows]
        check_dev_sessions = check_dev_sessions and self.exclude_dev_sessions
        needs_sessions = filters is not None and filters.has_session_filters
        sessions_by_id: dict[str, Session] = {}
        if analyses and (check_dev_sessions or needs_sessions):
            session_rows = await self._session_rows(sorted({a.session_id for a in analyses}))
            if check_dev_sessions:
                dev_ids = {
                    str(row.get("id"))
                    for row in session_rows
                    if is_dev_session_row(row, LIVE_SCHEMA)
                }
                analyses = [a for a in analyses if a.session_id not in dev_ids]
            for row in session_rows:
                session = map_session(row, LIVE_SCHEMA)
                sessions_by_id[session.id] = session
        return analyses_most_recent_first(filter_analyses(analyses, filters, sessions_by_id))

    async def get_by_session_id(self, session_id: str) -> SessionAnalysis | None:
        rows = await self.store.select(
            ANALYSES_TABLE, eq={"session_id": session_id}, key=ANALYSES_KEY
        )
        if not rows:
            return None
        if self.exclude_dev_sessions:
            session_rows = await self.store.select(SESSIONS_TABLE, eq={"id": session_id})
            if session_rows and is_dev_session_row(session_rows[0], LIVE_SCHEMA):
                return None
        return map_analysis(rows[0], LIVE_SCHEMA)

    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        created_at = LIVE_SCHEMA.analysis_column("created_at")
        rows = await self.store.select(
            ANALYSES_TABLE,
            eq={LIVE_SCHEMA.analysis_column("assistant_id"): assistant_id, **self._pushdown(filters)},
            order=created_at,
            key=ANALYSES_KEY,
            **_range_bounds(created_at, filters.date_range if filters else None),
        )
        return await self._finish(rows, filters)

    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        session_rows = await self.store.select(
            SESSIONS_TABLE,
            DEV_CHECK_COLUMNS,
            eq={LIVE_SCHEMA.session_column("tenant_id"): tenant_id},
        )
        if self.exclude_dev_sessions:
            session_rows = exclude_dev_session_rows(session_rows, LIVE_SCHEMA)
        session_ids = [str(row["id"]) for row in session_rows]
        if not session_ids:
            return []

        created_at = LIVE_SCHEMA.analysis_column("created_at")
        rows: list[dict[str, Any]] = []
        for chunk in _chunks(session_ids):
            rows.extend(
                await self.store.select(
                    ANALYSES_TABLE,
                    eq=self._pushdown(filters),
                    in_={"session_id": chunk},
                    order=created_at,
                    key=ANALYSES_KEY,
                    **_range_bounds(created_at, filters.date_range if filters else None),
                )
            )
        # Dev sessions were already dropped from the id list
        return await self._finish(rows, filters, check_dev_sessions=False)


class LiveMessageRepository(MessageRepository):
    def __init__(self, store: LiveStore):
        self.store = store

    async def get_by_session_ids(self, session_ids: list[str]) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        for chunk in _chunks(list(session_ids)):
            rows = await self.store.select(
                MESSAGES_TABLE,
                in_={"session_id": chunk},
                order=LIVE_SCHEMA.message_column("timestamp"),
                desc=False,
            )
            messages.extend(map_message(row, LIVE_SCHEMA) for row in rows)
        logger.debug(f"Fetched {len(messages)} messages for {len(session_ids)} sessions")
        return messages
