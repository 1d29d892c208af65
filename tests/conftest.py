"""Shared test fixtures."""

from itertools import count
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from src.config import get_settings
from src.core import fixtures as fixture_module
from src.features.analytics import fixture_source
from src.features.analytics.live_source import ANALYSES_TABLE, SESSION_WITH_ANALYSIS_COLUMNS
from src.features.analytics.mappers import parse_timestamp
from src.features.analytics.models import ChatMessage, Session, SessionAnalysis
from src.features.analytics.selector import get_operations

FIXTURE_DIR = Path(__file__).resolve().parents[1] / "data" / "fixtures"

LIVE_ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "DEMO_SUPABASE_URL",
    "DEMO_SUPABASE_SERVICE_ROLE_KEY",
    "DEMO_TENANT_IDS",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Run every test without live stores and against the bundled fixtures."""
    for name in LIVE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FIXTURE_DATA_DIR", str(FIXTURE_DIR))
    monkeypatch.setenv("EXCLUDE_DEV_SESSIONS", "true")
    monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "1000")
    monkeypatch.setattr(fixture_module, "_store", None)
    monkeypatch.setattr(fixture_source, "_dataset", None)
    get_settings.cache_clear()
    get_operations.cache_clear()
    yield
    get_settings.cache_clear()
    get_operations.cache_clear()


@pytest.fixture
def client():
    """Create test client."""
    from src.main import create_app

    return TestClient(create_app())


# ==================== RECORD FACTORIES ====================


@pytest.fixture
def make_session():
    ids = count(1)

    def _make(**fields: Any) -> Session:
        fields.setdefault("id", f"s-{next(ids)}")
        fields.setdefault("assistant_id", "bot-1")
        fields.setdefault("tenant_id", "tenant-1")
        fields.setdefault("session_started_at", "2025-01-10T10:00:00Z")
        return Session(**fields)

    return _make


@pytest.fixture
def make_analysis():
    def _make(session_id: str, **fields: Any) -> SessionAnalysis:
        fields.setdefault("assistant_id", "bot-1")
        fields.setdefault("created_at", "2025-01-10T10:30:00Z")
        return SessionAnalysis(session_id=session_id, **fields)

    return _make


@pytest.fixture
def make_message():
    def _make(session_id: str, **fields: Any) -> ChatMessage:
        fields.setdefault("assistant_id", "bot-1")
        return ChatMessage(session_id=session_id, **fields)

    return _make


# ==================== FAKE LIVE STORE ====================


class FakeSupabaseClient:
    """In-memory stand-in for the live store's ``select`` contract."""

    def __init__(self, tables: dict[str, list[dict[str, Any]]]):
        self.tables = tables
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def _compare(value: Any, bound: Any) -> tuple[Any, Any]:
        left, right = parse_timestamp(value), parse_timestamp(bound)
        if left is not None and right is not None:
            return left, right
        return value, bound

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq=None,
        in_=None,
        gte=None,
        lt=None,
        order=None,
        desc=True,
        key="id",
    ) -> list[dict[str, Any]]:
        self.calls.append(
            {
                "table": table,
                "columns": columns,
                "eq": eq,
                "in_": in_,
                "gte": gte,
                "lt": lt,
                "key": key,
            }
        )
        rows = [dict(row) for row in self.tables.get(table, [])]
        for column, value in (eq or {}).items():
            rows = [row for row in rows if row.get(column) == value]
        for column, values in (in_ or {}).items():
            rows = [row for row in rows if row.get(column) in values]
        for column, bound in (gte or {}).items():
            rows = [
                row
                for row in rows
                if row.get(column) is not None
                and self._compare(row[column], bound)[0] >= self._compare(row[column], bound)[1]
            ]
        for column, bound in (lt or {}).items():
            rows = [
                row
                for row in rows
                if row.get(column) is not None
                and self._compare(row[column], bound)[0] < self._compare(row[column], bound)[1]
            ]
        rows.sort(key=lambda row: str(row.get(key) or ""))
        if order:
            rows.sort(key=lambda row: row.get(order) or "", reverse=desc)
        if columns == SESSION_WITH_ANALYSIS_COLUMNS:
            analyses = self.tables.get(ANALYSES_TABLE, [])
            for row in rows:
                row["analysis"] = [dict(a) for a in analyses if a["session_id"] == row["id"]]
        elif columns != "*":
            wanted = [c.strip() for c in columns.split(",")]
            rows = [{c: row.get(c) for c in wanted} for row in rows]
        return rows


@pytest.fixture
def live_rows() -> dict[str, list[dict[str, Any]]]:
    """Rows in the live store's column naming."""
    sessions = [
        {
            "id": "live-1",
            "mascot_slug": "bot-a",
            "client_slug": "acme",
            "domain": "shop.acme.com",
            "session_started_at": "2025-02-01T09:00:00+00:00",
            "session_ended_at": "2025-02-01T09:04:00+00:00",
            "user_messages": 2,
            "assistant_messages": 3,
            "total_messages": 5,
            "visitor_country": "Netherlands",
            "device_type": "desktop",
            "browser": "Chrome 121.0",
            "os": "Windows 11",
            "input_tokens": 300,
            "output_tokens": 100,
            "total_cost_eur": "0.02",
            "average_response_time_ms": 900,
            "is_active": False,
            "end_reason": "user_closed",
            "utm_source": "newsletter",
            "created_at": "2025-02-01T09:00:00+00:00",
        },
        {
            "id": "live-2",
            "mascot_slug": "bot-a",
            "client_slug": "acme",
            "domain": "shop.acme.com",
            "session_started_at": "2025-02-02T15:30:00+00:00",
            "session_ended_at": None,
            "user_messages": 1,
            "assistant_messages": 1,
            "visitor_country": "Germany",
            "device_type": "mobile",
            "total_tokens": 250,
            "total_cost_eur": 0.01,
            "is_active": True,
            "created_at": "2025-02-02T15:30:00+00:00",
        },
        {
            "id": "live-3",
            "mascot_slug": "bot-b",
            "client_slug": "acme",
            "domain": "help.acme.com",
            "session_started_at": "2025-02-03T11:00:00+00:00",
            "session_ended_at": "2025-02-03T11:02:00+00:00",
            "user_messages": 1,
            "assistant_messages": 2,
            "total_messages": 3,
            "visitor_country": "Netherlands",
            "device_type": "desktop",
            "total_tokens": 120,
            "total_cost_eur": 0.005,
            "is_active": False,
            "created_at": "2025-02-03T11:00:00+00:00",
        },
        {
            "id": "live-dev",
            "mascot_slug": "bot-a",
            "client_slug": "acme",
            "domain": "localhost",
            "session_started_at": "2025-02-02T12:00:00+00:00",
            "user_messages": 3,
            "assistant_messages": 3,
            "total_messages": 6,
            "is_dev": True,
            "created_at": "2025-02-02T12:00:00+00:00",
        },
        {
            "id": "live-other",
            "mascot_slug": "bot-z",
            "client_slug": "globex",
            "domain": "globex.com",
            "session_started_at": "2025-02-02T10:00:00+00:00",
            "user_messages": 1,
            "assistant_messages": 1,
            "created_at": "2025-02-02T10:00:00+00:00",
        },
    ]
    analyses = [
        {
            "session_id": "live-1",
            "mascot_slug": "bot-a",
            "language": "en",
            "sentiment": "positive",
            "category": "Billing",
            "resolution_status": "resolved",
            "escalated": False,
            "questions": ["How do I pay?"],
            "unanswered_questions": [],
            "engagement_level": "high",
            "conversation_type": "goal_driven",
            "analytics_total_prompt_tokens": 100,
            "analytics_total_completion_tokens": 20,
            "analytics_total_cost_eur": 0.001,
            "created_at": "2025-02-01T09:10:00+00:00",
        },
        {
            "session_id": "live-2",
            "mascot_slug": "bot-a",
            "language": "de",
            "sentiment": "negative",
            "category": "Shipping",
            "resolution_status": "unresolved",
            "escalated": True,
            "questions": ["Where is my parcel?"],
            "unanswered_questions": ["Where is my parcel?"],
            "engagement_level": "low",
            "conversation_type": "casual",
            "created_at": "2025-02-02T15:45:00+00:00",
        },
        {
            "session_id": "live-3",
            "mascot_slug": "bot-b",
            "language": "en",
            "sentiment": "neutral",
            "category": "Billing",
            "resolution_status": "resolved",
            "escalated": False,
            "questions": ["How do I pay?"],
            "unanswered_questions": [],
            "created_at": "2025-02-03T11:05:00+00:00",
        },
    ]
    messages = [
        {
            "id": "lm-1",
            "session_id": "live-1",
            "mascot_slug": "bot-a",
            "author": "bot",
            "message": "Hi!",
            "timestamp": "2025-02-01T09:00:05+00:00",
            "response_animation": {"name": "wave"},
        },
        {
            "id": "lm-2",
            "session_id": "live-2",
            "mascot_slug": "bot-a",
            "author": "bot",
            "message": "Surprise",
            "timestamp": "2025-02-02T15:31:00+00:00",
            "response_animation": "jump",
            "easter_egg_animation": "confetti",
            "has_easter_egg": True,
            "wait_sequence": "b",
        },
    ]
    return {
        "chat_sessions": sessions,
        "chat_session_analyses": analyses,
        "chat_messages": messages,
    }


@pytest.fixture
def fake_supabase(live_rows) -> FakeSupabaseClient:
    return FakeSupabaseClient(live_rows)


@pytest.fixture
def make_fake_supabase():
    return FakeSupabaseClient
