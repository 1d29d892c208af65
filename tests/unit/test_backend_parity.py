"""The fixture and live backends agree on every aggregate for the same rows."""

from datetime import datetime, timezone

import pytest

from src.core.fixtures import FixtureStore
from src.features.analytics.fixture_source import FixtureDataset
from src.features.analytics.live_source import ANALYSES_TABLE, MESSAGES_TABLE, SESSIONS_TABLE
from src.features.analytics.mappers import FIXTURE_SCHEMA, LIVE_SCHEMA
from src.features.analytics.models import DateRange
from src.features.analytics.selector import build_fixture_operations, build_live_operations

AGGREGATES = (
    "overview",
    "sentiment",
    "categories",
    "languages",
    "devices",
    "countries",
    "time_series",
    "sentiment_time_series",
    "hourly_breakdown",
    "questions",
    "unanswered_questions",
    "engagement",
    "conversation_types",
    "animation_stats",
    "dashboard",
)

MARCH_2_TO_4 = DateRange(
    start=datetime(2025, 3, 2, tzinfo=timezone.utc),
    end=datetime(2025, 3, 4, tzinfo=timezone.utc),
)

# Rows under the fixture column names
SESSIONS = [
    {
        "id": "p-1",
        "mascot_id": "bot-a",
        "client_id": "acme",
        "domain": "shop.acme.com",
        "session_start": "2025-03-01T09:00:00Z",
        "session_end": "2025-03-01T09:05:00Z",
        "total_user_messages": 2,
        "total_bot_messages": 3,
        "country": "Netherlands",
        "device_type": "desktop",
        "browser": "Chrome 121.0",
        "os": "Windows 11",
        "total_prompt_tokens": 300,
        "total_completion_tokens": 100,
        "total_cost_eur": 0.02,
        "average_response_time_ms": 900,
        "is_active": False,
        "end_reason": "user_closed",
        "glb_source": "cdn_fetch",
        "created_at": "2025-03-01T09:00:00Z",
    },
    {
        "id": "p-2",
        "mascot_id": "bot-a",
        "client_id": "acme",
        "domain": "shop.acme.com",
        "session_start": "2025-03-02T15:30:00Z",
        "total_user_messages": 1,
        "total_bot_messages": 1,
        "country": "Germany",
        "device_type": "mobile",
        "total_cost_eur": 0.01,
        "average_response_time_ms": 1100,
        "is_active": True,
        "glb_source": "memory_cache",
        "created_at": "2025-03-02T15:30:00Z",
    },
    {
        "id": "p-3",
        "mascot_id": "bot-b",
        "client_id": "acme",
        "domain": "help.acme.com",
        "session_start": "2025-03-03T22:10:00Z",
        "session_end": "2025-03-03T22:12:00Z",
        "total_user_messages": 1,
        "total_bot_messages": 2,
        "country": "Netherlands",
        "device_type": "desktop",
        "is_active": False,
        "created_at": "2025-03-03T22:10:00Z",
    },
    {
        # Never analysed
        "id": "p-4",
        "mascot_id": "bot-b",
        "client_id": "acme",
        "domain": "help.acme.com",
        "session_start": "2025-03-04T08:00:00Z",
        "total_user_messages": 2,
        "total_bot_messages": 2,
        "country": "Belgium",
        "device_type": "tablet",
        "created_at": "2025-03-04T08:00:00Z",
    },
    {
        "id": "p-dev",
        "mascot_id": "bot-a",
        "client_id": "acme",
        "domain": "localhost",
        "session_start": "2025-03-02T12:00:00Z",
        "total_user_messages": 3,
        "total_bot_messages": 3,
        "is_dev": True,
        "created_at": "2025-03-02T12:00:00Z",
    },
    {
        "id": "p-other",
        "mascot_id": "bot-z",
        "client_id": "globex",
        "domain": "globex.com",
        "session_start": "2025-03-02T10:00:00Z",
        "total_user_messages": 1,
        "total_bot_messages": 1,
        "created_at": "2025-03-02T10:00:00Z",
    },
]

ANALYSES = [
    {
        "session_id": "p-1",
        "mascot_id": "bot-a",
        "language": "en",
        "sentiment": "positive",
        "category": "Billing",
        "resolution_status": "resolved",
        "escalated": False,
        "forwarded_url": True,
        "questions": ["How do I pay?"],
        "unanswered_questions": [],
        "engagement_level": "high",
        "conversation_type": "goal_driven",
        "analytics_total_cost_eur": 0.001,
        "created_at": "2025-03-01T09:10:00Z",
    },
    {
        "session_id": "p-2",
        "mascot_id": "bot-a",
        "language": "de",
        "sentiment": "negative",
        "category": "Shipping",
        "resolution_status": "unresolved",
        "escalated": True,
        "questions": ["Where is my parcel?"],
        "unanswered_questions": ["Where is my parcel?", "Can I pick it up?"],
        "engagement_level": "low",
        "conversation_type": "casual",
        "created_at": "2025-03-02T15:45:00Z",
    },
    {
        "session_id": "p-3",
        "mascot_id": "bot-b",
        "language": "en",
        "sentiment": "neutral",
        "category": "Billing",
        "resolution_status": "partial",
        "escalated": False,
        "questions": ["How do I pay?"],
        "unanswered_questions": [],
        "created_at": "2025-03-03T22:20:00Z",
    },
    {
        "session_id": "p-dev",
        "mascot_id": "bot-a",
        "language": "en",
        "sentiment": "positive",
        "category": "Testing",
        "resolution_status": "resolved",
        "escalated": False,
        "questions": ["is this thing on?"],
        "unanswered_questions": ["is this thing on?"],
        "created_at": "2025-03-02T12:10:00Z",
    },
]

MESSAGES = [
    {
        "id": "pm-1",
        "session_id": "p-1",
        "mascot_id": "bot-a",
        "author": "bot",
        "message": "Hi!",
        "timestamp": "2025-03-01T09:00:05Z",
        "response_animation": "wave",
        "wait_sequence": "a",
    },
    {
        "id": "pm-2",
        "session_id": "p-dev",
        "mascot_id": "bot-a",
        "author": "bot",
        "message": "Test reply",
        "timestamp": "2025-03-02T12:00:10Z",
        "response_animation": "wave",
        "easter_egg_animation": "dance",
        "has_easter_egg": True,
    },
    {
        "id": "pm-3",
        "session_id": "p-2",
        "mascot_id": "bot-a",
        "author": "bot",
        "message": "Surprise",
        "timestamp": "2025-03-02T15:31:00Z",
        "response_animation": "jump",
        "easter_egg_animation": "confetti",
        "has_easter_egg": True,
        "wait_sequence": "b",
    },
    {
        "id": "pm-4",
        "session_id": "p-3",
        "mascot_id": "bot-b",
        "author": "user",
        "message": "Billing question",
        "timestamp": "2025-03-03T22:10:30Z",
    },
]


def _renamed(rows, source_fields, target_fields):
    columns = {
        source_fields[field]: target_fields[field]
        for field in source_fields
        if field in target_fields
    }
    return [{columns.get(column, column): value for column, value in row.items()} for row in rows]


@pytest.fixture
def fixture_ops():
    store = FixtureStore.from_rows(sessions=SESSIONS, analyses=ANALYSES, messages=MESSAGES)
    return build_fixture_operations(FixtureDataset(store, exclude_dev_sessions=True))


@pytest.fixture
def live_ops(make_fake_supabase):
    tables = {
        SESSIONS_TABLE: _renamed(
            SESSIONS, FIXTURE_SCHEMA.session_fields, LIVE_SCHEMA.session_fields
        ),
        ANALYSES_TABLE: _renamed(
            ANALYSES, FIXTURE_SCHEMA.analysis_fields, LIVE_SCHEMA.analysis_fields
        ),
        MESSAGES_TABLE: _renamed(
            MESSAGES, FIXTURE_SCHEMA.message_fields, LIVE_SCHEMA.message_fields
        ),
    }
    return build_live_operations(make_fake_supabase(tables), exclude_dev_sessions=True)


def test_live_rows_use_live_columns(live_ops):
    session = live_ops.sessions.store.tables[SESSIONS_TABLE][0]

    assert session["mascot_slug"] == "bot-a"
    assert session["client_slug"] == "acme"
    assert session["session_started_at"] == "2025-03-01T09:00:00Z"
    assert session["user_messages"] == 2
    assert "mascot_id" not in session


@pytest.mark.asyncio
@pytest.mark.parametrize("date_range", [None, MARCH_2_TO_4], ids=["all-time", "ranged"])
@pytest.mark.parametrize(
    "scope, owner_id", [("assistant", "bot-a"), ("assistant", "bot-b"), ("tenant", "acme")]
)
@pytest.mark.parametrize("aggregate", AGGREGATES)
async def test_backends_agree(fixture_ops, live_ops, aggregate, scope, owner_id, date_range):
    method = f"get_{aggregate}_by_{scope}_id"

    expected = await getattr(fixture_ops.aggregations, method)(owner_id, date_range)
    actual = await getattr(live_ops.aggregations, method)(owner_id, date_range)

    assert actual == expected


@pytest.mark.asyncio
async def test_backends_agree_on_non_empty_data(fixture_ops, live_ops):
    overview = await fixture_ops.aggregations.get_overview_by_tenant_id("acme")
    assert overview.total_sessions == 4
    assert overview == await live_ops.aggregations.get_overview_by_tenant_id("acme")

    ranged = await live_ops.aggregations.get_overview_by_tenant_id("acme", MARCH_2_TO_4)
    assert ranged.total_sessions == 2


BACKENDS = pytest.mark.parametrize("backend", ["fixture_ops", "live_ops"])


class TestDevSessionsAcrossBackends:
    @pytest.mark.asyncio
    @BACKENDS
    async def test_dev_analysis_ignored_in_every_scope(self, request, backend):
        aggregations = request.getfixturevalue(backend).aggregations

        by_tenant = await aggregations.get_sentiment_by_tenant_id("acme")
        by_assistant = await aggregations.get_sentiment_by_assistant_id("bot-a")

        assert (by_assistant.positive, by_assistant.negative) == (1, 1)
        assert (by_tenant.positive, by_tenant.neutral, by_tenant.negative) == (1, 1, 1)
        categories = await aggregations.get_categories_by_assistant_id("bot-a")
        assert "Testing" not in {c.category for c in categories}

    @pytest.mark.asyncio
    @BACKENDS
    async def test_dev_session_hidden_from_lookups(self, request, backend):
        ops = request.getfixturevalue(backend)

        assert await ops.sessions.get_by_id("p-dev") is None
        assert await ops.analyses.get_by_session_id("p-dev") is None
        assert (await ops.sessions.get_by_id("p-1")).assistant_id == "bot-a"
        assert (await ops.analyses.get_by_session_id("p-1")).language == "en"

    @pytest.mark.asyncio
    @BACKENDS
    async def test_dev_messages_ignored(self, request, backend):
        aggregations = request.getfixturevalue(backend).aggregations
        stats = await aggregations.get_animation_stats_by_assistant_id("bot-a")

        assert stats.total_triggers == 2
        assert stats.easter_eggs_triggered == 1
        assert stats.sessions_with_easter_eggs == 1
