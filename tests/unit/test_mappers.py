"""Canonical record mapper tests."""

import json
from pathlib import Path

import pytest

from src.features.analytics.mappers import (
    FIXTURE_SCHEMA,
    LIVE_SCHEMA,
    anonymize_ip,
    derive_status,
    map_analysis,
    map_message,
    map_session,
    unmap_session,
)
from src.features.analytics.models import (
    EngagementLevel,
    MessageAuthor,
    ResolutionStatus,
    Sentiment,
    SessionStatus,
)

FIXTURE_DIR = Path(__file__).resolve().parents[2] / "data" / "fixtures"

RAW_FIXTURE_SESSION = {
    "id": "abc",
    "mascot_id": "bot-1",
    "client_id": "demo-jumbo",
    "session_start": "2024-01-15T10:00:00Z",
    "session_end": "2024-01-15T10:05:30Z",
    "ip_address": "192.168.1.42",
    "device_type": "Mobile",
    "browser": "Chrome 120.0",
    "os": "Windows 11",
    "referrer_url": "https://example.com/landing?x=1",
    "page_url": "https://shop.example.com/",
    "country": "Netherlands",
    "city": "Amsterdam",
    "total_user_messages": 3,
    "total_bot_messages": 5,
    "total_tokens": 900,
    "total_prompt_tokens": 600,
    "total_completion_tokens": 300,
    "total_cost_eur": 0.009,
    "is_active": False,
    "created_at": "2024-01-15T10:00:00Z",
}


class TestMapSession:
    def test_derived_fields(self):
        session = map_session(RAW_FIXTURE_SESSION, FIXTURE_SCHEMA)

        assert session.session_duration_seconds == 330
        assert session.total_messages == 8
        assert session.user_messages == 3
        assert session.assistant_messages == 5
        assert session.browser_name == "Chrome"
        assert session.browser_version == "120.0"
        assert session.os_name == "Windows"
        assert session.os_version == "11"
        assert session.referrer_domain == "example.com"
        assert session.visitor_ip_hash == "192.168.1.xxx"
        assert session.is_mobile is True
        assert session.status == SessionStatus.ENDED
        assert session.visitor_country == "Netherlands"
        assert session.landing_page_url == "https://shop.example.com/"

    def test_missing_fields_use_defaults(self):
        session = map_session({"id": "bare"}, FIXTURE_SCHEMA)

        assert session.session_duration_seconds is None
        assert session.total_messages == 0
        assert session.total_tokens == 0
        assert session.total_cost_eur == 0.0
        assert session.visitor_ip_hash is None
        assert session.browser_name is None
        assert session.is_mobile is False
        assert session.status == SessionStatus.ACTIVE
        assert session.full_transcript is None

    def test_malformed_timestamp_gives_null_duration(self):
        raw = {**RAW_FIXTURE_SESSION, "session_end": "not a date"}
        assert map_session(raw, FIXTURE_SCHEMA).session_duration_seconds is None

    def test_duration_is_never_negative(self):
        raw = {**RAW_FIXTURE_SESSION, "session_end": "2024-01-15T09:59:00Z"}
        assert map_session(raw, FIXTURE_SCHEMA).session_duration_seconds == 0

    def test_duration_rounds_half_up(self):
        raw = {
            **RAW_FIXTURE_SESSION,
            "session_start": "2024-01-15T10:00:00.000Z",
            "session_end": "2024-01-15T10:00:02.500Z",
        }
        assert map_session(raw, FIXTURE_SCHEMA).session_duration_seconds == 3

    def test_numeric_strings_are_coerced(self):
        raw = {**RAW_FIXTURE_SESSION, "total_user_messages": "4", "total_cost_eur": "0.5"}
        session = map_session(raw, FIXTURE_SCHEMA)
        assert session.user_messages == 4
        assert session.total_cost_eur == 0.5

    def test_unparsable_numbers_degrade(self):
        raw = {
            **RAW_FIXTURE_SESSION,
            "total_tokens": "lots",
            "total_prompt_tokens": None,
            "total_completion_tokens": None,
        }
        assert map_session(raw, FIXTURE_SCHEMA).total_tokens == 0

    def test_token_total_from_halves(self):
        raw = {**RAW_FIXTURE_SESSION}
        del raw["total_tokens"]
        assert map_session(raw, FIXTURE_SCHEMA).total_tokens == 900

    def test_os_version_keeps_remaining_words(self):
        raw = {**RAW_FIXTURE_SESSION, "os": "Mac OS X 14.2"}
        session = map_session(raw, FIXTURE_SCHEMA)
        assert session.os_name == "Mac"
        assert session.os_version == "OS X 14.2"

    def test_start_falls_back_to_created_at(self):
        raw = {**RAW_FIXTURE_SESSION, "session_start": None}
        assert map_session(raw, FIXTURE_SCHEMA).session_started_at == "2024-01-15T10:00:00Z"

    def test_live_row(self):
        raw = {
            "id": "live-1",
            "mascot_slug": "bot-a",
            "client_slug": "acme",
            "session_started_at": "2025-02-01T09:00:00+00:00",
            "session_ended_at": "2025-02-01T09:01:00+00:00",
            "user_messages": 2,
            "assistant_messages": 2,
            "total_messages": 7,
            "utm_campaign": "spring",
            "full_transcript": [
                {"author": "user", "message": "hi", "timestamp": "2025-02-01T09:00:01Z"},
                "garbage",
                {"author": "bot", "message": "hello", "easter": "wave"},
            ],
        }
        session = map_session(raw, LIVE_SCHEMA)

        assert session.assistant_id == "bot-a"
        assert session.tenant_id == "acme"
        assert session.total_messages == 7
        assert session.session_duration_seconds == 60
        assert session.utm_campaign == "spring"
        assert [entry.author for entry in session.full_transcript] == ["user", "bot"]
        assert session.full_transcript[1].easter == "wave"

    def test_unparsable_referrer_gives_no_domain(self):
        raw = {**RAW_FIXTURE_SESSION, "referrer_url": "http://[::1"}
        assert map_session(raw, FIXTURE_SCHEMA).referrer_domain is None


class TestDeriveStatus:
    @pytest.mark.parametrize(
        "is_active, end_reason, expected",
        [
            (None, "timeout", SessionStatus.TIMEOUT),
            (True, "timeout", SessionStatus.TIMEOUT),
            (False, "error", SessionStatus.ERROR),
            (False, None, SessionStatus.ENDED),
            (True, None, SessionStatus.ACTIVE),
            (None, "user_closed", SessionStatus.ENDED),
            (None, None, SessionStatus.ACTIVE),
        ],
    )
    def test_status(self, is_active, end_reason, expected):
        assert derive_status(is_active, end_reason) == expected


def test_anonymize_ip():
    assert anonymize_ip("10.0.0.254") == "10.0.0.xxx"
    assert anonymize_ip(None) is None
    assert anonymize_ip("") is None


class TestMapAnalysis:
    def test_full_row(self):
        analysis = map_analysis(
            {
                "session_id": "abc",
                "mascot_id": "bot-1",
                "sentiment": "Positive",
                "resolution_status": "resolved",
                "engagement_level": "high",
                "escalated": "true",
                "questions": ["a", "b"],
                "unanswered_questions": ["b"],
                "analytics_total_prompt_tokens": 100,
                "analytics_total_completion_tokens": 50,
            },
            FIXTURE_SCHEMA,
        )

        assert analysis.sentiment == Sentiment.POSITIVE
        assert analysis.resolution_status == ResolutionStatus.RESOLVED
        assert analysis.engagement_level == EngagementLevel.HIGH
        assert analysis.escalated is True
        assert analysis.questions == ("a", "b")
        assert analysis.analytics_total_tokens == 150
        assert analysis.orphan_unanswered_questions == []

    def test_defaults(self):
        analysis = map_analysis({"session_id": "abc", "sentiment": "ecstatic"}, FIXTURE_SCHEMA)

        assert analysis.category == "Unknown"
        assert analysis.sentiment is None
        assert analysis.questions == ()
        assert analysis.analytics_total_tokens is None

    def test_single_token_half(self):
        analysis = map_analysis(
            {"session_id": "abc", "analytics_total_completion_tokens": 40}, LIVE_SCHEMA
        )
        assert analysis.analytics_total_tokens == 40

    def test_orphan_unanswered_questions_are_kept(self):
        analysis = map_analysis(
            {"session_id": "abc", "questions": ["a"], "unanswered_questions": ["z"]},
            FIXTURE_SCHEMA,
        )
        assert analysis.unanswered_questions == ("z",)
        assert analysis.orphan_unanswered_questions == ["z"]


class TestMapMessage:
    def test_message(self):
        message = map_message(
            {
                "session_id": "abc",
                "mascot_slug": "bot-a",
                "author": "bot",
                "message": "hello",
                "response_animation": {"name": "wave", "loop": False},
                "has_easter_egg": None,
                "prompt_tokens": 10,
                "completion_tokens": 5,
            },
            LIVE_SCHEMA,
        )

        assert message.author == MessageAuthor.BOT
        assert message.assistant_id == "bot-a"
        assert json.loads(message.response_animation) == {"name": "wave", "loop": False}
        assert message.has_easter_egg is False
        assert message.total_tokens == 15

    def test_no_tokens(self):
        message = map_message({"session_id": "abc"}, FIXTURE_SCHEMA)
        assert message.total_tokens is None
        assert message.author is None


def test_round_trip_recovers_supplied_fixture_values():
    rows = json.loads((FIXTURE_DIR / "chat_sessions.json").read_text(encoding="utf-8"))
    for raw in rows:
        written = unmap_session(map_session(raw, FIXTURE_SCHEMA), FIXTURE_SCHEMA)
        for column, value in raw.items():
            if column in written:
                assert written[column] == value, (raw["id"], column)
