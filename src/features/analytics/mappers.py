"""Canonical record mapping for raw rows from either backing store.

Each backing store names its columns differently (``session_start`` vs
``session_started_at``, ``total_bot_messages`` vs ``assistant_messages``).
A ``SourceSchema`` declares that naming as data: a table of canonical field
to source column. The ``map_*`` functions read a raw row through such a
table and derive the computed fields, so both stores end up with identical
``Session``, ``SessionAnalysis`` and ``ChatMessage`` records.

Mapping never raises for missing or malformed optional fields; they fall
back to their documented defaults.
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from .models import (
    ChatMessage,
    EngagementLevel,
    MessageAuthor,
    ResolutionStatus,
    Sentiment,
    Session,
    SessionAnalysis,
    SessionStatus,
    TranscriptEntry,
)

logger = logging.getLogger(__name__)

_IP_LAST_OCTET = re.compile(r"\.\d+$")


@dataclass(frozen=True)
class SourceSchema:
    """Column naming of one backing store, keyed by canonical field."""

    name: str
    session_fields: Mapping[str, str]
    analysis_fields: Mapping[str, str]
    message_fields: Mapping[str, str]

    def session_column(self, field: str) -> str:
        return self.session_fields[field]

    def analysis_column(self, field: str) -> str:
        return self.analysis_fields[field]

    def message_column(self, field: str) -> str:
        return self.message_fields[field]


_COMMON_SESSION_FIELDS = {
    "id": "id",
    "domain": "domain",
    "user_id": "user_id",
    "first_message_at": "first_message_at",
    "last_message_at": "last_message_at",
    "ip_address": "ip_address",
    "user_agent": "user_agent",
    "device_type": "device_type",
    "browser": "browser",
    "os": "os",
    "widget_version": "widget_version",
    "referrer_url": "referrer_url",
    "total_tokens": "total_tokens",
    "total_cost_usd": "total_cost_usd",
    "total_cost_eur": "total_cost_eur",
    "average_response_time_ms": "average_response_time_ms",
    "is_active": "is_active",
    "end_reason": "end_reason",
    "easter_eggs_triggered": "easter_eggs_triggered",
    "is_dev": "is_dev",
    "glb_source": "glb_source",
    "glb_transfer_size": "glb_transfer_size",
    "full_transcript": "full_transcript",
    "created_at": "created_at",
}

_COMMON_ANALYSIS_FIELDS = {
    "session_id": "session_id",
    "language": "language",
    "sentiment": "sentiment",
    "category": "category",
    "resolution_status": "resolution_status",
    "escalated": "escalated",
    "forwarded_email": "forwarded_email",
    "forwarded_url": "forwarded_url",
    "url_links": "url_links",
    "email_links": "email_links",
    "questions": "questions",
    "unanswered_questions": "unanswered_questions",
    "summary": "summary",
    "session_outcome": "session_outcome",
    "engagement_level": "engagement_level",
    "conversation_type": "conversation_type",
    "analytics_prompt_tokens": "analytics_total_prompt_tokens",
    "analytics_completion_tokens": "analytics_total_completion_tokens",
    "analytics_total_tokens": "analytics_total_tokens",
    "analytics_total_cost_usd": "analytics_total_cost_usd",
    "analytics_total_cost_eur": "analytics_total_cost_eur",
    "analytics_model_used": "analytics_model_used",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

_COMMON_MESSAGE_FIELDS = {
    "id": "id",
    "session_id": "session_id",
    "author": "author",
    "message": "message",
    "timestamp": "timestamp",
    "response_time_ms": "response_time_ms",
    "response_animation": "response_animation",
    "easter_egg_animation": "easter_egg_animation",
    "has_easter_egg": "has_easter_egg",
    "wait_sequence": "wait_sequence",
    "prompt_tokens": "prompt_tokens",
    "completion_tokens": "completion_tokens",
    "total_tokens": "total_tokens",
    "model_used": "model_used",
    "cost_usd": "cost_usd",
    "cost_eur": "cost_eur",
    "created_at": "created_at",
}

# Static JSON dataset shipped for demo tenants
FIXTURE_SCHEMA = SourceSchema(
    name="fixture",
    session_fields={
        **_COMMON_SESSION_FIELDS,
        "assistant_id": "mascot_id",
        "tenant_id": "client_id",
        "session_started_at": "session_start",
        "session_ended_at": "session_end",
        "visitor_country": "country",
        "visitor_city": "city",
        "landing_page_url": "page_url",
        "user_messages": "total_user_messages",
        "assistant_messages": "total_bot_messages",
        "input_tokens": "total_prompt_tokens",
        "output_tokens": "total_completion_tokens",
    },
    analysis_fields={**_COMMON_ANALYSIS_FIELDS, "assistant_id": "mascot_id"},
    message_fields={**_COMMON_MESSAGE_FIELDS, "assistant_id": "mascot_id"},
)

# Supabase tables chat_sessions / chat_session_analyses / chat_messages
LIVE_SCHEMA = SourceSchema(
    name="live",
    session_fields={
        **_COMMON_SESSION_FIELDS,
        "assistant_id": "mascot_slug",
        "tenant_id": "client_slug",
        "session_started_at": "session_started_at",
        "session_ended_at": "session_ended_at",
        "visitor_country": "visitor_country",
        "visitor_city": "visitor_city",
        "landing_page_url": "landing_page_url",
        "utm_source": "utm_source",
        "utm_medium": "utm_medium",
        "utm_campaign": "utm_campaign",
        "utm_content": "utm_content",
        "utm_term": "utm_term",
        "total_messages": "total_messages",
        "user_messages": "user_messages",
        "assistant_messages": "assistant_messages",
        "input_tokens": "input_tokens",
        "output_tokens": "output_tokens",
        "updated_at": "updated_at",
    },
    analysis_fields={**_COMMON_ANALYSIS_FIELDS, "assistant_id": "mascot_slug"},
    message_fields={**_COMMON_MESSAGE_FIELDS, "assistant_id": "mascot_slug"},
)


# ==================== VALUE COERCION ====================


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def _float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _int(value: Any) -> int | None:
    number = _float(value)
    return None if number is None else int(number)


def _bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "t", "1", "yes"):
            return True
        if lowered in ("false", "f", "0", "no"):
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def _enum(enum_cls: type[Enum], value: Any) -> Any:
    text = _str(value)
    if text is None:
        return None
    try:
        return enum_cls(text.lower())
    except ValueError:
        return None


def _str_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.startswith("[") else [value]
        except ValueError:
            value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item not in (None, ""))


def _combine_total(total: Any, first: Any, second: Any) -> int | None:
    """Use an explicit total, else sum whichever halves are present."""
    explicit = _int(total)
    if explicit is not None:
        return explicit
    first, second = _int(first), _int(second)
    if first is None and second is None:
        return None
    return (first or 0) + (second or 0)


def _split_first_space(value: Any) -> tuple[str | None, str | None]:
    """Split "Chrome 120.0" into ("Chrome", "120.0")."""
    head, _, tail = (_str(value) or "").partition(" ")
    return head or None, tail or None


def _join_name_version(name: str | None, version: str | None) -> str | None:
    joined = " ".join(part for part in (name, version) if part)
    return joined or None


def _hostname(url: str | None) -> str | None:
    if not url:
        return None
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def _duration_seconds(start: Any, end: Any) -> int | None:
    started, ended = parse_timestamp(start), parse_timestamp(end)
    if started is None or ended is None:
        return None
    millis = (ended - started).total_seconds() * 1000
    # Half-up rounding of whole seconds
    return max(0, math.floor(millis / 1000 + 0.5))


def derive_status(is_active: Any, end_reason: Any) -> SessionStatus:
    """Derive the lifecycle status from the active flag and end reason."""
    reason = (_str(end_reason) or "").lower()
    if reason == "timeout":
        return SessionStatus.TIMEOUT
    if reason == "error":
        return SessionStatus.ERROR
    active = _bool(is_active)
    if active is False:
        return SessionStatus.ENDED
    if active is True:
        return SessionStatus.ACTIVE
    return SessionStatus.ENDED if reason else SessionStatus.ACTIVE


def anonymize_ip(ip_address: str | None) -> str | None:
    if not ip_address:
        return None
    return _IP_LAST_OCTET.sub(".xxx", ip_address)


def _transcript(value: Any) -> tuple[TranscriptEntry, ...] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if not isinstance(value, list):
        return None
    entries = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        entries.append(
            TranscriptEntry(
                author=_str(item.get("author")) or "unknown",
                message=_str(item.get("message")) or "",
                timestamp=_str(item.get("timestamp")),
                easter=_str(item.get("easter")),
            )
        )
    return tuple(entries)


def _read(raw: Mapping[str, Any], fields: Mapping[str, str]) -> dict[str, Any]:
    """Read every canonical field through the schema's column table."""
    return {field: raw.get(column) for field, column in fields.items()}


# ==================== MAPPERS ====================


def map_session(raw: Mapping[str, Any], schema: SourceSchema) -> Session:
    """Map one raw session row to the canonical ``Session``."""
    row = _read(raw, schema.session_fields)

    started_at = _str(row.get("session_started_at")) or _str(row.get("created_at"))
    ended_at = _str(row.get("session_ended_at"))

    user_messages = _int(row.get("user_messages")) or 0
    assistant_messages = _int(row.get("assistant_messages")) or 0
    total_messages = _int(row.get("total_messages"))
    if total_messages is None:
        total_messages = user_messages + assistant_messages

    input_tokens = _int(row.get("input_tokens"))
    output_tokens = _int(row.get("output_tokens"))
    total_tokens = _combine_total(row.get("total_tokens"), input_tokens, output_tokens)

    browser_name, browser_version = _split_first_space(row.get("browser"))
    os_name, os_version = _split_first_space(row.get("os"))
    ip_address = _str(row.get("ip_address"))
    device_type = _str(row.get("device_type"))
    referrer_url = _str(row.get("referrer_url"))
    created_at = _str(row.get("created_at")) or started_at

    return Session(
        id=str(row.get("id")),
        assistant_id=_str(row.get("assistant_id")),
        tenant_id=_str(row.get("tenant_id")),
        domain=_str(row.get("domain")),
        user_id=_str(row.get("user_id")),
        session_started_at=started_at,
        session_ended_at=ended_at,
        first_message_at=_str(row.get("first_message_at")),
        last_message_at=_str(row.get("last_message_at")),
        session_duration_seconds=_duration_seconds(started_at, ended_at),
        ip_address=ip_address,
        user_agent=_str(row.get("user_agent")),
        visitor_ip_hash=anonymize_ip(ip_address),
        visitor_country=_str(row.get("visitor_country")),
        visitor_city=_str(row.get("visitor_city")),
        device_type=device_type,
        browser_name=browser_name,
        browser_version=browser_version,
        os_name=os_name,
        os_version=os_version,
        is_mobile=(device_type or "").lower() == "mobile",
        widget_version=_str(row.get("widget_version")),
        referrer_url=referrer_url,
        referrer_domain=_hostname(referrer_url),
        landing_page_url=_str(row.get("landing_page_url")),
        utm_source=_str(row.get("utm_source")),
        utm_medium=_str(row.get("utm_medium")),
        utm_campaign=_str(row.get("utm_campaign")),
        utm_content=_str(row.get("utm_content")),
        utm_term=_str(row.get("utm_term")),
        total_messages=total_messages,
        user_messages=user_messages,
        assistant_messages=assistant_messages,
        total_tokens=total_tokens or 0,
        input_tokens=input_tokens or 0,
        output_tokens=output_tokens or 0,
        total_cost_usd=_float(row.get("total_cost_usd")),
        total_cost_eur=_float(row.get("total_cost_eur")) or 0.0,
        average_response_time_ms=_float(row.get("average_response_time_ms")),
        status=derive_status(row.get("is_active"), row.get("end_reason")),
        end_reason=_str(row.get("end_reason")),
        easter_eggs_triggered=_int(row.get("easter_eggs_triggered")) or 0,
        is_dev=_bool(row.get("is_dev")) or False,
        glb_source=_str(row.get("glb_source")),
        glb_transfer_size=_int(row.get("glb_transfer_size")),
        full_transcript=_transcript(row.get("full_transcript")),
        created_at=created_at,
        updated_at=_str(row.get("updated_at")) or created_at,
    )


def map_analysis(raw: Mapping[str, Any], schema: SourceSchema) -> SessionAnalysis:
    """Map one raw analysis row to the canonical ``SessionAnalysis``."""
    row = _read(raw, schema.analysis_fields)

    prompt_tokens = _int(row.get("analytics_prompt_tokens"))
    completion_tokens = _int(row.get("analytics_completion_tokens"))

    analysis = SessionAnalysis(
        session_id=str(row.get("session_id")),
        assistant_id=_str(row.get("assistant_id")),
        language=_str(row.get("language")),
        sentiment=_enum(Sentiment, row.get("sentiment")),
        category=_str(row.get("category")) or "Unknown",
        resolution_status=_enum(ResolutionStatus, row.get("resolution_status")),
        escalated=_bool(row.get("escalated")) or False,
        forwarded_email=_bool(row.get("forwarded_email")) or False,
        forwarded_url=_bool(row.get("forwarded_url")) or False,
        url_links=_str_list(row.get("url_links")),
        email_links=_str_list(row.get("email_links")),
        questions=_str_list(row.get("questions")),
        unanswered_questions=_str_list(row.get("unanswered_questions")),
        summary=_str(row.get("summary")),
        session_outcome=_str(row.get("session_outcome")),
        engagement_level=_enum(EngagementLevel, row.get("engagement_level")),
        conversation_type=_str(row.get("conversation_type")),
        analytics_prompt_tokens=prompt_tokens,
        analytics_completion_tokens=completion_tokens,
        analytics_total_tokens=_combine_total(
            row.get("analytics_total_tokens"), prompt_tokens, completion_tokens
        ),
        analytics_total_cost_usd=_float(row.get("analytics_total_cost_usd")),
        analytics_total_cost_eur=_float(row.get("analytics_total_cost_eur")),
        analytics_model_used=_str(row.get("analytics_model_used")),
        created_at=_str(row.get("created_at")),
        updated_at=_str(row.get("updated_at")),
    )

    orphans = analysis.orphan_unanswered_questions
    if orphans:
        logger.debug(
            f"Analysis {analysis.session_id} lists {len(orphans)} unanswered "
            "question(s) not among its questions"
        )
    return analysis


def _animation_name(value: Any) -> str | None:
    if isinstance(value, Mapping):
        return json.dumps(value, sort_keys=True) if value else None
    return _str(value)


def map_message(raw: Mapping[str, Any], schema: SourceSchema) -> ChatMessage:
    """Map one raw message row to the canonical ``ChatMessage``."""
    row = _read(raw, schema.message_fields)

    prompt_tokens = _int(row.get("prompt_tokens"))
    completion_tokens = _int(row.get("completion_tokens"))

    return ChatMessage(
        id=_str(row.get("id")),
        session_id=str(row.get("session_id")),
        assistant_id=_str(row.get("assistant_id")),
        author=_enum(MessageAuthor, row.get("author")),
        message=_str(row.get("message")) or "",
        timestamp=_str(row.get("timestamp")),
        response_time_ms=_float(row.get("response_time_ms")),
        response_animation=_animation_name(row.get("response_animation")),
        easter_egg_animation=_str(row.get("easter_egg_animation")),
        has_easter_egg=_bool(row.get("has_easter_egg")) or False,
        wait_sequence=_str(row.get("wait_sequence")),
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=_combine_total(row.get("total_tokens"), prompt_tokens, completion_tokens),
        model_used=_str(row.get("model_used")),
        cost_usd=_float(row.get("cost_usd")),
        cost_eur=_float(row.get("cost_eur")),
        created_at=_str(row.get("created_at")),
    )


def unmap_session(session: Session, schema: SourceSchema) -> dict[str, Any]:
    """Write a session back under the schema's column names.

    Only fields stored verbatim (plus the recombined browser/os strings)
    are emitted; derived fields such as the active flag are not.
    """
    row: dict[str, Any] = {}
    for field, column in schema.session_fields.items():
        if field == "browser":
            row[column] = _join_name_version(session.browser_name, session.browser_version)
        elif field == "os":
            row[column] = _join_name_version(session.os_name, session.os_version)
        elif field == "full_transcript":
            row[column] = (
                None
                if session.full_transcript is None
                else [entry.model_dump(exclude_none=True) for entry in session.full_transcript]
            )
        elif field in Session.model_fields:
            row[column] = getattr(session, field)
    return row
