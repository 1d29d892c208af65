"""Query filtering shared by the fixture and live repositories."""

from collections.abc import Iterable, Mapping
from typing import Any, TypeVar
from urllib.parse import urlparse

from .mappers import SourceSchema, parse_timestamp
from .models import (
    ChatSessionFilters,
    DateRange,
    Session,
    SessionAnalysis,
)

T = TypeVar("T")


# ==================== DEV SESSIONS ====================


def _count(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _raw_total_messages(raw: Mapping[str, Any], schema: SourceSchema) -> float | None:
    fields = schema.session_fields
    if "total_messages" in fields:
        total = _count(raw.get(fields["total_messages"]))
        if total is not None:
            return total
    user = _count(raw.get(fields["user_messages"]))
    bot = _count(raw.get(fields["assistant_messages"]))
    if user is None and bot is None:
        return None
    return (user or 0) + (bot or 0)


def _is_localhost(domain: Any) -> bool:
    normalized = str(domain or "").strip().lower()
    if not normalized:
        return False
    host = normalized
    if "://" in normalized or "/" in normalized:
        url = normalized if "://" in normalized else f"http://{normalized}"
        try:
            host = urlparse(url).netloc or normalized
        except ValueError:
            host = normalized
    return host == "localhost" or host.startswith("localhost:")


def is_dev_session_row(raw: Mapping[str, Any], schema: SourceSchema) -> bool:
    """Check whether a raw session row was produced during development.

    A row is a dev session when it has a known message count of zero, runs
    on a localhost domain, or comes from ``::1`` with the dev flag set.
    """
    total = _raw_total_messages(raw, schema)
    if total is not None and total <= 0:
        return True
    if _is_localhost(raw.get(schema.session_fields["domain"])):
        return True
    ip_address = str(raw.get(schema.session_fields["ip_address"]) or "").strip()
    return ip_address == "::1" and raw.get(schema.session_fields["is_dev"]) is True


def exclude_dev_session_rows(
    rows: Iterable[Mapping[str, Any]], schema: SourceSchema
) -> list[Mapping[str, Any]]:
    return [row for row in rows if not is_dev_session_row(row, schema)]


# ==================== DATE RANGE ====================


def in_date_range(timestamp: str | None, date_range: DateRange | None) -> bool:
    """Check a timestamp against a half-open range.

    No range accepts everything. Under a range, a missing or unparsable
    timestamp is rejected.
    """
    if date_range is None or (date_range.start is None and date_range.end is None):
        return True
    moment = parse_timestamp(timestamp)
    if moment is None:
        return False
    return date_range.contains(moment)


# ==================== EQUALITY FILTERS ====================


def matches_session_filters(session: Session, filters: ChatSessionFilters | None) -> bool:
    if filters is None:
        return True
    if not in_date_range(session.session_started_at, filters.date_range):
        return False
    if filters.device_type is not None and session.device_type != filters.device_type:
        return False
    if filters.country is not None and session.visitor_country != filters.country:
        return False
    return True


def matches_analysis_filters(
    analysis: SessionAnalysis, filters: ChatSessionFilters | None
) -> bool:
    """Equality filters on analysis fields; the date range is not applied here."""
    if filters is None:
        return True
    if filters.sentiment is not None and analysis.sentiment != filters.sentiment:
        return False
    if filters.category is not None and analysis.category != filters.category:
        return False
    if filters.resolution is not None and analysis.resolution_status != filters.resolution:
        return False
    if filters.escalated is not None and analysis.escalated != filters.escalated:
        return False
    if filters.language is not None and analysis.language != filters.language:
        return False
    return True


def filter_sessions(
    sessions: Iterable[Session],
    filters: ChatSessionFilters | None,
    analyses_by_session: Mapping[str, SessionAnalysis],
) -> list[Session]:
    """Apply session filters; analysis filters keep sessions whose analysis matches."""
    result = [s for s in sessions if matches_session_filters(s, filters)]
    if filters is not None and filters.has_analysis_filters:
        result = [
            s
            for s in result
            if s.id in analyses_by_session
            and matches_analysis_filters(analyses_by_session[s.id], filters)
        ]
    return result


def filter_analyses(
    analyses: Iterable[SessionAnalysis],
    filters: ChatSessionFilters | None,
    sessions_by_id: Mapping[str, Session],
) -> list[SessionAnalysis]:
    """Apply analysis filters; session filters keep analyses whose session matches."""
    date_range = filters.date_range if filters is not None else None
    result = [
        a
        for a in analyses
        if in_date_range(a.created_at, date_range) and matches_analysis_filters(a, filters)
    ]
    if filters is not None and filters.has_session_filters:
        session_only = filters.model_copy(update={"date_range": None})
        result = [
            a
            for a in result
            if a.session_id in sessions_by_id
            and matches_session_filters(sessions_by_id[a.session_id], session_only)
        ]
    return result


# ==================== ORDERING ====================


def _sort_key(timestamp: str | None) -> float:
    moment = parse_timestamp(timestamp)
    return moment.timestamp() if moment is not None else float("-inf")


def most_recent_first(records: Iterable[T], timestamp_of) -> list[T]:
    """Sort by timestamp descending; records without one go last."""
    return sorted(records, key=lambda record: _sort_key(timestamp_of(record)), reverse=True)


def sessions_most_recent_first(sessions: Iterable[Session]) -> list[Session]:
    return most_recent_first(sessions, lambda s: s.session_started_at)


def analyses_most_recent_first(analyses: Iterable[SessionAnalysis]) -> list[SessionAnalysis]:
    return most_recent_first(analyses, lambda a: a.created_at)
