"""Aggregation engine: pure reductions of canonical records into statistics.

Every function takes already-filtered records, never mutates them, and
returns the zero shape for empty input. Frequency-sorted outputs break ties
alphabetically so the result does not depend on input order.
"""

from collections import Counter
from collections.abc import Iterable, Sequence

from .mappers import parse_timestamp
from .models import (
    AnimationCount,
    AnimationStats,
    CategoryBreakdown,
    ChatMessage,
    ConversationType,
    ConversationTypeBreakdown,
    CountryBreakdown,
    DeviceBreakdown,
    EngagementBreakdown,
    EngagementLevel,
    HourlyBreakdown,
    LanguageBreakdown,
    OverviewMetrics,
    QuestionAnalytics,
    ResolutionStatus,
    Sentiment,
    SentimentBreakdown,
    SentimentTimeSeriesDataPoint,
    Session,
    SessionAnalysis,
    TimeSeriesDataPoint,
    WaitSequenceCount,
)

UNKNOWN = "Unknown"
TOP_ANIMATIONS = 5


def percentage(count: int, total: int) -> float:
    return count / total * 100 if total > 0 else 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _ranked(counts: Counter) -> list[tuple[str, int]]:
    """Most frequent first, ties alphabetical."""
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def _breakdown(keys: Iterable[str | None]) -> list[tuple[str, int, float]]:
    counts = Counter(key or UNKNOWN for key in keys)
    total = sum(counts.values())
    return [(key, count, percentage(count, total)) for key, count in _ranked(counts)]


def _date_of(timestamp: str | None) -> str | None:
    """Calendar date as written in the timestamp, without zone conversion."""
    if not timestamp:
        return None
    return timestamp.split("T")[0].split(" ")[0]


# ==================== OVERVIEW ====================


def compute_overview(
    sessions: Sequence[Session], analyses: Iterable[SessionAnalysis]
) -> OverviewMetrics:
    """Headline KPIs; rates count the analyses of the given sessions only."""
    total_sessions = len(sessions)
    session_ids = {s.id for s in sessions}

    joined: dict[str, SessionAnalysis] = {}
    for analysis in analyses:
        if analysis.session_id in session_ids:
            joined.setdefault(analysis.session_id, analysis)

    resolved = sum(
        1 for a in joined.values() if a.resolution_status == ResolutionStatus.RESOLVED
    )
    escalated = sum(1 for a in joined.values() if a.escalated)

    return OverviewMetrics(
        total_sessions=total_sessions,
        total_messages=sum(s.total_messages for s in sessions),
        total_tokens=sum(s.total_tokens for s in sessions),
        total_cost_eur=sum(s.total_cost_eur for s in sessions),
        average_response_time_ms=_mean(
            [s.average_response_time_ms for s in sessions if s.average_response_time_ms is not None]
        ),
        average_session_duration_seconds=_mean(
            [s.session_duration_seconds for s in sessions if s.session_duration_seconds is not None]
        ),
        resolution_rate=percentage(resolved, total_sessions),
        escalation_rate=percentage(escalated, total_sessions),
    )


# ==================== BREAKDOWNS ====================


def compute_sentiment(analyses: Iterable[SessionAnalysis]) -> SentimentBreakdown:
    counts = Counter(a.sentiment for a in analyses if a.sentiment is not None)
    return SentimentBreakdown(
        positive=counts[Sentiment.POSITIVE],
        neutral=counts[Sentiment.NEUTRAL],
        negative=counts[Sentiment.NEGATIVE],
    )


def compute_categories(analyses: Iterable[SessionAnalysis]) -> list[CategoryBreakdown]:
    return [
        CategoryBreakdown(category=key, count=count, percentage=pct)
        for key, count, pct in _breakdown(a.category for a in analyses)
    ]


def compute_languages(analyses: Iterable[SessionAnalysis]) -> list[LanguageBreakdown]:
    return [
        LanguageBreakdown(language=key, count=count, percentage=pct)
        for key, count, pct in _breakdown(a.language for a in analyses)
    ]


def compute_devices(sessions: Iterable[Session]) -> list[DeviceBreakdown]:
    return [
        DeviceBreakdown(device_type=key, count=count, percentage=pct)
        for key, count, pct in _breakdown(s.device_type for s in sessions)
    ]


def compute_countries(sessions: Iterable[Session]) -> list[CountryBreakdown]:
    return [
        CountryBreakdown(country=key, count=count, percentage=pct)
        for key, count, pct in _breakdown(s.visitor_country for s in sessions)
    ]


def compute_engagement(analyses: Sequence[SessionAnalysis]) -> list[EngagementBreakdown]:
    """Counts per engagement level.

    Analyses without a level get no bucket of their own but still count in
    the denominator.
    """
    total = len(analyses)
    counts = Counter(a.engagement_level for a in analyses if a.engagement_level is not None)
    return [
        EngagementBreakdown(
            level=level, count=counts[level], percentage=percentage(counts[level], total)
        )
        for level in EngagementLevel
    ]


def compute_conversation_types(
    analyses: Sequence[SessionAnalysis],
) -> list[ConversationTypeBreakdown]:
    """Counts of casual and goal-driven conversations; other types are not bucketed."""
    total = len(analyses)
    counts = Counter(a.conversation_type for a in analyses)
    return [
        ConversationTypeBreakdown(
            type=kind,
            count=counts[kind.value],
            percentage=percentage(counts[kind.value], total),
        )
        for kind in ConversationType
    ]


# ==================== TIME SERIES ====================


def compute_time_series(sessions: Iterable[Session]) -> list[TimeSeriesDataPoint]:
    """Per-day session, message, token and cost totals, ascending by date."""
    by_date: dict[str, TimeSeriesDataPoint] = {}
    for session in sessions:
        date = _date_of(session.session_started_at)
        if date is None:
            continue
        point = by_date.get(date) or TimeSeriesDataPoint(date=date)
        by_date[date] = TimeSeriesDataPoint(
            date=date,
            sessions=point.sessions + 1,
            messages=point.messages + session.total_messages,
            tokens=point.tokens + session.total_tokens,
            cost=point.cost + session.total_cost_eur,
        )
    return [by_date[date] for date in sorted(by_date)]


def compute_sentiment_time_series(
    analyses: Iterable[SessionAnalysis],
) -> list[SentimentTimeSeriesDataPoint]:
    by_date: dict[str, Counter] = {}
    for analysis in analyses:
        date = _date_of(analysis.created_at)
        if date is None:
            continue
        counts = by_date.setdefault(date, Counter())
        if analysis.sentiment is not None:
            counts[analysis.sentiment] += 1
    return [
        SentimentTimeSeriesDataPoint(
            date=date,
            positive=by_date[date][Sentiment.POSITIVE],
            neutral=by_date[date][Sentiment.NEUTRAL],
            negative=by_date[date][Sentiment.NEGATIVE],
        )
        for date in sorted(by_date)
    ]


def compute_hourly(sessions: Iterable[Session]) -> list[HourlyBreakdown]:
    """Sessions per start hour, always all 24 hours.

    Percentages are shares of all sessions. A session whose start cannot be
    parsed lands in no bucket but still counts toward the total, so the
    percentages then sum to less than 100.
    """
    sessions = list(sessions)
    counts = Counter()
    for session in sessions:
        started = parse_timestamp(session.session_started_at)
        if started is not None:
            # Hour as encoded in the timestamp's own offset
            counts[started.hour] += 1
    total = len(sessions)
    return [
        HourlyBreakdown(hour=hour, count=counts[hour], percentage=percentage(counts[hour], total))
        for hour in range(24)
    ]


# ==================== QUESTIONS ====================


def compute_questions(analyses: Iterable[SessionAnalysis]) -> list[QuestionAnalytics]:
    """Frequency of every asked question.

    A question is answered when no analysis lists it as unanswered. Questions
    only ever listed as unanswered are kept with a frequency of 0.
    """
    asked = Counter()
    unanswered = Counter()
    for analysis in analyses:
        asked.update(analysis.questions)
        unanswered.update(analysis.unanswered_questions)
    for question in unanswered:
        asked.setdefault(question, 0)
    return [
        QuestionAnalytics(question=question, frequency=count, answered=unanswered[question] == 0)
        for question, count in _ranked(asked)
    ]


def compute_unanswered_questions(
    analyses: Iterable[SessionAnalysis],
) -> list[QuestionAnalytics]:
    unanswered = Counter()
    for analysis in analyses:
        unanswered.update(analysis.unanswered_questions)
    return [
        QuestionAnalytics(question=question, frequency=count, answered=False)
        for question, count in _ranked(unanswered)
    ]


# ==================== ANIMATIONS ====================


def compute_animation_stats(
    sessions: Iterable[Session], messages: Iterable[ChatMessage]
) -> AnimationStats:
    """Animation usage over the messages of the given sessions."""
    session_ids = {s.id for s in sessions}
    animations = Counter()
    easter_eggs = Counter()
    wait_sequences = Counter()
    sessions_with_easter_eggs = set()

    for message in messages:
        if message.session_id not in session_ids:
            continue
        if message.response_animation:
            animations[message.response_animation] += 1
        if message.has_easter_egg and message.easter_egg_animation:
            easter_eggs[message.easter_egg_animation] += 1
            sessions_with_easter_eggs.add(message.session_id)
        if message.wait_sequence:
            wait_sequences[message.wait_sequence] += 1

    return AnimationStats(
        total_triggers=sum(animations.values()),
        easter_eggs_triggered=sum(easter_eggs.values()),
        sessions_with_easter_eggs=len(sessions_with_easter_eggs),
        total_sessions=len(session_ids),
        top_animations=[
            AnimationCount(animation=name, count=count)
            for name, count in _ranked(animations)[:TOP_ANIMATIONS]
        ],
        top_easter_eggs=[
            AnimationCount(animation=name, count=count)
            for name, count in _ranked(easter_eggs)[:TOP_ANIMATIONS]
        ],
        # Alphabetical, unlike the frequency-ranked lists
        wait_sequences=[
            WaitSequenceCount(sequence=sequence, count=wait_sequences[sequence])
            for sequence in sorted(wait_sequences)
        ],
    )
