"""Side-by-side metrics for several assistants of one tenant."""

import asyncio
import math
from collections import Counter
from typing import Literal

from pydantic import Field

from .models import (
    AnalyticsResult,
    AnimationStats,
    CategoryBreakdown,
    ChatSessionFilters,
    CountryBreakdown,
    DateRange,
    DeviceBreakdown,
    LanguageBreakdown,
    OverviewMetrics,
    QuestionAnalytics,
    ResolutionStatus,
    SentimentBreakdown,
    SessionWithAnalysis,
    TimeSeriesDataPoint,
)
from .service import AnalyticsOperations


class AssistantMetrics(AnalyticsResult):
    """Every metric shown for one assistant in a comparison."""

    assistant_id: str
    overview: OverviewMetrics
    sentiment: SentimentBreakdown
    categories: list[CategoryBreakdown]
    questions: list[QuestionAnalytics]
    unanswered: list[QuestionAnalytics]
    countries: list[CountryBreakdown]
    languages: list[LanguageBreakdown]
    devices: list[DeviceBreakdown]
    animations: AnimationStats
    sessions: list[SessionWithAnalysis] = Field(default_factory=list, exclude=True)
    time_series: list[TimeSeriesDataPoint]


class AggregatedMetrics(AnalyticsResult):
    """Totals across assistants; averages are weighted by session count."""

    total_sessions: int = 0
    total_messages: int = 0
    total_tokens: int = 0
    total_cost_eur: float = 0.0
    avg_response_time_ms: float = 0.0
    avg_session_duration_seconds: float = 0.0
    avg_resolution_rate: float = 0.0
    avg_escalation_rate: float = 0.0
    # Shares in whole percent
    sentiment: SentimentBreakdown = Field(default_factory=SentimentBreakdown)


class AssistantCosts(AnalyticsResult):
    chat_cost: float
    analysis_cost: float
    total_cost: float
    cost_per_session: float


class ReturnRate(AnalyticsResult):
    new_users: int
    returning_users: int
    return_rate: float


class ResolutionCounts(AnalyticsResult):
    resolved: int
    partial: int
    unresolved: int
    escalated: int


class Handoffs(AnalyticsResult):
    url_handoffs: int
    email_handoffs: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


async def _assistant_metrics(
    ops: AnalyticsOperations, assistant_id: str, date_range: DateRange | None
) -> AssistantMetrics:
    aggregations = ops.aggregations
    (
        overview,
        sentiment,
        categories,
        questions,
        unanswered,
        countries,
        languages,
        devices,
        animations,
        sessions,
        time_series,
    ) = await asyncio.gather(
        aggregations.get_overview_by_assistant_id(assistant_id, date_range),
        aggregations.get_sentiment_by_assistant_id(assistant_id, date_range),
        aggregations.get_categories_by_assistant_id(assistant_id, date_range),
        aggregations.get_questions_by_assistant_id(assistant_id, date_range),
        aggregations.get_unanswered_questions_by_assistant_id(assistant_id, date_range),
        aggregations.get_countries_by_assistant_id(assistant_id, date_range),
        aggregations.get_languages_by_assistant_id(assistant_id, date_range),
        aggregations.get_devices_by_assistant_id(assistant_id, date_range),
        aggregations.get_animation_stats_by_assistant_id(assistant_id, date_range),
        ops.sessions.get_with_analysis_by_assistant_id(
            assistant_id, ChatSessionFilters(date_range=date_range)
        ),
        aggregations.get_time_series_by_assistant_id(assistant_id, date_range),
    )
    return AssistantMetrics(
        assistant_id=assistant_id,
        overview=overview,
        sentiment=sentiment,
        categories=categories,
        questions=questions,
        unanswered=unanswered,
        countries=countries,
        languages=languages,
        devices=devices,
        animations=animations,
        sessions=sessions,
        time_series=time_series,
    )


async def fetch_assistant_comparison(
    ops: AnalyticsOperations,
    assistant_ids: list[str],
    date_range: DateRange | None = None,
) -> list[AssistantMetrics]:
    """Fetch metrics for every assistant concurrently, in input order."""
    return list(
        await asyncio.gather(
            *(_assistant_metrics(ops, assistant_id, date_range) for assistant_id in assistant_ids)
        )
    )


def calculate_totals(assistants: list[AssistantMetrics]) -> AggregatedMetrics:
    if not assistants:
        return AggregatedMetrics()

    overviews = [a.overview for a in assistants]
    total_sessions = sum(o.total_sessions for o in overviews)

    def weighted(attr: str) -> float:
        if total_sessions == 0:
            return 0.0
        return sum(getattr(o, attr) * o.total_sessions for o in overviews) / total_sessions

    positive = sum(a.sentiment.positive for a in assistants)
    neutral = sum(a.sentiment.neutral for a in assistants)
    negative = sum(a.sentiment.negative for a in assistants)
    total_sentiment = positive + neutral + negative

    def share(count: int) -> int:
        return _round_half_up(count / total_sentiment * 100) if total_sentiment else 0

    return AggregatedMetrics(
        total_sessions=total_sessions,
        total_messages=sum(o.total_messages for o in overviews),
        total_tokens=sum(o.total_tokens for o in overviews),
        total_cost_eur=sum(o.total_cost_eur for o in overviews),
        avg_response_time_ms=weighted("average_response_time_ms"),
        avg_session_duration_seconds=weighted("average_session_duration_seconds"),
        avg_resolution_rate=weighted("resolution_rate"),
        avg_escalation_rate=weighted("escalation_rate"),
        sentiment=SentimentBreakdown(
            positive=share(positive), neutral=share(neutral), negative=share(negative)
        ),
    )


def calculate_assistant_costs(assistant: AssistantMetrics) -> AssistantCosts:
    """Chat and analysis spend; cost per session uses the overview's session count."""
    chat_cost = sum(s.total_cost_eur for s in assistant.sessions)
    analysis_cost = sum(
        s.analysis.analytics_total_cost_eur or 0.0
        for s in assistant.sessions
        if s.analysis is not None
    )
    total_cost = chat_cost + analysis_cost
    sessions = assistant.overview.total_sessions
    return AssistantCosts(
        chat_cost=chat_cost,
        analysis_cost=analysis_cost,
        total_cost=total_cost,
        cost_per_session=total_cost / sessions if sessions > 0 else 0.0,
    )


def calculate_return_rate(assistant: AssistantMetrics) -> ReturnRate:
    """Returning visitors load the assistant model from memory cache instead of the CDN."""
    new_users = sum(1 for s in assistant.sessions if s.glb_source == "cdn_fetch")
    returning = sum(1 for s in assistant.sessions if s.glb_source == "memory_cache")
    total = new_users + returning
    return ReturnRate(
        new_users=new_users,
        returning_users=returning,
        return_rate=returning / total * 100 if total > 0 else 0.0,
    )


def calculate_resolution_breakdown(assistant: AssistantMetrics) -> ResolutionCounts:
    statuses = Counter(
        s.analysis.resolution_status for s in assistant.sessions if s.analysis is not None
    )
    return ResolutionCounts(
        resolved=statuses[ResolutionStatus.RESOLVED],
        partial=statuses[ResolutionStatus.PARTIAL],
        unresolved=statuses[ResolutionStatus.UNRESOLVED],
        escalated=sum(1 for s in assistant.sessions if s.analysis and s.analysis.escalated),
    )


def calculate_handoffs(assistant: AssistantMetrics) -> Handoffs:
    analyses = [s.analysis for s in assistant.sessions if s.analysis is not None]
    return Handoffs(
        url_handoffs=sum(1 for a in analyses if a.forwarded_url),
        email_handoffs=sum(1 for a in analyses if a.forwarded_email),
    )


def get_top_browser(assistant: AssistantMetrics) -> str:
    counts = Counter(s.browser_name or "Unknown" for s in assistant.sessions)
    if not counts:
        return "-"
    return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]


def build_multi_assistant_time_series(
    assistants: list[AssistantMetrics],
    metric: Literal["sessions", "cost", "tokens", "messages"],
) -> list[dict[str, str | float]]:
    """One row per date with a column per assistant, zero where it had no activity."""
    dates = sorted({point.date for a in assistants for point in a.time_series})
    by_assistant = {
        a.assistant_id: {point.date: getattr(point, metric) for point in a.time_series}
        for a in assistants
    }
    return [
        {"date": date, **{aid: values.get(date, 0) for aid, values in by_assistant.items()}}
        for date in dates
    ]
