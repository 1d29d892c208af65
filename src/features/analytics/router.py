"""Analytics API endpoints."""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.core.rate_limiter import analytics_rate_limit, limiter

from .comparison import (
    AggregatedMetrics,
    AssistantCosts,
    AssistantMetrics,
    Handoffs,
    ResolutionCounts,
    ReturnRate,
    build_multi_assistant_time_series,
    calculate_assistant_costs,
    calculate_handoffs,
    calculate_resolution_breakdown,
    calculate_return_rate,
    calculate_totals,
    fetch_assistant_comparison,
    get_top_browser,
)
from .models import (
    AnalyticsDashboard,
    AnalyticsResult,
    ChatSessionFilters,
    DateRange,
    OverviewMetrics,
    QuestionAnalytics,
    ResolutionStatus,
    Sentiment,
    SessionWithAnalysis,
)
from .selector import get_analytics_for_assistant, get_analytics_for_tenant

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class ComparisonResponse(AnalyticsResult):
    """Per-assistant metrics with tenant-wide totals.

    The per-assistant mappings are keyed by assistant id. Each time series
    row holds a date plus one column per assistant.
    """

    assistants: list[AssistantMetrics]
    totals: AggregatedMetrics
    costs: dict[str, AssistantCosts]
    return_rates: dict[str, ReturnRate]
    resolution: dict[str, ResolutionCounts]
    handoffs: dict[str, Handoffs]
    top_browsers: dict[str, str]
    time_series: list[dict[str, str | float]]


def get_date_range(
    start: datetime | None = Query(default=None, description="Inclusive ISO start"),
    end: datetime | None = Query(default=None, description="Exclusive ISO end"),
) -> DateRange:
    """Parse the shared start/end query parameters; naive values are UTC."""
    date_range = DateRange(start=start, end=end)
    if start is not None and end is not None and date_range.start > date_range.end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return date_range


def get_session_filters(
    date_range: DateRange = Depends(get_date_range),
    sentiment: Sentiment | None = None,
    category: str | None = None,
    resolution: ResolutionStatus | None = None,
    escalated: bool | None = None,
    language: str | None = None,
    device_type: str | None = None,
    country: str | None = None,
) -> ChatSessionFilters:
    return ChatSessionFilters(
        date_range=date_range,
        sentiment=sentiment,
        category=category,
        resolution=resolution,
        escalated=escalated,
        language=language,
        device_type=device_type,
        country=country,
    )


# ==================== TENANT ====================


@router.get("/tenants/{tenant_id}/overview", response_model=OverviewMetrics)
@limiter.limit(analytics_rate_limit)
async def get_tenant_overview(
    request: Request,
    tenant_id: str,
    date_range: DateRange = Depends(get_date_range),
):
    """Headline KPIs for every assistant of a tenant."""
    ops = get_analytics_for_tenant(tenant_id)
    return await ops.aggregations.get_overview_by_tenant_id(tenant_id, date_range)


@router.get("/tenants/{tenant_id}/sessions", response_model=list[SessionWithAnalysis])
@limiter.limit(analytics_rate_limit)
async def list_tenant_sessions(
    request: Request,
    tenant_id: str,
    filters: ChatSessionFilters = Depends(get_session_filters),
    limit: int = Query(default=100, ge=1, le=1000),
):
    """
    List a tenant's sessions with their analyses.

    Most recent first, narrowed by the optional equality filters.
    """
    ops = get_analytics_for_tenant(tenant_id)
    sessions = await ops.sessions.get_with_analysis_by_tenant_id(tenant_id, filters)
    return sessions[:limit]


@router.get("/tenants/{tenant_id}/dashboard", response_model=AnalyticsDashboard)
@limiter.limit(analytics_rate_limit)
async def get_tenant_dashboard(
    request: Request,
    tenant_id: str,
    date_range: DateRange = Depends(get_date_range),
):
    ops = get_analytics_for_tenant(tenant_id)
    return await ops.aggregations.get_dashboard_by_tenant_id(tenant_id, date_range)


@router.get("/tenants/{tenant_id}/comparison", response_model=ComparisonResponse)
@limiter.limit(analytics_rate_limit)
async def compare_tenant_assistants(
    request: Request,
    tenant_id: str,
    assistant_ids: list[str] | None = Query(default=None),
    metric: Literal["sessions", "cost", "tokens", "messages"] = "sessions",
    date_range: DateRange = Depends(get_date_range),
):
    """
    Compare assistants of a tenant side by side.

    Without explicit assistant_ids, every assistant with sessions in the
    range is compared. ``metric`` picks the daily value plotted per assistant.
    """
    ops = get_analytics_for_tenant(tenant_id)
    if not assistant_ids:
        sessions = await ops.sessions.get_by_tenant_id(
            tenant_id, ChatSessionFilters(date_range=date_range)
        )
        assistant_ids = sorted({s.assistant_id for s in sessions if s.assistant_id})

    assistants = await fetch_assistant_comparison(ops, assistant_ids, date_range)
    return ComparisonResponse(
        assistants=assistants,
        totals=calculate_totals(assistants),
        costs={a.assistant_id: calculate_assistant_costs(a) for a in assistants},
        return_rates={a.assistant_id: calculate_return_rate(a) for a in assistants},
        resolution={a.assistant_id: calculate_resolution_breakdown(a) for a in assistants},
        handoffs={a.assistant_id: calculate_handoffs(a) for a in assistants},
        top_browsers={a.assistant_id: get_top_browser(a) for a in assistants},
        time_series=build_multi_assistant_time_series(assistants, metric),
    )


# ==================== ASSISTANT ====================


@router.get("/assistants/{assistant_id}/overview", response_model=OverviewMetrics)
@limiter.limit(analytics_rate_limit)
async def get_assistant_overview(
    request: Request,
    assistant_id: str,
    tenant_id: str | None = None,
    date_range: DateRange = Depends(get_date_range),
):
    ops = await get_analytics_for_assistant(assistant_id, tenant_id)
    return await ops.aggregations.get_overview_by_assistant_id(assistant_id, date_range)


@router.get("/assistants/{assistant_id}/sessions", response_model=list[SessionWithAnalysis])
@limiter.limit(analytics_rate_limit)
async def list_assistant_sessions(
    request: Request,
    assistant_id: str,
    tenant_id: str | None = None,
    filters: ChatSessionFilters = Depends(get_session_filters),
    limit: int = Query(default=100, ge=1, le=1000),
):
    ops = await get_analytics_for_assistant(assistant_id, tenant_id)
    sessions = await ops.sessions.get_with_analysis_by_assistant_id(assistant_id, filters)
    return sessions[:limit]


@router.get("/assistants/{assistant_id}/dashboard", response_model=AnalyticsDashboard)
@limiter.limit(analytics_rate_limit)
async def get_assistant_dashboard(
    request: Request,
    assistant_id: str,
    tenant_id: str | None = None,
    date_range: DateRange = Depends(get_date_range),
):
    """Every aggregate for one assistant."""
    ops = await get_analytics_for_assistant(assistant_id, tenant_id)
    return await ops.aggregations.get_dashboard_by_assistant_id(assistant_id, date_range)


@router.get("/assistants/{assistant_id}/questions", response_model=list[QuestionAnalytics])
@limiter.limit(analytics_rate_limit)
async def get_assistant_questions(
    request: Request,
    assistant_id: str,
    tenant_id: str | None = None,
    date_range: DateRange = Depends(get_date_range),
    limit: int = Query(default=50, ge=1, le=500),
):
    """Most frequently asked questions, with whether they were answered."""
    ops = await get_analytics_for_assistant(assistant_id, tenant_id)
    questions = await ops.aggregations.get_questions_by_assistant_id(assistant_id, date_range)
    return questions[:limit]


@router.get(
    "/assistants/{assistant_id}/unanswered-questions",
    response_model=list[QuestionAnalytics],
)
@limiter.limit(analytics_rate_limit)
async def get_assistant_unanswered_questions(
    request: Request,
    assistant_id: str,
    tenant_id: str | None = None,
    date_range: DateRange = Depends(get_date_range),
    limit: int = Query(default=50, ge=1, le=500),
):
    ops = await get_analytics_for_assistant(assistant_id, tenant_id)
    questions = await ops.aggregations.get_unanswered_questions_by_assistant_id(
        assistant_id, date_range
    )
    return questions[:limit]
