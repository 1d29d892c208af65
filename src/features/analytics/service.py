"""Analytics operations facade binding one data source to the aggregation engine."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from . import aggregations as agg
from .models import (
    AnalyticsDashboard,
    AnimationStats,
    CategoryBreakdown,
    ChatMessage,
    ChatSessionFilters,
    ConversationTypeBreakdown,
    CountryBreakdown,
    DateRange,
    DeviceBreakdown,
    EngagementBreakdown,
    HourlyBreakdown,
    LanguageBreakdown,
    OverviewMetrics,
    QuestionAnalytics,
    SentimentBreakdown,
    SentimentTimeSeriesDataPoint,
    SessionAnalysis,
    SessionWithAnalysis,
    TimeSeriesDataPoint,
)
from .repositories import AnalysisRepository, MessageRepository, SessionRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")


class DataSource(str, Enum):
    """Backing store an operations facade is bound to."""

    FIXTURE = "fixture"
    LIVE_DEMO = "live_demo"
    LIVE_PROD = "live_prod"


class Scope(str, Enum):
    ASSISTANT = "assistant"
    TENANT = "tenant"


class AnalyticsAggregations:
    """Aggregates for one assistant or tenant over an optional date range.

    Every call re-reads the repositories; nothing is cached here. A
    repository that raises ``NotImplementedError`` yields the empty shape
    of the aggregate plus a warning. Any other error propagates.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        analyses: AnalysisRepository,
        messages: MessageRepository,
    ):
        self.sessions = sessions
        self.analyses = analyses
        self.messages = messages

    # ---------- data access ----------

    async def _session_rows(
        self, scope: Scope, owner_id: str, date_range: DateRange | None
    ) -> list[SessionWithAnalysis]:
        filters = ChatSessionFilters(date_range=date_range)
        if scope == Scope.ASSISTANT:
            return await self.sessions.get_with_analysis_by_assistant_id(owner_id, filters)
        return await self.sessions.get_with_analysis_by_tenant_id(owner_id, filters)

    async def _analysis_rows(
        self, scope: Scope, owner_id: str, date_range: DateRange | None
    ) -> list[SessionAnalysis]:
        filters = ChatSessionFilters(date_range=date_range)
        if scope == Scope.ASSISTANT:
            return await self.analyses.get_by_assistant_id(owner_id, filters)
        return await self.analyses.get_by_tenant_id(owner_id, filters)

    async def _guarded(self, name: str, fetch, compute: Callable[..., R], *empty: Any) -> R:
        try:
            inputs = await fetch()
        except NotImplementedError:
            logger.warning(
                f"Aggregate '{name}' is not supported by this data source, returning empty result"
            )
            return compute(*empty)
        return compute(*inputs)

    async def _from_sessions(self, name, scope, owner_id, date_range, compute):
        async def fetch():
            return (await self._session_rows(scope, owner_id, date_range),)

        return await self._guarded(name, fetch, compute, [])

    async def _from_analyses(self, name, scope, owner_id, date_range, compute):
        async def fetch():
            return (await self._analysis_rows(scope, owner_id, date_range),)

        return await self._guarded(name, fetch, compute, [])

    async def _overview(self, scope, owner_id, date_range) -> OverviewMetrics:
        async def fetch():
            sessions = await self._session_rows(scope, owner_id, date_range)
            return sessions, [s.analysis for s in sessions if s.analysis is not None]

        return await self._guarded("overview", fetch, agg.compute_overview, [], [])

    async def _animation_stats(self, scope, owner_id, date_range) -> AnimationStats:
        async def fetch():
            sessions = await self._session_rows(scope, owner_id, date_range)
            messages: list[ChatMessage] = []
            if sessions:
                messages = await self.messages.get_by_session_ids([s.id for s in sessions])
            return sessions, messages

        return await self._guarded("animation_stats", fetch, agg.compute_animation_stats, [], [])

    async def _dashboard(self, scope, owner_id, date_range) -> AnalyticsDashboard:
        (
            overview,
            sentiment,
            categories,
            languages,
            devices,
            countries,
            time_series,
            sentiment_time_series,
            hourly,
            questions,
            unanswered_questions,
            engagement,
            conversation_types,
            animations,
        ) = await asyncio.gather(
            self._overview(scope, owner_id, date_range),
            self._from_analyses("sentiment", scope, owner_id, date_range, agg.compute_sentiment),
            self._from_analyses("categories", scope, owner_id, date_range, agg.compute_categories),
            self._from_analyses("languages", scope, owner_id, date_range, agg.compute_languages),
            self._from_sessions("devices", scope, owner_id, date_range, agg.compute_devices),
            self._from_sessions("countries", scope, owner_id, date_range, agg.compute_countries),
            self._from_sessions("time_series", scope, owner_id, date_range, agg.compute_time_series),
            self._from_analyses(
                "sentiment_time_series", scope, owner_id, date_range, agg.compute_sentiment_time_series
            ),
            self._from_sessions("hourly_breakdown", scope, owner_id, date_range, agg.compute_hourly),
            self._from_analyses("questions", scope, owner_id, date_range, agg.compute_questions),
            self._from_analyses(
                "unanswered_questions", scope, owner_id, date_range, agg.compute_unanswered_questions
            ),
            self._from_analyses("engagement", scope, owner_id, date_range, agg.compute_engagement),
            self._from_analyses(
                "conversation_types", scope, owner_id, date_range, agg.compute_conversation_types
            ),
            self._animation_stats(scope, owner_id, date_range),
        )
        return AnalyticsDashboard(
            overview=overview,
            sentiment=sentiment,
            categories=categories,
            languages=languages,
            devices=devices,
            countries=countries,
            time_series=time_series,
            sentiment_time_series=sentiment_time_series,
            hourly=hourly,
            questions=questions,
            unanswered_questions=unanswered_questions,
            engagement=engagement,
            conversation_types=conversation_types,
            animations=animations,
        )

    # ---------- by assistant ----------

    async def get_overview_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> OverviewMetrics:
        return await self._overview(Scope.ASSISTANT, assistant_id, date_range)

    async def get_sentiment_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> SentimentBreakdown:
        return await self._from_analyses(
            "sentiment", Scope.ASSISTANT, assistant_id, date_range, agg.compute_sentiment
        )

    async def get_categories_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[CategoryBreakdown]:
        return await self._from_analyses(
            "categories", Scope.ASSISTANT, assistant_id, date_range, agg.compute_categories
        )

    async def get_languages_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[LanguageBreakdown]:
        return await self._from_analyses(
            "languages", Scope.ASSISTANT, assistant_id, date_range, agg.compute_languages
        )

    async def get_devices_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[DeviceBreakdown]:
        return await self._from_sessions(
            "devices", Scope.ASSISTANT, assistant_id, date_range, agg.compute_devices
        )

    async def get_countries_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[CountryBreakdown]:
        return await self._from_sessions(
            "countries", Scope.ASSISTANT, assistant_id, date_range, agg.compute_countries
        )

    async def get_time_series_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[TimeSeriesDataPoint]:
        return await self._from_sessions(
            "time_series", Scope.ASSISTANT, assistant_id, date_range, agg.compute_time_series
        )

    async def get_sentiment_time_series_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[SentimentTimeSeriesDataPoint]:
        return await self._from_analyses(
            "sentiment_time_series",
            Scope.ASSISTANT,
            assistant_id,
            date_range,
            agg.compute_sentiment_time_series,
        )

    async def get_hourly_breakdown_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[HourlyBreakdown]:
        return await self._from_sessions(
            "hourly_breakdown", Scope.ASSISTANT, assistant_id, date_range, agg.compute_hourly
        )

    async def get_questions_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[QuestionAnalytics]:
        return await self._from_analyses(
            "questions", Scope.ASSISTANT, assistant_id, date_range, agg.compute_questions
        )

    async def get_unanswered_questions_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[QuestionAnalytics]:
        return await self._from_analyses(
            "unanswered_questions",
            Scope.ASSISTANT,
            assistant_id,
            date_range,
            agg.compute_unanswered_questions,
        )

    async def get_engagement_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[EngagementBreakdown]:
        return await self._from_analyses(
            "engagement", Scope.ASSISTANT, assistant_id, date_range, agg.compute_engagement
        )

    async def get_conversation_types_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> list[ConversationTypeBreakdown]:
        return await self._from_analyses(
            "conversation_types",
            Scope.ASSISTANT,
            assistant_id,
            date_range,
            agg.compute_conversation_types,
        )

    async def get_animation_stats_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> AnimationStats:
        return await self._animation_stats(Scope.ASSISTANT, assistant_id, date_range)

    async def get_dashboard_by_assistant_id(
        self, assistant_id: str, date_range: DateRange | None = None
    ) -> AnalyticsDashboard:
        """Every aggregate for an assistant, fetched concurrently."""
        return await self._dashboard(Scope.ASSISTANT, assistant_id, date_range)

    # ---------- by tenant ----------

    async def get_overview_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> OverviewMetrics:
        return await self._overview(Scope.TENANT, tenant_id, date_range)

    async def get_sentiment_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> SentimentBreakdown:
        return await self._from_analyses(
            "sentiment", Scope.TENANT, tenant_id, date_range, agg.compute_sentiment
        )

    async def get_categories_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[CategoryBreakdown]:
        return await self._from_analyses(
            "categories", Scope.TENANT, tenant_id, date_range, agg.compute_categories
        )

    async def get_languages_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[LanguageBreakdown]:
        return await self._from_analyses(
            "languages", Scope.TENANT, tenant_id, date_range, agg.compute_languages
        )

    async def get_devices_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[DeviceBreakdown]:
        return await self._from_sessions(
            "devices", Scope.TENANT, tenant_id, date_range, agg.compute_devices
        )

    async def get_countries_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[CountryBreakdown]:
        return await self._from_sessions(
            "countries", Scope.TENANT, tenant_id, date_range, agg.compute_countries
        )

    async def get_time_series_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[TimeSeriesDataPoint]:
        return await self._from_sessions(
            "time_series", Scope.TENANT, tenant_id, date_range, agg.compute_time_series
        )

    async def get_sentiment_time_series_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[SentimentTimeSeriesDataPoint]:
        return await self._from_analyses(
            "sentiment_time_series",
            Scope.TENANT,
            tenant_id,
            date_range,
            agg.compute_sentiment_time_series,
        )

    async def get_hourly_breakdown_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[HourlyBreakdown]:
        return await self._from_sessions(
            "hourly_breakdown", Scope.TENANT, tenant_id, date_range, agg.compute_hourly
        )

    async def get_questions_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[QuestionAnalytics]:
        return await self._from_analyses(
            "questions", Scope.TENANT, tenant_id, date_range, agg.compute_questions
        )

    async def get_unanswered_questions_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[QuestionAnalytics]:
        return await self._from_analyses(
            "unanswered_questions",
            Scope.TENANT,
            tenant_id,
            date_range,
            agg.compute_unanswered_questions,
        )

    async def get_engagement_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[EngagementBreakdown]:
        return await self._from_analyses(
            "engagement", Scope.TENANT, tenant_id, date_range, agg.compute_engagement
        )

    async def get_conversation_types_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> list[ConversationTypeBreakdown]:
        return await self._from_analyses(
            "conversation_types",
            Scope.TENANT,
            tenant_id,
            date_range,
            agg.compute_conversation_types,
        )

    async def get_animation_stats_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> AnimationStats:
        return await self._animation_stats(Scope.TENANT, tenant_id, date_range)

    async def get_dashboard_by_tenant_id(
        self, tenant_id: str, date_range: DateRange | None = None
    ) -> AnalyticsDashboard:
        """Every aggregate for a tenant, fetched concurrently."""
        return await self._dashboard(Scope.TENANT, tenant_id, date_range)


@dataclass(frozen=True)
class AnalyticsOperations:
    """The one object callers use: repositories plus aggregates for a data source."""

    source: DataSource
    sessions: SessionRepository
    analyses: AnalysisRepository
    aggregations: AnalyticsAggregations
