"""Analytics data models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SessionStatus(str, Enum):
    """Lifecycle status of a chat session."""

    ACTIVE = "active"
    ENDED = "ended"
    TIMEOUT = "timeout"
    ERROR = "error"


class Sentiment(str, Enum):
    """Overall sentiment of an analyzed session."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ResolutionStatus(str, Enum):
    """Whether the visitor's issue was resolved."""

    RESOLVED = "resolved"
    PARTIAL = "partial"
    UNRESOLVED = "unresolved"


class EngagementLevel(str, Enum):
    """Visitor engagement level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConversationType(str, Enum):
    """Conversation types counted by the conversation-type breakdown."""

    CASUAL = "casual"
    GOAL_DRIVEN = "goal_driven"


class MessageAuthor(str, Enum):
    """Author of a chat message."""

    USER = "user"
    BOT = "bot"


# ==================== CANONICAL RECORDS ====================


class TranscriptEntry(BaseModel):
    """Single turn of a stored session transcript."""

    model_config = ConfigDict(frozen=True)

    author: str
    message: str
    timestamp: str | None = None
    easter: str | None = None


class Session(BaseModel):
    """Canonical chat session, identical for every backing store."""

    model_config = ConfigDict(frozen=True)

    id: str
    assistant_id: str | None = None
    tenant_id: str | None = None
    domain: str | None = None
    user_id: str | None = None

    # Timing
    session_started_at: str | None = None
    session_ended_at: str | None = None
    first_message_at: str | None = None
    last_message_at: str | None = None
    session_duration_seconds: int | None = None

    # Visitor network / geo / device
    # Raw address feeds dev-session checks only and is never serialized
    ip_address: str | None = Field(default=None, exclude=True)
    user_agent: str | None = None
    visitor_ip_hash: str | None = None
    visitor_country: str | None = None
    visitor_city: str | None = None
    device_type: str | None = None
    browser_name: str | None = None
    browser_version: str | None = None
    os_name: str | None = None
    os_version: str | None = None
    is_mobile: bool = False
    widget_version: str | None = None

    # Attribution
    referrer_url: str | None = None
    referrer_domain: str | None = None
    landing_page_url: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None

    # Counters
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_cost_usd: float | None = None
    total_cost_eur: float = 0.0
    average_response_time_ms: float | None = None

    # Lifecycle
    status: SessionStatus = SessionStatus.ACTIVE
    end_reason: str | None = None
    easter_eggs_triggered: int = 0
    is_dev: bool = False

    # Asset-load telemetry
    glb_source: str | None = None
    glb_transfer_size: int | None = None

    full_transcript: tuple[TranscriptEntry, ...] | None = None
    created_at: str | None = None
    updated_at: str | None = None


class SessionAnalysis(BaseModel):
    """Offline analysis of one session (zero or one per session)."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    assistant_id: str | None = None
    language: str | None = None
    sentiment: Sentiment | None = None
    category: str = "Unknown"
    resolution_status: ResolutionStatus | None = None
    escalated: bool = False
    forwarded_email: bool = False
    forwarded_url: bool = False
    url_links: tuple[str, ...] = ()
    email_links: tuple[str, ...] = ()
    questions: tuple[str, ...] = ()
    unanswered_questions: tuple[str, ...] = ()
    summary: str | None = None
    session_outcome: str | None = None
    engagement_level: EngagementLevel | None = None
    conversation_type: str | None = None

    # Analysis-stage usage, separate from chat-stage counters
    analytics_prompt_tokens: int | None = None
    analytics_completion_tokens: int | None = None
    analytics_total_tokens: int | None = None
    analytics_total_cost_usd: float | None = None
    analytics_total_cost_eur: float | None = None
    analytics_model_used: str | None = None

    created_at: str | None = None
    updated_at: str | None = None

    @property
    def orphan_unanswered_questions(self) -> list[str]:
        """Unanswered questions that never appear in the asked questions."""
        asked = set(self.questions)
        return [q for q in self.unanswered_questions if q not in asked]


class ChatMessage(BaseModel):
    """Single transcript turn, used for animation statistics."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    session_id: str
    assistant_id: str | None = None
    author: MessageAuthor | None = None
    message: str = ""
    timestamp: str | None = None
    response_time_ms: float | None = None
    response_animation: str | None = None
    easter_egg_animation: str | None = None
    has_easter_egg: bool = False
    wait_sequence: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    model_used: str | None = None
    cost_usd: float | None = None
    cost_eur: float | None = None
    created_at: str | None = None


class SessionWithAnalysis(Session):
    """Session left-joined with its analysis."""

    analysis: SessionAnalysis | None = None


# ==================== QUERY INPUTS ====================


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DateRange(BaseModel):
    """Half-open [start, end) instant range; a missing bound is unbounded."""

    model_config = ConfigDict(frozen=True)

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def contains(self, moment: datetime) -> bool:
        moment = _as_utc(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


class ChatSessionFilters(BaseModel):
    """Optional filters narrowing session and analysis queries."""

    model_config = ConfigDict(frozen=True)

    date_range: DateRange | None = None
    sentiment: Sentiment | None = None
    category: str | None = None
    resolution: ResolutionStatus | None = None
    escalated: bool | None = None
    language: str | None = None
    device_type: str | None = None
    country: str | None = None

    @property
    def has_analysis_filters(self) -> bool:
        return any(
            value is not None
            for value in (
                self.sentiment,
                self.category,
                self.resolution,
                self.escalated,
                self.language,
            )
        )

    @property
    def has_session_filters(self) -> bool:
        return self.device_type is not None or self.country is not None


# ==================== AGGREGATE RESULTS ====================


class AnalyticsResult(BaseModel):
    """Base for aggregate shapes, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OverviewMetrics(AnalyticsResult):
    """Headline KPIs over a set of sessions."""

    total_sessions: int = 0
    total_messages: int = 0
    total_tokens: int = 0
    total_cost_eur: float = 0.0
    average_response_time_ms: float = 0.0
    average_session_duration_seconds: float = 0.0
    resolution_rate: float = 0.0
    escalation_rate: float = 0.0


class SentimentBreakdown(AnalyticsResult):
    """Counts of analyses per sentiment."""

    positive: int = 0
    neutral: int = 0
    negative: int = 0


class CategoryBreakdown(AnalyticsResult):
    category: str
    count: int
    percentage: float


class LanguageBreakdown(AnalyticsResult):
    language: str
    count: int
    percentage: float


class DeviceBreakdown(AnalyticsResult):
    device_type: str
    count: int
    percentage: float


class CountryBreakdown(AnalyticsResult):
    country: str
    count: int
    percentage: float


class TimeSeriesDataPoint(AnalyticsResult):
    """Per-day totals of session activity."""

    date: str
    sessions: int = 0
    messages: int = 0
    tokens: int = 0
    cost: float = 0.0


class SentimentTimeSeriesDataPoint(AnalyticsResult):
    """Per-day sentiment counts."""

    date: str
    positive: int = 0
    neutral: int = 0
    negative: int = 0


class HourlyBreakdown(AnalyticsResult):
    hour: int
    count: int
    percentage: float


class QuestionAnalytics(AnalyticsResult):
    question: str
    frequency: int
    answered: bool


class EngagementBreakdown(AnalyticsResult):
    level: EngagementLevel
    count: int
    percentage: float


class ConversationTypeBreakdown(AnalyticsResult):
    type: ConversationType
    count: int
    percentage: float


class AnimationCount(AnalyticsResult):
    animation: str
    count: int


class WaitSequenceCount(AnalyticsResult):
    sequence: str
    count: int


class AnimationStats(AnalyticsResult):
    """Response-animation and easter-egg usage."""

    total_triggers: int = 0
    easter_eggs_triggered: int = 0
    sessions_with_easter_eggs: int = 0
    total_sessions: int = 0
    top_animations: list[AnimationCount] = Field(default_factory=list)
    top_easter_eggs: list[AnimationCount] = Field(default_factory=list)
    wait_sequences: list[WaitSequenceCount] = Field(default_factory=list)


class AnalyticsDashboard(AnalyticsResult):
    """Every aggregate for one scope and date range."""

    overview: OverviewMetrics
    sentiment: SentimentBreakdown
    categories: list[CategoryBreakdown]
    languages: list[LanguageBreakdown]
    devices: list[DeviceBreakdown]
    countries: list[CountryBreakdown]
    time_series: list[TimeSeriesDataPoint]
    sentiment_time_series: list[SentimentTimeSeriesDataPoint]
    hourly: list[HourlyBreakdown]
    questions: list[QuestionAnalytics]
    unanswered_questions: list[QuestionAnalytics]
    engagement: list[EngagementBreakdown]
    conversation_types: list[ConversationTypeBreakdown]
    animations: AnimationStats
