"""Chat analytics aggregation module."""

from .models import ChatSessionFilters, DateRange
from .selector import (
    get_analytics_for_assistant,
    get_analytics_for_tenant,
    select_data_source,
)
from .service import AnalyticsAggregations, AnalyticsOperations, DataSource

__all__ = [
    "ChatSessionFilters",
    "DateRange",
    "get_analytics_for_assistant",
    "get_analytics_for_tenant",
    "select_data_source",
    "AnalyticsAggregations",
    "AnalyticsOperations",
    "DataSource",
]
