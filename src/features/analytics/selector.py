"""Data source selection: which backing store serves a tenant."""

import logging
from collections.abc import Callable
from functools import lru_cache

from src.config import StoreScope, is_demo_tenant, is_live_store_configured
from src.core.supabase import get_supabase_client

from .fixture_source import (
    FixtureAnalysisRepository,
    FixtureDataset,
    FixtureMessageRepository,
    FixtureSessionRepository,
    get_fixture_dataset,
)
from .live_source import (
    LiveAnalysisRepository,
    LiveMessageRepository,
    LiveSessionRepository,
    LiveStore,
)
from .service import AnalyticsAggregations, AnalyticsOperations, DataSource

logger = logging.getLogger(__name__)


def select_data_source(
    tenant_id: str | None,
    *,
    is_demo: Callable[[str | None], bool] = is_demo_tenant,
    is_configured: Callable[[StoreScope], bool] = is_live_store_configured,
) -> DataSource:
    """Pick the backing store for a tenant.

    Demo tenants use the demo live store when it is configured, else the
    fixtures. Real tenants use the production live store, then the demo live
    store, then the fixtures.
    """
    if is_demo(tenant_id):
        if is_configured(StoreScope.DEMO):
            return DataSource.LIVE_DEMO
        return DataSource.FIXTURE
    if is_configured(StoreScope.PROD):
        return DataSource.LIVE_PROD
    if is_configured(StoreScope.DEMO):
        return DataSource.LIVE_DEMO
    return DataSource.FIXTURE


def build_fixture_operations(dataset: FixtureDataset) -> AnalyticsOperations:
    sessions = FixtureSessionRepository(dataset)
    analyses = FixtureAnalysisRepository(dataset)
    return AnalyticsOperations(
        source=DataSource.FIXTURE,
        sessions=sessions,
        analyses=analyses,
        aggregations=AnalyticsAggregations(sessions, analyses, FixtureMessageRepository(dataset)),
    )


def build_live_operations(
    store: LiveStore,
    source: DataSource = DataSource.LIVE_PROD,
    exclude_dev_sessions: bool | None = None,
) -> AnalyticsOperations:
    sessions = LiveSessionRepository(store, exclude_dev_sessions)
    analyses = LiveAnalysisRepository(store, exclude_dev_sessions)
    return AnalyticsOperations(
        source=source,
        sessions=sessions,
        analyses=analyses,
        aggregations=AnalyticsAggregations(sessions, analyses, LiveMessageRepository(store)),
    )


@lru_cache
def get_operations(source: DataSource) -> AnalyticsOperations:
    """Get the shared facade for a data source."""
    if source == DataSource.FIXTURE:
        return build_fixture_operations(get_fixture_dataset())
    scope = StoreScope.DEMO if source == DataSource.LIVE_DEMO else StoreScope.PROD
    return build_live_operations(get_supabase_client(scope), source)


def get_analytics_for_tenant(tenant_id: str | None) -> AnalyticsOperations:
    """Resolve the analytics facade for a tenant."""
    source = select_data_source(tenant_id)
    logger.info(f"Tenant {tenant_id} uses {source.value} analytics")
    return get_operations(source)


async def get_analytics_for_assistant(
    assistant_id: str, tenant_id: str | None = None
) -> AnalyticsOperations:
    """Resolve the analytics facade for an assistant whose tenant may be unknown.

    Without a tenant, the fixture dataset is checked for the assistant; a
    match owned by a demo tenant uses the fixtures, anything else follows the
    policy for a real tenant.
    """
    if tenant_id is not None:
        return get_analytics_for_tenant(tenant_id)

    owner = get_fixture_dataset().tenant_for_assistant(assistant_id)
    if owner is not None and is_demo_tenant(owner):
        logger.info(f"Assistant {assistant_id} found in fixtures (tenant {owner})")
        return get_operations(DataSource.FIXTURE)
    return get_analytics_for_tenant(None)
