"""Repositories backed by the embedded fixture dataset."""

import logging
import threading

from src.config import get_settings
from src.core.fixtures import FixtureStore, get_fixture_store

from .filters import (
    analyses_most_recent_first,
    exclude_dev_session_rows,
    filter_analyses,
    filter_sessions,
    is_dev_session_row,
    sessions_most_recent_first,
)
from .mappers import FIXTURE_SCHEMA, map_analysis, map_message, map_session
from .models import (
    ChatMessage,
    ChatSessionFilters,
    Session,
    SessionAnalysis,
    SessionWithAnalysis,
)
from .repositories import (
    AnalysisRepository,
    MessageRepository,
    SessionRepository,
    join_analyses,
)

logger = logging.getLogger(__name__)


class FixtureDataset:
    """Canonical records mapped from a fixture store, built once on first use."""

    def __init__(self, store: FixtureStore, exclude_dev_sessions: bool = True):
        self.store = store
        self.exclude_dev_sessions = exclude_dev_sessions
        self._lock = threading.Lock()
        self._sessions: tuple[Session, ...] | None = None
        self._analyses: tuple[SessionAnalysis, ...] | None = None
        self._messages: tuple[ChatMessage, ...] | None = None
        self._session_by_id: dict[str, Session] = {}
        self._analysis_by_session: dict[str, SessionAnalysis] = {}

    def _build(self) -> None:
        with self._lock:
            if self._sessions is not None:
                return
            rows = self.store.session_rows()
            dev_ids: set[str] = set()
            if self.exclude_dev_sessions:
                id_column = FIXTURE_SCHEMA.session_column("id")
                dev_ids = {
                    str(row.get(id_column))
                    for row in rows
                    if is_dev_session_row(row, FIXTURE_SCHEMA)
                }
                if dev_ids:
                    logger.info(f"Excluded {len(dev_ids)} dev session(s) from fixtures")
                rows = exclude_dev_session_rows(rows, FIXTURE_SCHEMA)
            sessions = tuple(map_session(row, FIXTURE_SCHEMA) for row in rows)
            # Analyses and messages of dev sessions go with them
            analyses = tuple(
                analysis
                for analysis in (
                    map_analysis(row, FIXTURE_SCHEMA) for row in self.store.analysis_rows()
                )
                if analysis.session_id not in dev_ids
            )
            messages = tuple(
                message
                for message in (
                    map_message(row, FIXTURE_SCHEMA) for row in self.store.message_rows()
                )
                if message.session_id not in dev_ids
            )

            self._session_by_id = {s.id: s for s in sessions}
            # One analysis per session; the first row wins
            for analysis in analyses:
                self._analysis_by_session.setdefault(analysis.session_id, analysis)
            self._analyses = analyses
            self._messages = messages
            self._sessions = sessions

    @property
    def sessions(self) -> tuple[Session, ...]:
        if self._sessions is None:
            self._build()
        return self._sessions

    @property
    def analyses(self) -> tuple[SessionAnalysis, ...]:
        if self._sessions is None:
            self._build()
        return self._analyses

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        if self._sessions is None:
            self._build()
        return self._messages

    @property
    def session_by_id(self) -> dict[str, Session]:
        if self._sessions is None:
            self._build()
        return self._session_by_id

    @property
    def analysis_by_session(self) -> dict[str, SessionAnalysis]:
        if self._sessions is None:
            self._build()
        return self._analysis_by_session

    def tenant_for_assistant(self, assistant_id: str) -> str | None:
        """Tenant owning the first fixture session of an assistant."""
        for session in self.sessions:
            if session.assistant_id == assistant_id:
                return session.tenant_id
        return None


class FixtureSessionRepository(SessionRepository):
    def __init__(self, dataset: FixtureDataset):
        self.dataset = dataset

    def _query(self, sessions, filters: ChatSessionFilters | None) -> list[Session]:
        matched = filter_sessions(sessions, filters, self.dataset.analysis_by_session)
        return sessions_most_recent_first(matched)

    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        return self._query(
            (s for s in self.dataset.sessions if s.assistant_id == assistant_id), filters
        )

    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        return self._query((s for s in self.dataset.sessions if s.tenant_id == tenant_id), filters)

    async def get_by_id(self, session_id: str) -> Session | None:
        return self.dataset.session_by_id.get(session_id)

    async def get_with_analysis_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        sessions = await self.get_by_assistant_id(assistant_id, filters)
        return join_analyses(sessions, self.dataset.analysis_by_session)

    async def get_with_analysis_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        sessions = await self.get_by_tenant_id(tenant_id, filters)
        return join_analyses(sessions, self.dataset.analysis_by_session)


class FixtureAnalysisRepository(AnalysisRepository):
    def __init__(self, dataset: FixtureDataset):
        self.dataset = dataset

    def _query(self, analyses, filters: ChatSessionFilters | None) -> list[SessionAnalysis]:
        matched = filter_analyses(analyses, filters, self.dataset.session_by_id)
        return analyses_most_recent_first(matched)

    async def get_by_session_id(self, session_id: str) -> SessionAnalysis | None:
        return self.dataset.analysis_by_session.get(session_id)

    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        return self._query(
            (a for a in self.dataset.analyses if a.assistant_id == assistant_id), filters
        )

    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        session_ids = {s.id for s in self.dataset.sessions if s.tenant_id == tenant_id}
        return self._query(
            (a for a in self.dataset.analyses if a.session_id in session_ids), filters
        )


class FixtureMessageRepository(MessageRepository):
    def __init__(self, dataset: FixtureDataset):
        self.dataset = dataset

    async def get_by_session_ids(self, session_ids: list[str]) -> list[ChatMessage]:
        wanted = set(session_ids)
        return [m for m in self.dataset.messages if m.session_id in wanted]


_dataset: FixtureDataset | None = None


def get_fixture_dataset() -> FixtureDataset:
    """Get the process-wide fixture dataset (dependency injection)."""
    global _dataset
    if _dataset is None:
        _dataset = FixtureDataset(get_fixture_store(), get_settings().exclude_dev_sessions)
    return _dataset
