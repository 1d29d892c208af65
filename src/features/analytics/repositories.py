"""Read-only repository interfaces implemented by each backing store."""

from abc import ABC, abstractmethod

from .models import (
    ChatMessage,
    ChatSessionFilters,
    Session,
    SessionAnalysis,
    SessionWithAnalysis,
)


class SessionRepository(ABC):
    """Sessions for an assistant or tenant, most recent first."""

    @abstractmethod
    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        pass

    @abstractmethod
    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[Session]:
        pass

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def get_with_analysis_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        """Sessions left-joined one-to-one with their analysis."""
        pass

    @abstractmethod
    async def get_with_analysis_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionWithAnalysis]:
        pass


class AnalysisRepository(ABC):
    """Session analyses, filtered on their creation timestamp."""

    @abstractmethod
    async def get_by_session_id(self, session_id: str) -> SessionAnalysis | None:
        pass

    @abstractmethod
    async def get_by_assistant_id(
        self, assistant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        pass

    @abstractmethod
    async def get_by_tenant_id(
        self, tenant_id: str, filters: ChatSessionFilters | None = None
    ) -> list[SessionAnalysis]:
        pass


class MessageRepository(ABC):
    """Transcript messages, used for animation statistics."""

    @abstractmethod
    async def get_by_session_ids(self, session_ids: list[str]) -> list[ChatMessage]:
        pass


def join_analyses(
    sessions: list[Session], analyses: dict[str, SessionAnalysis]
) -> list[SessionWithAnalysis]:
    """Left-join sessions with the analysis sharing their id."""
    return [
        SessionWithAnalysis(**dict(session), analysis=analyses.get(session.id))
        for session in sessions
    ]
