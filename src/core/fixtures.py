"""Embedded JSON fixture dataset used for demo tenants."""

import json
import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from src.config import get_settings

logger = logging.getLogger(__name__)

SESSIONS_FILE = "chat_sessions.json"
ANALYSES_FILE = "chat_session_analyses.json"
MESSAGES_FILE = "chat_messages.json"


class FixtureLoadError(Exception):
    """A fixture file exists but does not hold a JSON array of objects."""


class FixtureStore:
    """Read-only store of raw fixture rows.

    Each file is parsed at most once, on first access, and kept as an
    immutable tuple. Rows can also be injected directly with ``from_rows``.
    """

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()
        self._rows: dict[str, tuple[dict[str, Any], ...]] = {}

    @classmethod
    def from_rows(
        cls,
        sessions: Iterable[dict[str, Any]] = (),
        analyses: Iterable[dict[str, Any]] = (),
        messages: Iterable[dict[str, Any]] = (),
    ) -> "FixtureStore":
        """Build a store over in-memory rows instead of files."""
        store = cls(data_dir="")
        store._rows = {
            SESSIONS_FILE: tuple(sessions),
            ANALYSES_FILE: tuple(analyses),
            MESSAGES_FILE: tuple(messages),
        }
        return store

    def _load(self, filename: str) -> tuple[dict[str, Any], ...]:
        rows = self._rows.get(filename)
        if rows is not None:
            return rows
        with self._lock:
            rows = self._rows.get(filename)
            if rows is None:
                rows = self._read_file(self.data_dir / filename)
                self._rows[filename] = rows
        return rows

    @staticmethod
    def _read_file(path: Path) -> tuple[dict[str, Any], ...]:
        if not path.exists():
            logger.warning(f"Fixture file not found: {path}, using empty dataset")
            return ()
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise FixtureLoadError(f"{path} must contain a JSON array")
        rows = tuple(row for row in data if isinstance(row, dict))
        logger.info(f"Loaded {len(rows)} fixture rows from {path.name}")
        return rows

    def session_rows(self) -> tuple[dict[str, Any], ...]:
        return self._load(SESSIONS_FILE)

    def analysis_rows(self) -> tuple[dict[str, Any], ...]:
        return self._load(ANALYSES_FILE)

    def message_rows(self) -> tuple[dict[str, Any], ...]:
        return self._load(MESSAGES_FILE)


_store: FixtureStore | None = None
_store_lock = threading.Lock()


def get_fixture_store() -> FixtureStore:
    """Get the process-wide fixture store (dependency injection)."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                _store = FixtureStore(get_settings().fixture_data_dir)
    return _store
