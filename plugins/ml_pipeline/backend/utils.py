"""Session storage and settings helpers for the ML pipeline backend."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from common.logging import get_logger

from ..core.errors import ConfigurationError
from ..core.models import Model
from ..core.preprocess import TransformRecord
from ..core.profiler import ColumnProfile
from ..core.splitter import Split
from ..core.table import Table

logger = get_logger("ml_pipeline.sessions")

DEFAULT_SESSION_TTL = timedelta(minutes=30)
DEFAULT_MAX_SESSIONS = 64

DEFAULTS: dict[str, Any] = {
    "learning_rate": 0.01,
    "iterations": 1000,
    "max_depth": 5,
    "min_samples": 2,
    "n_trees": 10,
    "test_fraction": 0.2,
    "seed": 42,
}

_HYPERPARAMETER_DEFAULTS = ("learning_rate", "iterations", "max_depth", "min_samples", "n_trees")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown or its TTL has lapsed."""

    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id
        self.message = "Session expired or not found"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class PipelineSession:
    """Everything the pipeline has produced for one uploaded dataset."""

    raw_table: Table
    profiles: list[ColumnProfile]
    session_id: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    last_accessed: datetime = field(default_factory=_utcnow)
    preprocessed_table: Table | None = None
    transform_log: tuple[TransformRecord, ...] = ()
    preprocess_summary: dict[str, Any] = field(default_factory=dict)
    split: Split | None = None
    model: Model | None = None
    results: dict[str, Any] = field(default_factory=dict)

    @property
    def current_table(self) -> Table:
        return self.preprocessed_table if self.preprocessed_table is not None else self.raw_table

    @property
    def stage(self) -> str:
        if self.model is not None:
            return "trained"
        if self.split is not None:
            return "split"
        if self.preprocessed_table is not None:
            return "preprocessed"
        return "loaded"


class SessionStore:
    """Thread-safe in-memory session registry with TTL purging and a size cap."""

    def __init__(
        self,
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.max_sessions = max(int(max_sessions), 1)
        self.ttl = ttl
        self._clock = clock
        self._items: dict[str, PipelineSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked()
            return len(self._items)

    def _purge_locked(self) -> None:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in self._items.items()
            if now - session.last_accessed > self.ttl
        ]
        for session_id in expired:
            self._items.pop(session_id, None)
        if expired:
            logger.info("purged %d expired sessions", len(expired))

    def create(self, table: Table, profiles: list[ColumnProfile]) -> PipelineSession:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._purge_locked()
            if len(self._items) >= self.max_sessions:
                raise ConfigurationError(
                    "Too many active sessions",
                    code="TOO_MANY_SESSIONS",
                    details={"maxSessions": self.max_sessions},
                )
            now = self._clock()
            session = PipelineSession(
                raw_table=table,
                profiles=list(profiles),
                session_id=session_id,
                created_at=now,
                last_accessed=now,
            )
            self._items[session_id] = session
        return session

    def get(self, session_id: str) -> PipelineSession:
        with self._lock:
            self._purge_locked()
            try:
                session = self._items[session_id]
            except KeyError:
                raise SessionNotFoundError(session_id) from None
            session.last_accessed = self._clock()
            return session

    def get_raw_table(self, session_id: str) -> Table:
        return self.get(session_id).raw_table

    def set_preprocessed_table(
        self,
        session_id: str,
        table: Table,
        log: tuple[TransformRecord, ...],
        summary: Mapping[str, Any] | None = None,
    ) -> PipelineSession:
        """Store a preprocessing result; any earlier split and model are dropped."""

        session = self.get(session_id)
        with self._lock:
            session.preprocessed_table = table
            session.transform_log = tuple(log)
            session.preprocess_summary = dict(summary or {})
            session.split = None
            session.model = None
            session.results = {}
        return session

    def set_split(self, session_id: str, split: Split) -> PipelineSession:
        """Store a split; any earlier model is dropped."""

        session = self.get(session_id)
        with self._lock:
            session.split = split
            session.model = None
            session.results = {}
        return session

    def set_trained_model(self, session_id: str, model: Model, results: Mapping[str, Any]) -> PipelineSession:
        session = self.get(session_id)
        with self._lock:
            session.model = model
            session.results = dict(results)
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._items.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def _int_setting(settings: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(settings.get(key, default))
    except (TypeError, ValueError):
        return default


def limits_from_settings(settings: Mapping[str, Any] | None) -> dict[str, int]:
    settings = settings or {}
    return {
        "max_rows": _int_setting(settings, "max_rows", 100_000),
        "max_columns": _int_setting(settings, "max_columns", 200),
        "max_sessions": _int_setting(settings, "max_sessions", DEFAULT_MAX_SESSIONS),
        "session_ttl_minutes": _int_setting(settings, "session_ttl_minutes", 30),
        "preview_rows": _int_setting(settings, "preview_rows", 10),
    }


def defaults_from_settings(settings: Mapping[str, Any] | None) -> dict[str, Any]:
    configured = dict((settings or {}).get("defaults") or {})
    unknown = sorted(set(configured) - set(DEFAULTS))
    if unknown:
        logger.warning("ignoring unknown ml_pipeline defaults: %s", ", ".join(unknown))
    return {key: configured.get(key, value) for key, value in DEFAULTS.items()}


def hyperparameter_defaults(settings: Mapping[str, Any] | None) -> dict[str, Any]:
    defaults = defaults_from_settings(settings)
    return {key: defaults[key] for key in _HYPERPARAMETER_DEFAULTS}


def store_from_settings(settings: Mapping[str, Any] | None) -> SessionStore:
    limits = limits_from_settings(settings)
    return SessionStore(
        max_sessions=limits["max_sessions"],
        ttl=timedelta(minutes=max(limits["session_ttl_minutes"], 1)),
    )


def enforce_table_limits(table: Table, *, max_rows: int, max_columns: int) -> None:
    if len(table) > max_rows:
        raise ConfigurationError(
            f"Dataset has {len(table)} rows; the limit is {max_rows}",
            code="TOO_MANY_ROWS",
            details={"rows": len(table), "maxRows": max_rows},
        )
    if len(table.columns) > max_columns:
        raise ConfigurationError(
            f"Dataset has {len(table.columns)} columns; the limit is {max_columns}",
            code="TOO_MANY_COLUMNS",
            details={"columns": len(table.columns), "maxColumns": max_columns},
        )


__all__ = [
    "DEFAULTS",
    "PipelineSession",
    "SessionNotFoundError",
    "SessionStore",
    "defaults_from_settings",
    "enforce_table_limits",
    "hyperparameter_defaults",
    "limits_from_settings",
    "store_from_settings",
]
