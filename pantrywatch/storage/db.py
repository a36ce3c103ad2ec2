"""Engine construction and connection health helpers for the crawl database."""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pantrywatch.logging_config import get_logger

from .models_sql import Base

LOGGER = get_logger(__name__)

DEFAULT_BUSY_TIMEOUT_S = 30.0
_CONNECTION_HINTS = ("connection", "terminated", "timeout")


def _is_memory_sqlite(url: URL) -> bool:
    return url.database in (None, "", ":memory:")


def _install_sqlite_pragmas(engine: Engine, *, busy_ms: int, wal: bool) -> None:
    """Run per-connection pragmas. WAL lets ``--status`` read while a crawl writes."""

    statements = ["PRAGMA foreign_keys=ON"]
    if wal:
        statements += ["PRAGMA journal_mode=WAL", "PRAGMA synchronous=NORMAL", f"PRAGMA busy_timeout={busy_ms}"]

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        try:
            for statement in statements:
                try:
                    cursor.execute(statement)
                except Exception as exc:  # pragma: no cover - depends on sqlite build
                    LOGGER.warning("SQLite rejected %r: %s", statement, exc)
        finally:
            cursor.close()


def get_engine(database_url: str, *, busy_timeout: float | None = None) -> Engine:
    """Create an engine for *database_url*.

    In-memory SQLite shares a single connection so every session sees the same
    schema. Other backends only get ``pool_pre_ping``.
    """

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, future=True, pool_pre_ping=True)

    timeout = float(busy_timeout) if busy_timeout is not None else DEFAULT_BUSY_TIMEOUT_S
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    memory = _is_memory_sqlite(url)
    if memory:
        options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True
        options["connect_args"]["timeout"] = timeout

    engine = create_engine(url, future=True, **options)
    _install_sqlite_pragmas(engine, busy_ms=int(timeout * 1000), wal=not memory)
    return engine


def make_session(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False, future=True)


def init_db_safe(engine: Engine) -> None:
    """Create whichever tables are missing; existing tables are left alone."""

    Base.metadata.create_all(engine, checkfirst=True)


def check_connection(engine: Engine) -> None:
    """Raise when *engine* cannot run a trivial query."""

    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def is_connection_error(exc: BaseException) -> bool:
    """Return True when *exc* indicates a dead or unreachable connection."""

    if isinstance(exc, (DisconnectionError, InterfaceError)):
        return True
    if isinstance(exc, OperationalError) and exc.connection_invalidated:
        return True
    message = str(exc).lower()
    return any(hint in message for hint in _CONNECTION_HINTS)
