from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from app.core.config import RouteClassConfig, settings
from app.core.errors import RateLimited

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class RateLimitWindow:
    identity: str
    window_start: float
    count: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: float


class RateLimitStoreError(RuntimeError):
    pass


class RateLimitStore(Protocol):
    def consume(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision: ...

    def peek(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision: ...

    def reset(self, key: str) -> None: ...

    def clear(self) -> None: ...


def _evaluate(
    window: RateLimitWindow | None,
    key: str,
    max_requests: int,
    window_seconds: int,
    now: float,
) -> tuple[RateLimitWindow, RateLimitDecision]:
    """Apply the fixed-window rule and return the window as it should be stored."""
    if window is None or now >= window.window_start + window_seconds or now < window.window_start:
        window = RateLimitWindow(identity=key, window_start=now, count=0)

    reset_at = window.window_start + window_seconds
    if window.count >= max_requests:
        return window, RateLimitDecision(
            allowed=False,
            limit=max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=max(reset_at - now, 0.001),
        )

    updated = RateLimitWindow(identity=key, window_start=window.window_start, count=window.count + 1)
    return updated, RateLimitDecision(
        allowed=True,
        limit=max_requests,
        remaining=max(0, max_requests - updated.count),
        reset_at=reset_at,
        retry_after_seconds=0.0,
    )


class InMemoryRateLimitStore:
    """Process-local windows; fine for tests and single-worker deployments."""

    def __init__(self, *, sweep_interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        self._windows: dict[str, RateLimitWindow] = {}
        self._expires: dict[str, float] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._next_sweep = float("-inf")

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        for key in [key for key, expires_at in self._expires.items() if expires_at <= now]:
            self._windows.pop(key, None)
            self._expires.pop(key, None)

    def consume(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision:
        with self._lock:
            self._sweep(now)
            window, decision = _evaluate(self._windows.get(key), key, max_requests, window_seconds, now)
            self._windows[key] = window
            self._expires[key] = window.window_start + window_seconds
            return decision

    def peek(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision:
        with self._lock:
            window = self._windows.get(key)
        if window is None or now >= window.window_start + window_seconds:
            return RateLimitDecision(True, max_requests, max_requests, now + window_seconds, 0.0)
        remaining = max(0, max_requests - window.count)
        reset_at = window.window_start + window_seconds
        return RateLimitDecision(
            allowed=remaining > 0,
            limit=max_requests,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=0.0 if remaining > 0 else reset_at - now,
        )

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)
            self._expires.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
            self._expires.clear()

    @property
    def size(self) -> int:
        return len(self._windows)


class SqliteRateLimitStore:
    """Windows shared by every worker process on the host through one sqlite file."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn

        directory = os.path.dirname(self._db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            timeout=5,
            isolation_level=None,
        )
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rate_limit_windows (
                identity TEXT PRIMARY KEY,
                window_start REAL NOT NULL,
                request_count INTEGER NOT NULL,
                expires_at REAL NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_rate_limit_windows_expires
            ON rate_limit_windows (expires_at);
            """
        )
        self._conn = conn
        return conn

    def _read(self, cursor: sqlite3.Cursor, key: str) -> RateLimitWindow | None:
        cursor.execute(
            "SELECT window_start, request_count FROM rate_limit_windows WHERE identity = ?",
            (key,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return RateLimitWindow(identity=key, window_start=float(row[0]), count=int(row[1] or 0))

    def consume(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision:
        try:
            with self._conn_lock:
                conn = self._get_connection()
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE")
                try:
                    cursor.execute("DELETE FROM rate_limit_windows WHERE expires_at <= ?", (now,))
                    window, decision = _evaluate(self._read(cursor, key), key, max_requests, window_seconds, now)
                    cursor.execute(
                        """
                        INSERT INTO rate_limit_windows (identity, window_start, request_count, expires_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(identity) DO UPDATE SET
                            window_start = excluded.window_start,
                            request_count = excluded.request_count,
                            expires_at = excluded.expires_at
                        """,
                        (key, window.window_start, window.count, window.window_start + window_seconds),
                    )
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
            return decision
        except sqlite3.Error as exc:
            raise RateLimitStoreError(str(exc)) from exc

    def peek(self, key: str, max_requests: int, window_seconds: int, now: float) -> RateLimitDecision:
        try:
            with self._conn_lock:
                window = self._read(self._get_connection().cursor(), key)
        except sqlite3.Error as exc:
            raise RateLimitStoreError(str(exc)) from exc
        if window is None or now >= window.window_start + window_seconds:
            return RateLimitDecision(True, max_requests, max_requests, now + window_seconds, 0.0)
        remaining = max(0, max_requests - window.count)
        reset_at = window.window_start + window_seconds
        return RateLimitDecision(remaining > 0, max_requests, remaining, reset_at, 0.0 if remaining else reset_at - now)

    def reset(self, key: str) -> None:
        with self._conn_lock:
            conn = self._get_connection()
            conn.execute("DELETE FROM rate_limit_windows WHERE identity = ?", (key,))
            conn.commit()

    def clear(self) -> None:
        with self._conn_lock:
            conn = self._get_connection()
            conn.execute("DELETE FROM rate_limit_windows")
            conn.commit()

    @property
    def size(self) -> int:
        with self._conn_lock:
            row = self._get_connection().execute("SELECT COUNT(1) FROM rate_limit_windows").fetchone()
        return int(row[0] or 0)


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        route_classes: dict[str, RouteClassConfig],
        *,
        enabled: bool = True,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._route_classes = dict(route_classes)
        self._enabled = enabled
        self._fail_open = fail_open
        self._clock = clock

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def route_class(self, name: str) -> RouteClassConfig:
        try:
            return self._route_classes[name]
        except KeyError as exc:
            raise ValueError(f"Unknown rate limit route class '{name}'") from exc

    def identity_for(self, route_class: str, *, user_id: str | None, client_ip: str | None) -> str:
        cfg = self.route_class(route_class)
        if cfg.per_user and user_id:
            return f"user:{user_id}"
        return f"ip:{client_ip or 'unknown'}"

    @staticmethod
    def _key(identity: str, route_class: str) -> str:
        return f"{route_class}:{identity}"

    def check_and_consume(self, identity: str, route_class: str) -> RateLimitDecision:
        cfg = self.route_class(route_class)
        now = self._clock()
        if not self._enabled:
            return RateLimitDecision(True, cfg.max_requests, cfg.max_requests, now + cfg.window_seconds, 0.0)

        try:
            return self._store.consume(self._key(identity, route_class), cfg.max_requests, cfg.window_seconds, now)
        except RateLimitStoreError as exc:
            if self._fail_open:
                logger.warning("rate_limit_store_unavailable policy=fail_open route_class=%s: %s", route_class, exc)
                return RateLimitDecision(True, cfg.max_requests, cfg.max_requests, now + cfg.window_seconds, 0.0)
            logger.warning("rate_limit_store_unavailable policy=fail_closed route_class=%s: %s", route_class, exc)
            return RateLimitDecision(False, cfg.max_requests, 0, now + cfg.window_seconds, float(cfg.window_seconds))

    def enforce(self, identity: str, route_class: str) -> RateLimitDecision:
        decision = self.check_and_consume(identity, route_class)
        if not decision.allowed:
            raise RateLimited(
                "Too many requests. Please wait before trying again.",
                retry_after_seconds=decision.retry_after_seconds,
            )
        return decision

    def peek(self, identity: str, route_class: str) -> RateLimitDecision:
        cfg = self.route_class(route_class)
        return self._store.peek(self._key(identity, route_class), cfg.max_requests, cfg.window_seconds, self._clock())

    def reset(self, identity: str, route_class: str) -> None:
        self._store.reset(self._key(identity, route_class))


_limiter: RateLimiter | None = None
_limiter_lock = threading.Lock()


def _build_store() -> RateLimitStore:
    if settings.rate_limit_backend == "sqlite":
        return SqliteRateLimitStore(settings.rate_limit_db_path)
    return InMemoryRateLimitStore()


def get_rate_limiter() -> RateLimiter:
    global _limiter
    with _limiter_lock:
        if _limiter is None:
            _limiter = RateLimiter(
                _build_store(),
                settings.route_classes,
                enabled=settings.rate_limit_enabled,
                fail_open=settings.rate_limit_fail_open,
            )
        return _limiter


def clear_rate_limit_windows() -> None:
    get_rate_limiter().store.clear()
