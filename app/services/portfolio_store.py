from __future__ import annotations

import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Protocol

from app.core.config import settings
from app.schemas.portfolio import PortfolioSnapshot, Section, SectionType


class PortfolioRepository(Protocol):
    def fetch_portfolio(self, user_id: str) -> PortfolioSnapshot | None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class SqlitePortfolioRepository:
    """Read access to the portfolio tables; writes exist for seeding and tests."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or settings.portfolio_db_path
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
            CREATE TABLE IF NOT EXISTS portfolios (
                portfolio_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL UNIQUE,
                template TEXT,
                theme TEXT,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS portfolio_sections (
                portfolio_id TEXT NOT NULL,
                section_order INTEGER NOT NULL,
                section_type TEXT NOT NULL,
                section_id TEXT,
                title TEXT,
                content TEXT NOT NULL,
                updated_at TEXT,
                PRIMARY KEY (portfolio_id, section_order)
            );
            """
        )
        self._conn = conn
        return conn

    def init(self) -> None:
        with self._conn_lock:
            self._get_connection()

    def fetch_portfolio(self, user_id: str) -> PortfolioSnapshot | None:
        with self._conn_lock:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT portfolio_id, template, theme FROM portfolios WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if not row:
                return None
            section_rows = conn.execute(
                """
                SELECT section_order, section_type, section_id, title, content, updated_at
                FROM portfolio_sections
                WHERE portfolio_id = ?
                ORDER BY section_order
                """,
                (row[0],),
            ).fetchall()

        sections = [
            Section(
                order=int(item[0]),
                type=SectionType(item[1]),
                id=item[2],
                title=item[3],
                content=item[4] or "",
                updated_at=_parse_timestamp(item[5]),
            )
            for item in section_rows
        ]
        return PortfolioSnapshot(
            portfolio_id=row[0],
            user_id=user_id,
            sections=sections,
            template=row[1],
            theme=row[2],
        )

    def save_portfolio(self, snapshot: PortfolioSnapshot) -> None:
        now_iso = _utc_now().isoformat()
        with self._conn_lock:
            conn = self._get_connection()
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO portfolios (portfolio_id, user_id, template, theme, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(portfolio_id) DO UPDATE SET
                        user_id = excluded.user_id,
                        template = excluded.template,
                        theme = excluded.theme,
                        updated_at = excluded.updated_at
                    """,
                    (snapshot.portfolio_id, snapshot.user_id, snapshot.template, snapshot.theme, now_iso),
                )
                conn.execute("DELETE FROM portfolio_sections WHERE portfolio_id = ?", (snapshot.portfolio_id,))
                conn.executemany(
                    """
                    INSERT INTO portfolio_sections (
                        portfolio_id, section_order, section_type, section_id, title, content, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            snapshot.portfolio_id,
                            section.order,
                            section.type.value,
                            section.id,
                            section.title,
                            section.content,
                            section.updated_at.isoformat() if section.updated_at else None,
                        )
                        for section in snapshot.sections
                    ],
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class InMemoryPortfolioRepository:
    def __init__(self, portfolios: list[PortfolioSnapshot] | None = None) -> None:
        self._by_user: dict[str, PortfolioSnapshot] = {}
        self._lock = threading.Lock()
        for snapshot in portfolios or []:
            self.save_portfolio(snapshot)

    def fetch_portfolio(self, user_id: str) -> PortfolioSnapshot | None:
        with self._lock:
            snapshot = self._by_user.get(user_id)
        return snapshot.model_copy(deep=True) if snapshot is not None else None

    def save_portfolio(self, snapshot: PortfolioSnapshot) -> None:
        with self._lock:
            self._by_user[snapshot.user_id] = snapshot.model_copy(deep=True)


_repository: SqlitePortfolioRepository | None = None
_repository_lock = threading.Lock()


def get_portfolio_repository() -> SqlitePortfolioRepository:
    global _repository
    with _repository_lock:
        if _repository is None:
            _repository = SqlitePortfolioRepository()
        return _repository
