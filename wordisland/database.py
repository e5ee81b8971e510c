from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

import aiosqlite

from .config import DB_PATH
from .models import (
    CoinExchange,
    DailyTask,
    LEDGER_ACTIVE,
    STATUS_COMPLETED,
    UserProfile,
    WeeklyLedger,
)

_db: aiosqlite.Connection | None = None

SCHEMA = """
CREATE TABLE IF NOT EXISTS user_profile (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    age INTEGER NOT NULL,
    avatar_id TEXT,
    ai_backend TEXT NOT NULL DEFAULT 'gemini',
    chat_id INTEGER,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_tasks (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    content TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('character', 'word', 'phrase')),
    details TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'in_progress', 'completed')),
    reward INTEGER NOT NULL,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_daily_tasks_date ON daily_tasks(date);

CREATE TABLE IF NOT EXISTS weekly_ledgers (
    id TEXT PRIMARY KEY,
    start_date TEXT NOT NULL,
    total_earned INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'paid_out')),
    completed_task_ids TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS coin_exchanges (
    id TEXT PRIMARY KEY,
    week_id TEXT NOT NULL REFERENCES weekly_ledgers(id),
    coins_exchanged INTEGER NOT NULL,
    ntd_amount INTEGER NOT NULL,
    exchange_rate INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'approved', 'paid', 'rejected')),
    requested_at TEXT NOT NULL,
    processed_at TEXT,
    notes TEXT
);
"""


async def get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        _db = await aiosqlite.connect(DB_PATH)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys = ON")
    return _db


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def init_schema(db: aiosqlite.Connection) -> None:
    await db.executescript(SCHEMA)
    await db.commit()


async def init_db() -> aiosqlite.Connection:
    db = await get_db()
    await init_schema(db)
    return db


def _set_clause(changes: dict[str, Any]) -> str:
    return ", ".join(f"{col} = ?" for col in changes)


# ── Profile ───────────────────────────────────────────────


class ProfileStore:
    """Single-record profile table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def get(self) -> UserProfile | None:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM user_profile ORDER BY id LIMIT 1"
        )
        return UserProfile.from_row(rows[0]) if rows else None

    async def add(self, profile: UserProfile) -> int:
        created_at = profile.created_at or datetime.now()
        cursor = await self.db.execute(
            """INSERT INTO user_profile (name, age, avatar_id, ai_backend, chat_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                profile.name,
                profile.age,
                profile.avatar_id,
                profile.ai_backend,
                profile.chat_id,
                created_at.isoformat(),
            ),
        )
        await self.db.commit()
        return cursor.lastrowid

    async def update(self, profile_id: int, **changes: Any) -> int:
        cursor = await self.db.execute(
            f"UPDATE user_profile SET {_set_clause(changes)} WHERE id = ?",
            (*changes.values(), profile_id),
        )
        await self.db.commit()
        return cursor.rowcount

    async def delete(self, profile_id: int) -> None:
        await self.db.execute("DELETE FROM user_profile WHERE id = ?", (profile_id,))
        await self.db.commit()


# ── Tasks ─────────────────────────────────────────────────


class TaskStore:
    """Daily tasks, ordered by insertion (rowid)."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def get(self, task_id: str) -> DailyTask | None:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM daily_tasks WHERE id = ?", (task_id,)
        )
        return DailyTask.from_row(rows[0]) if rows else None

    async def get_all(self) -> list[DailyTask]:
        rows = await self.db.execute_fetchall("SELECT * FROM daily_tasks ORDER BY rowid")
        return [DailyTask.from_row(r) for r in rows]

    async def query(self, predicate: Callable[[DailyTask], bool]) -> list[DailyTask]:
        return [t for t in await self.get_all() if predicate(t)]

    async def for_date(self, day: str) -> list[DailyTask]:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM daily_tasks WHERE date = ? ORDER BY rowid", (day,)
        )
        return [DailyTask.from_row(r) for r in rows]

    async def for_range(self, start: str, end: str) -> list[DailyTask]:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM daily_tasks WHERE date BETWEEN ? AND ? ORDER BY rowid",
            (start, end),
        )
        return [DailyTask.from_row(r) for r in rows]

    async def add(self, task: DailyTask) -> str:
        row = task.to_row()
        await self.db.execute(
            f"INSERT INTO daily_tasks ({', '.join(row)}) VALUES ({', '.join('?' * len(row))})",
            tuple(row.values()),
        )
        await self.db.commit()
        return task.id

    async def add_many(self, tasks: list[DailyTask]) -> None:
        for task in tasks:
            row = task.to_row()
            await self.db.execute(
                f"INSERT INTO daily_tasks ({', '.join(row)}) VALUES ({', '.join('?' * len(row))})",
                tuple(row.values()),
            )
        await self.db.commit()

    async def update(self, task_id: str, **changes: Any) -> int:
        cursor = await self.db.execute(
            f"UPDATE daily_tasks SET {_set_clause(changes)} WHERE id = ?",
            (*changes.values(), task_id),
        )
        await self.db.commit()
        return cursor.rowcount

    async def mark_completed(self, task_id: str, completed_at: datetime) -> bool:
        """Flip a task to completed. Returns False if it already was."""
        cursor = await self.db.execute(
            "UPDATE daily_tasks SET status = ?, completed_at = ? WHERE id = ? AND status != ?",
            (STATUS_COMPLETED, completed_at.isoformat(), task_id, STATUS_COMPLETED),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def delete(self, task_id: str) -> None:
        await self.db.execute("DELETE FROM daily_tasks WHERE id = ?", (task_id,))
        await self.db.commit()


# ── Weekly ledgers and coin exchanges ────────────────────


class LedgerStore:
    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def get(self, week_id: str) -> WeeklyLedger | None:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM weekly_ledgers WHERE id = ?", (week_id,)
        )
        return WeeklyLedger.from_row(rows[0]) if rows else None

    async def get_all(self) -> list[WeeklyLedger]:
        rows = await self.db.execute_fetchall("SELECT * FROM weekly_ledgers")
        return [WeeklyLedger.from_row(r) for r in rows]

    async def query(self, predicate: Callable[[WeeklyLedger], bool]) -> list[WeeklyLedger]:
        return [ledger for ledger in await self.get_all() if predicate(ledger)]

    async def get_active(self) -> list[WeeklyLedger]:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM weekly_ledgers WHERE status = ? ORDER BY start_date",
            (LEDGER_ACTIVE,),
        )
        return [WeeklyLedger.from_row(r) for r in rows]

    async def add(self, ledger: WeeklyLedger) -> str:
        row = ledger.to_row()
        await self.db.execute(
            f"INSERT OR IGNORE INTO weekly_ledgers ({', '.join(row)}) "
            f"VALUES ({', '.join('?' * len(row))})",
            tuple(row.values()),
        )
        await self.db.commit()
        return ledger.id

    async def update(self, week_id: str, **changes: Any) -> int:
        cursor = await self.db.execute(
            f"UPDATE weekly_ledgers SET {_set_clause(changes)} WHERE id = ?",
            (*changes.values(), week_id),
        )
        await self.db.commit()
        return cursor.rowcount

    async def credit(self, week_id: str, reward: int, task_id: str) -> int:
        """Add a reward and append the task id in one statement."""
        cursor = await self.db.execute(
            """UPDATE weekly_ledgers
               SET total_earned = total_earned + ?,
                   completed_task_ids = json_insert(completed_task_ids, '$[#]', ?)
               WHERE id = ?""",
            (reward, task_id, week_id),
        )
        await self.db.commit()
        return cursor.rowcount

    async def delete(self, week_id: str) -> None:
        await self.db.execute("DELETE FROM weekly_ledgers WHERE id = ?", (week_id,))
        await self.db.commit()

    # Exchanges

    async def get_exchange(self, exchange_id: str) -> CoinExchange | None:
        rows = await self.db.execute_fetchall(
            "SELECT * FROM coin_exchanges WHERE id = ?", (exchange_id,)
        )
        return CoinExchange.from_row(rows[0]) if rows else None

    async def get_exchanges(self, week_id: str | None = None) -> list[CoinExchange]:
        if week_id is None:
            rows = await self.db.execute_fetchall(
                "SELECT * FROM coin_exchanges ORDER BY requested_at DESC"
            )
        else:
            rows = await self.db.execute_fetchall(
                "SELECT * FROM coin_exchanges WHERE week_id = ? ORDER BY requested_at DESC",
                (week_id,),
            )
        return [CoinExchange.from_row(r) for r in rows]

    async def add_exchange(self, exchange: CoinExchange) -> str:
        row = exchange.to_row()
        await self.db.execute(
            f"INSERT INTO coin_exchanges ({', '.join(row)}) VALUES ({', '.join('?' * len(row))})",
            tuple(row.values()),
        )
        await self.db.commit()
        return exchange.id

    async def update_exchange(self, exchange_id: str, **changes: Any) -> int:
        cursor = await self.db.execute(
            f"UPDATE coin_exchanges SET {_set_clause(changes)} WHERE id = ?",
            (*changes.values(), exchange_id),
        )
        await self.db.commit()
        return cursor.rowcount
