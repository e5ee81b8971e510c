"""Record types persisted by the stores."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

TASK_CHARACTER = "character"
TASK_WORD = "word"
TASK_PHRASE = "phrase"
TASK_TYPES = (TASK_CHARACTER, TASK_WORD, TASK_PHRASE)

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

LEDGER_ACTIVE = "active"
LEDGER_PAID_OUT = "paid_out"

EXCHANGE_PENDING = "pending"
EXCHANGE_APPROVED = "approved"
EXCHANGE_PAID = "paid"
EXCHANGE_REJECTED = "rejected"
EXCHANGE_STATUSES = (EXCHANGE_PENDING, EXCHANGE_APPROVED, EXCHANGE_PAID, EXCHANGE_REJECTED)

AI_BACKENDS = ("gemini", "openai", "claude")


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class UserProfile:
    name: str
    age: int
    avatar_id: str = ""
    ai_backend: str = "gemini"
    chat_id: int | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> UserProfile:
        return cls(
            id=row["id"],
            name=row["name"],
            age=row["age"],
            avatar_id=row["avatar_id"] or "",
            ai_backend=row["ai_backend"],
            chat_id=row["chat_id"],
            created_at=_dt(row["created_at"]),
        )


@dataclass
class DailyTask:
    id: str
    date: str  # ISO calendar day
    content: str
    type: str
    details: dict[str, Any]
    reward: int
    status: str = STATUS_PENDING
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> DailyTask:
        return cls(
            id=row["id"],
            date=row["date"],
            content=row["content"],
            type=row["type"],
            details=json.loads(row["details"] or "{}"),
            reward=row["reward"],
            status=row["status"],
            completed_at=_dt(row["completed_at"]),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "content": self.content,
            "type": self.type,
            "details": json.dumps(self.details, ensure_ascii=False),
            "reward": self.reward,
            "status": self.status,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class WeeklyLedger:
    id: str
    start_date: date
    total_earned: int = 0
    status: str = LEDGER_ACTIVE
    completed_task_ids: list[str] = field(default_factory=list)

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=6)

    @classmethod
    def from_row(cls, row: Any) -> WeeklyLedger:
        return cls(
            id=row["id"],
            start_date=date.fromisoformat(row["start_date"]),
            total_earned=row["total_earned"],
            status=row["status"],
            completed_task_ids=json.loads(row["completed_task_ids"] or "[]"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_date": self.start_date.isoformat(),
            "total_earned": self.total_earned,
            "status": self.status,
            "completed_task_ids": json.dumps(self.completed_task_ids),
        }


@dataclass
class CoinExchange:
    id: str
    week_id: str
    coins_exchanged: int
    ntd_amount: int
    exchange_rate: int
    requested_at: datetime
    status: str = EXCHANGE_PENDING
    processed_at: datetime | None = None
    notes: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> CoinExchange:
        return cls(
            id=row["id"],
            week_id=row["week_id"],
            coins_exchanged=row["coins_exchanged"],
            ntd_amount=row["ntd_amount"],
            exchange_rate=row["exchange_rate"],
            requested_at=datetime.fromisoformat(row["requested_at"]),
            status=row["status"],
            processed_at=_dt(row["processed_at"]),
            notes=row["notes"],
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "week_id": self.week_id,
            "coins_exchanged": self.coins_exchanged,
            "ntd_amount": self.ntd_amount,
            "exchange_rate": self.exchange_rate,
            "requested_at": self.requested_at.isoformat(),
            "status": self.status,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "notes": self.notes,
        }
