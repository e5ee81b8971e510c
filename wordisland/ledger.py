"""Weekly coin ledger: accrual, time-gated settlement and coin exchanges."""

from __future__ import annotations

import asyncio
import logging
import uuid
import zoneinfo
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable

from .config import SETTLEMENT_HOUR, SETTLEMENT_WEEKDAY, TIMEZONE
from .content_config import EXCHANGE_RATE, MIN_EXCHANGE_COINS
from .database import LedgerStore
from .models import (
    EXCHANGE_PENDING,
    EXCHANGE_REJECTED,
    EXCHANGE_STATUSES,
    LEDGER_PAID_OUT,
    CoinExchange,
    WeeklyLedger,
)
from .scoring import exchange_ntd

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now(zoneinfo.ZoneInfo(TIMEZONE))


def get_week_start_date(day: date | datetime) -> date:
    """Most recent Monday on/before ``day``; Sunday belongs to the previous Monday."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def get_week_number(monday: date) -> int:
    return (monday - date(monday.year, 1, 1)).days // 7 + 1


def get_current_week_id(now: date | datetime) -> str:
    monday = get_week_start_date(now)
    return f"{monday.year}-W{get_week_number(monday):02d}"


def is_payout_time_valid(
    now: datetime,
    weekday: int = SETTLEMENT_WEEKDAY,
    hour: int = SETTLEMENT_HOUR,
) -> bool:
    return now.weekday() == weekday and now.hour >= hour


def is_payout_missed(week_start: date, now: date | datetime) -> bool:
    """True once the whole week (through Sunday) is over."""
    if isinstance(now, datetime):
        now = now.date()
    return now >= week_start + timedelta(days=7)


class ExchangeNotFoundError(LookupError):
    pass


@dataclass
class PayoutResult:
    success: bool
    total_paid: int
    certificate: dict[str, Any] | None = None
    reason: str | None = None


@dataclass
class ExchangeResult:
    success: bool
    exchange: CoinExchange | None = None
    reason: str | None = None


class WeeklyLedgerService:
    def __init__(
        self,
        store: LedgerStore,
        clock: Callable[[], datetime] = local_now,
        settlement_weekday: int = SETTLEMENT_WEEKDAY,
        settlement_hour: int = SETTLEMENT_HOUR,
    ) -> None:
        self.store = store
        self.clock = clock
        self.settlement_weekday = settlement_weekday
        self.settlement_hour = settlement_hour
        self._lock = asyncio.Lock()

    # ── Weeks ─────────────────────────────────────────

    def get_current_week_id(self) -> str:
        return get_current_week_id(self.clock())

    def is_payout_time_valid(self) -> bool:
        return is_payout_time_valid(self.clock(), self.settlement_weekday, self.settlement_hour)

    async def get_current_week_ledger(self) -> WeeklyLedger:
        now = self.clock()
        week_id = get_current_week_id(now)
        ledger = await self.store.get(week_id)
        if ledger is None:
            ledger = WeeklyLedger(id=week_id, start_date=get_week_start_date(now))
            await self.store.add(ledger)
            logger.info("Opened weekly ledger %s", week_id)
        return ledger

    async def get_current_week_total(self) -> int:
        ledger = await self.get_current_week_ledger()
        return ledger.total_earned

    async def get_weekly_history(self) -> list[WeeklyLedger]:
        ledgers = await self.store.get_all()
        return sorted(ledgers, key=lambda ledger: ledger.start_date, reverse=True)

    async def get_total_earned_all_time(self) -> int:
        ledgers = await self.store.query(lambda ledger: ledger.status == LEDGER_PAID_OUT)
        return sum(ledger.total_earned for ledger in ledgers)

    # ── Accrual and settlement ────────────────────────

    async def add_reward(self, reward: int, task_id: str) -> WeeklyLedger:
        week_id = (await self.get_current_week_ledger()).id
        await self.store.credit(week_id, reward, task_id)
        ledger = await self.store.get(week_id)
        logger.info("Added %d coins for task %s to %s (total %d)",
                    reward, task_id, ledger.id, ledger.total_earned)
        return ledger

    async def perform_weekly_payout(self) -> PayoutResult:
        async with self._lock:
            return await self._settle_current_week()

    async def _settle_current_week(self) -> PayoutResult:
        ledger = await self.get_current_week_ledger()

        if ledger.status == LEDGER_PAID_OUT:
            return PayoutResult(success=False, total_paid=0, reason="本週已經結算過了")
        if not self.is_payout_time_valid():
            return PayoutResult(
                success=False, total_paid=0, reason="結算只能在週日晚上 8 點之後進行"
            )

        certificate = {
            "week_id": ledger.id,
            "start_date": ledger.start_date,
            "end_date": ledger.end_date,
            "total_earned": ledger.total_earned,
            "completed_tasks": len(ledger.completed_task_ids),
            "generated_at": self.clock(),
        }
        await self.store.update(ledger.id, status=LEDGER_PAID_OUT)
        logger.info("Week %s settled: %d coins", ledger.id, ledger.total_earned)
        return PayoutResult(success=True, total_paid=ledger.total_earned, certificate=certificate)

    async def forfeit_missed_settlements(self) -> list[str]:
        """Close every elapsed week that was never settled; its coins are lost."""
        now = self.clock()
        forfeited = []
        for ledger in await self.store.get_active():
            if is_payout_missed(ledger.start_date, now):
                await self.store.update(ledger.id, status=LEDGER_PAID_OUT, total_earned=0)
                logger.warning(
                    "Week %s was not settled in time, %d coins forfeited",
                    ledger.id,
                    ledger.total_earned,
                )
                forfeited.append(ledger.id)
        return forfeited

    # ── Exchanges ─────────────────────────────────────

    async def get_exchanges(self, week_id: str | None = None) -> list[CoinExchange]:
        return await self.store.get_exchanges(week_id)

    async def get_available_coins_for_exchange(self, week_id: str) -> int:
        ledger = await self.store.get(week_id)
        if ledger is None:
            return 0
        exchanges = await self.store.get_exchanges(week_id)
        used = sum(e.coins_exchanged for e in exchanges if e.status != EXCHANGE_REJECTED)
        return ledger.total_earned - used

    async def request_exchange(self, week_id: str, amount: int) -> ExchangeResult:
        # availability check and insert must not interleave
        async with self._lock:
            return await self._request_exchange(week_id, amount)

    async def _request_exchange(self, week_id: str, amount: int) -> ExchangeResult:
        if amount < MIN_EXCHANGE_COINS:
            return ExchangeResult(
                success=False, reason=f"最少要兌換 {MIN_EXCHANGE_COINS} 學習幣"
            )
        ledger = await self.store.get(week_id)
        if ledger is None:
            return ExchangeResult(success=False, reason="找不到這一週的紀錄")
        if ledger.status != LEDGER_PAID_OUT:
            return ExchangeResult(success=False, reason="這一週還沒有結算，不能兌換")
        available = await self.get_available_coins_for_exchange(week_id)
        if amount > available:
            return ExchangeResult(
                success=False, reason=f"可兌換的學習幣不足（剩餘 {available}）"
            )

        exchange = CoinExchange(
            id=uuid.uuid4().hex,
            week_id=week_id,
            coins_exchanged=amount,
            ntd_amount=exchange_ntd(amount),
            exchange_rate=EXCHANGE_RATE,
            requested_at=self.clock(),
            status=EXCHANGE_PENDING,
        )
        await self.store.add_exchange(exchange)
        logger.info("Exchange %s requested: %d coins from %s", exchange.id, amount, week_id)
        return ExchangeResult(success=True, exchange=exchange)

    async def update_exchange_status(
        self, exchange_id: str, status: str, notes: str | None = None
    ) -> CoinExchange:
        """Guardian-driven status change; no business rules beyond existence."""
        if status not in EXCHANGE_STATUSES:
            raise ValueError(f"Unknown exchange status: {status}")
        exchange = await self.store.get_exchange(exchange_id)
        if exchange is None:
            raise ExchangeNotFoundError(f"Exchange {exchange_id} not found")

        exchange.status = status
        exchange.processed_at = self.clock()
        if notes is not None:
            exchange.notes = notes
        await self.store.update_exchange(
            exchange_id,
            status=status,
            processed_at=exchange.processed_at.isoformat(),
            notes=exchange.notes,
        )
        logger.info("Exchange %s marked %s", exchange_id, status)
        return exchange
