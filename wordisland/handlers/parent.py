from __future__ import annotations

import re

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message

from ..content_config import MIN_EXCHANGE_COINS
from ..keyboards import exchange_review_kb
from ..ledger import ExchangeNotFoundError
from ..models import EXCHANGE_PENDING, LEDGER_PAID_OUT
from ..scoring import (
    EXCHANGE_STATUS_LABELS,
    exchange_ntd,
    format_exchange,
    format_settlement_certificate,
    format_week_status,
    format_weekly_history,
)
from ..services import Services

HISTORY_WEEKS = 8
WEEK_ID_RE = re.compile(r"^\d{4}-W\d{2}$")

router = Router()


class ExchangeRequest(StatesGroup):
    waiting_amount = State()


async def _latest_settled_week(services: Services) -> tuple[str, int] | None:
    """Most recent settled week that still has coins to exchange."""
    for ledger in await services.ledger.get_weekly_history():
        if ledger.status != LEDGER_PAID_OUT:
            continue
        available = await services.ledger.get_available_coins_for_exchange(ledger.id)
        if available >= MIN_EXCHANGE_COINS:
            return ledger.id, available
    return None


# ── /coins ───────────────────────────────────────────────


@router.message(Command("coins"))
async def cmd_coins(message: Message, services: Services) -> None:
    forfeited = await services.ledger.forfeit_missed_settlements()
    if forfeited:
        await message.answer(
            f"⚠️ {', '.join(forfeited)} 沒有在週日晚上結算，這幾週的學習幣已經歸零。"
        )

    ledger = await services.ledger.get_current_week_ledger()
    available = None
    if ledger.status == LEDGER_PAID_OUT:
        available = await services.ledger.get_available_coins_for_exchange(ledger.id)
    text = format_week_status(ledger, available)
    all_time = await services.ledger.get_total_earned_all_time()
    text += f"\n\n歷來結算總計：{all_time} 學習幣"
    await message.answer(text, parse_mode="HTML")


# ── /payout ──────────────────────────────────────────────


@router.message(Command("payout"))
async def cmd_payout(message: Message, services: Services) -> None:
    result = await services.ledger.perform_weekly_payout()
    if not result.success:
        await message.answer(f"❌ {result.reason}")
        return
    await message.answer(
        format_settlement_certificate(result.certificate)
        + "\n\n可以用 /exchange 把學習幣兌換成零用錢！",
        parse_mode="HTML",
    )


# ── /history ─────────────────────────────────────────────


@router.message(Command("history"))
async def cmd_history(message: Message, services: Services) -> None:
    ledgers = await services.ledger.get_weekly_history()
    await message.answer(format_weekly_history(ledgers[:HISTORY_WEEKS]), parse_mode="HTML")


# ── /exchange ────────────────────────────────────────────


def parse_exchange_args(args: str | None) -> tuple[str | None, int | None]:
    """Split ``/exchange`` arguments into (week id, amount).

    Accepts ``30``, ``2025-W10`` or ``2025-W10 30``; either part may be
    missing. Raises ValueError for anything else.
    """
    week_id = amount = None
    for part in (args or "").split():
        if week_id is None and amount is None and WEEK_ID_RE.match(part):
            week_id = part
        elif amount is None and part.isdigit():
            amount = int(part)
        else:
            raise ValueError(f"Unexpected exchange argument: {part}")
    return week_id, amount


async def _submit_exchange(
    message: Message, services: Services, amount: int, week_id: str | None = None
) -> None:
    if week_id is None:
        target = await _latest_settled_week(services)
        if target is None:
            await message.answer("目前沒有已結算、可兌換的學習幣。")
            return
        week_id, _ = target

    result = await services.ledger.request_exchange(week_id, amount)
    if not result.success:
        await message.answer(f"❌ {result.reason}")
        return

    exchange = result.exchange
    await message.answer(
        f"📨 已送出兌換申請：{exchange.coins_exchanged} 學習幣 → "
        f"{exchange.ntd_amount} 元\n等待家長確認。",
        reply_markup=exchange_review_kb(exchange.id),
    )


@router.message(Command("exchange"))
async def cmd_exchange(
    message: Message, command: CommandObject, state: FSMContext, services: Services
) -> None:
    await state.clear()
    try:
        week_id, amount = parse_exchange_args(command.args)
    except ValueError:
        await message.answer("用法：/exchange [週次] [學習幣]，例如 /exchange 2025-W10 30")
        return
    if amount is not None:
        await _submit_exchange(message, services, amount, week_id)
        return

    if week_id is None:
        target = await _latest_settled_week(services)
        if target is None:
            await message.answer("目前沒有已結算、可兌換的學習幣。")
            return
        week_id, available = target
    else:
        available = await services.ledger.get_available_coins_for_exchange(week_id)
    await state.set_state(ExchangeRequest.waiting_amount)
    await state.update_data(week_id=week_id)
    await message.answer(
        f"{week_id} 可兌換 {available} 學習幣（約 {exchange_ntd(available)} 元）。\n"
        f"要兌換多少？（最少 {MIN_EXCHANGE_COINS}，每 10 學習幣 = 1 元）"
    )


@router.message(ExchangeRequest.waiting_amount)
async def process_exchange_amount(message: Message, state: FSMContext, services: Services) -> None:
    text = (message.text or "").strip()
    if not text.isdigit():
        await message.answer("請輸入數字：")
        return
    data = await state.get_data()
    await state.clear()
    await _submit_exchange(message, services, int(text), data.get("week_id"))


# ── /exchanges: guardian review ──────────────────────────


@router.message(Command("exchanges"))
async def cmd_exchanges(message: Message, services: Services) -> None:
    exchanges = await services.ledger.get_exchanges()
    if not exchanges:
        await message.answer("還沒有兌換紀錄。")
        return
    for exchange in exchanges:
        kb = exchange_review_kb(exchange.id) if exchange.status == EXCHANGE_PENDING else None
        await message.answer(format_exchange(exchange), reply_markup=kb)


@router.callback_query(F.data.startswith("exch:"))
async def review_exchange_cb(callback: CallbackQuery, services: Services) -> None:
    _, status, exchange_id = callback.data.split(":", 2)
    try:
        exchange = await services.ledger.update_exchange_status(exchange_id, status)
    except (ExchangeNotFoundError, ValueError):
        await callback.answer("找不到這筆兌換申請。", show_alert=True)
        return
    await callback.answer(EXCHANGE_STATUS_LABELS[exchange.status])
    await callback.message.edit_text(format_exchange(exchange))
