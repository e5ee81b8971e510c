from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from .models import (
    EXCHANGE_APPROVED,
    EXCHANGE_PAID,
    EXCHANGE_REJECTED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    DailyTask,
)

BACKEND_LABELS = {
    "gemini": "✨ Gemini",
    "openai": "🤖 OpenAI",
    "claude": "🧠 Claude",
}


# ── Setup: AI backend selection ──────────────────────────


def backend_selection_kb(current: str | None = None) -> InlineKeyboardMarkup:
    buttons = []
    for key, label in BACKEND_LABELS.items():
        text = f"✅ {label}" if key == current else label
        buttons.append([InlineKeyboardButton(text=text, callback_data=f"backend:{key}")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


# ── Child: today's tasks ─────────────────────────────────


def tasks_kb(tasks: list[DailyTask]) -> InlineKeyboardMarkup:
    buttons: list[list[InlineKeyboardButton]] = []
    for task in tasks:
        if task.status == STATUS_COMPLETED:
            buttons.append([InlineKeyboardButton(
                text=f"✅ {task.content}（+{task.reward}）",
                callback_data=f"done:{task.id}",
            )])
        elif task.status == STATUS_PENDING:
            buttons.append([InlineKeyboardButton(
                text=f"▶️ 開始 {task.content}",
                callback_data=f"start:{task.id}",
            )])
        else:
            buttons.append([InlineKeyboardButton(
                text=f"🏁 完成 {task.content}（+{task.reward}）",
                callback_data=f"complete:{task.id}",
            )])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


# ── Guardian: exchange review ────────────────────────────


def exchange_review_kb(exchange_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(
                    text="👍 核准", callback_data=f"exch:{EXCHANGE_APPROVED}:{exchange_id}"
                ),
                InlineKeyboardButton(
                    text="💰 已發放", callback_data=f"exch:{EXCHANGE_PAID}:{exchange_id}"
                ),
            ],
            [
                InlineKeyboardButton(
                    text="❌ 拒絕", callback_data=f"exch:{EXCHANGE_REJECTED}:{exchange_id}"
                ),
            ],
        ]
    )
