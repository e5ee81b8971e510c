from __future__ import annotations

import logging

from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from ..ai_gateway import AIErrorType, AIServiceError
from ..keyboards import tasks_kb
from ..models import STATUS_COMPLETED
from ..scoring import TYPE_LABELS, format_task_list
from ..services import Services, ai_config_for
from ..task_generator import GenerationBusyError, TaskNotFoundError

logger = logging.getLogger(__name__)

router = Router()

AI_ERROR_HINTS = {
    AIErrorType.AUTH_ERROR: "🔑 API Key 無效或未設定，請檢查設定或用 /backend 換一個模型。",
    AIErrorType.RATE_LIMIT: "⏳ AI 服務忙碌中，請稍後再試。",
    AIErrorType.NETWORK_ERROR: "📡 網路連線失敗，請檢查網路後再試。",
    AIErrorType.INVALID_RESPONSE: "🤔 AI 回應格式不正確，請再試一次。",
    AIErrorType.UNKNOWN: "⚠️ 產生任務時發生錯誤，請再試一次。",
}


async def send_tasks(bot: Bot, chat_id: int, services: Services) -> None:
    """Generate (if needed) and send today's tasks. Used by scheduler and /tasks."""
    profile = await services.profiles.get_profile()
    if not profile:
        await bot.send_message(chat_id, "請先用 /start 建立冒險者資料。")
        return

    try:
        tasks = await services.generator.create_daily_tasks(ai_config_for(profile))
    except AIServiceError as e:
        logger.error("Task generation failed for %s: %s", chat_id, e)
        await bot.send_message(chat_id, AI_ERROR_HINTS[e.error_type])
        return
    except GenerationBusyError:
        await bot.send_message(chat_id, "⏳ 任務還在產生中，請稍後再用 /tasks 查看。")
        return

    today = services.generator.clock().strftime("%m/%d")
    await bot.send_message(
        chat_id,
        format_task_list(tasks, today),
        reply_markup=tasks_kb(tasks),
        parse_mode="HTML",
    )


async def _refresh(callback: CallbackQuery, services: Services) -> None:
    tasks = await services.generator.get_todays_tasks()
    today = services.generator.clock().strftime("%m/%d")
    await callback.message.edit_text(
        format_task_list(tasks, today),
        reply_markup=tasks_kb(tasks),
        parse_mode="HTML",
    )


@router.message(Command("tasks"))
async def cmd_tasks(message: Message, services: Services) -> None:
    await message.answer("🔮 正在準備今日任務…")
    await send_tasks(message.bot, message.chat.id, services)


@router.callback_query(F.data.startswith("start:"))
async def start_task_cb(callback: CallbackQuery, services: Services) -> None:
    task_id = callback.data.split(":", 1)[1]
    try:
        task = await services.generator.start_task(task_id)
    except TaskNotFoundError:
        await callback.answer("找不到這個任務。", show_alert=True)
        return

    await callback.answer(f"{TYPE_LABELS.get(task.type, task.type)}：{task.content}，加油！")
    await _refresh(callback, services)


@router.callback_query(F.data.startswith("complete:"))
async def complete_task_cb(callback: CallbackQuery, services: Services) -> None:
    task_id = callback.data.split(":", 1)[1]
    try:
        task = await services.generator.complete_task(task_id)
    except TaskNotFoundError:
        await callback.answer("找不到這個任務。", show_alert=True)
        return

    total = await services.ledger.get_current_week_total()
    await callback.answer(f"🎉 獲得 {task.reward} 學習幣！本週共 {total}", show_alert=True)
    await _refresh(callback, services)

    tasks = await services.generator.get_todays_tasks()
    if tasks and all(t.status == STATUS_COMPLETED for t in tasks):
        await callback.message.answer("🏆 今日任務全部完成，明天見！")


@router.callback_query(F.data.startswith("done:"))
async def done_task_cb(callback: CallbackQuery) -> None:
    await callback.answer("✅ 這個任務已經完成了")
