import logging

from aiogram import Bot
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import MORNING_HOUR, MORNING_MINUTE, SETTLEMENT_HOUR, TIMEZONE
from .handlers.child import send_tasks
from .scoring import format_week_status
from .services import Services

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def setup_scheduler(bot: Bot, services: Services) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=TIMEZONE)
    settlement_day = WEEKDAY_NAMES[services.ledger.settlement_weekday]

    # Today's tasks every morning
    scheduler.add_job(
        morning_tasks,
        CronTrigger(hour=MORNING_HOUR, minute=MORNING_MINUTE, timezone=TIMEZONE),
        args=[bot, services],
        id="morning_tasks",
        replace_existing=True,
    )

    # Settlement window opens
    scheduler.add_job(
        settlement_reminder,
        CronTrigger(day_of_week=settlement_day, hour=SETTLEMENT_HOUR, minute=0, timezone=TIMEZONE),
        args=[bot, services],
        id="settlement_reminder",
        replace_existing=True,
    )

    # Close unsettled weeks right after the week rolls over
    scheduler.add_job(
        forfeit_sweep,
        CronTrigger(day_of_week="mon", hour=0, minute=5, timezone=TIMEZONE),
        args=[bot, services],
        id="forfeit_sweep",
        replace_existing=True,
    )

    return scheduler


async def morning_tasks(bot: Bot, services: Services) -> None:
    logger.info("Preparing morning tasks")
    profile = await services.profiles.get_profile()
    if profile is None or profile.chat_id is None:
        logger.info("No registered chat, skipping morning tasks")
        return
    try:
        await send_tasks(bot, profile.chat_id, services)
    except Exception as e:
        logger.error("Failed to send morning tasks to %s: %s", profile.chat_id, e)


async def settlement_reminder(bot: Bot, services: Services) -> None:
    logger.info("Sending settlement reminder")
    profile = await services.profiles.get_profile()
    if profile is None or profile.chat_id is None:
        return
    try:
        ledger = await services.ledger.get_current_week_ledger()
        text = (
            f"{format_week_status(ledger)}\n\n"
            "⏰ 結算時間到了！今晚記得用 /payout 結算，"
            "錯過的話本週學習幣會歸零。"
        )
        await bot.send_message(profile.chat_id, text, parse_mode="HTML")
    except Exception as e:
        logger.error("Failed to send settlement reminder to %s: %s", profile.chat_id, e)


async def forfeit_sweep(bot: Bot, services: Services) -> None:
    logger.info("Checking for missed settlements")
    forfeited = await services.ledger.forfeit_missed_settlements()
    if not forfeited:
        return
    profile = await services.profiles.get_profile()
    if profile is None or profile.chat_id is None:
        return
    try:
        await bot.send_message(
            profile.chat_id,
            f"😢 {', '.join(forfeited)} 沒有結算，學習幣已經歸零。這週要記得喔！",
        )
    except Exception as e:
        logger.error("Failed to send forfeit notice to %s: %s", profile.chat_id, e)
