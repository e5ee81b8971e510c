"""Tests for profiles and the scheduled bot jobs, with a recording bot stand-in."""

from __future__ import annotations

from datetime import datetime

import pytest

from conftest import gemini_body, task_item
from wordisland.database import LedgerStore
from wordisland.handlers.parent import parse_exchange_args
from wordisland.ledger import WeeklyLedgerService
from wordisland.models import LEDGER_PAID_OUT
from wordisland.profiles import ProfileNotFoundError
from wordisland.scheduler import forfeit_sweep, morning_tasks, settlement_reminder, setup_scheduler
from wordisland.services import Services, ai_config_for


class RecordingBot:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []

    async def send_message(self, chat_id, text, **kwargs):
        self.sent.append((chat_id, text))


@pytest.fixture
def services(profiles, generator, ledger) -> Services:
    return Services(profiles=profiles, generator=generator, ledger=ledger)


# ── Profiles ─────────────────────────────────────────────


class TestProfiles:
    @pytest.mark.asyncio
    async def test_create_and_read(self, profiles):
        assert not await profiles.has_profile()
        created = await profiles.create_profile("小美", 9, "claude", chat_id=42)
        profile = await profiles.get_profile()
        assert profile.id == created.id
        assert (profile.name, profile.age, profile.ai_backend, profile.chat_id) == (
            "小美", 9, "claude", 42,
        )
        assert profile.created_at is not None

    @pytest.mark.asyncio
    async def test_unknown_backend_rejected(self, profiles):
        with pytest.raises(ValueError):
            await profiles.create_profile("小美", 9, "llama")

    @pytest.mark.asyncio
    async def test_switch_backend(self, profiles):
        await profiles.create_profile("小美", 9, "gemini")
        await profiles.set_ai_backend("openai")
        assert (await profiles.get_profile()).ai_backend == "openai"

    @pytest.mark.asyncio
    async def test_switch_backend_without_profile(self, profiles):
        with pytest.raises(ProfileNotFoundError):
            await profiles.set_ai_backend("openai")

    @pytest.mark.asyncio
    async def test_chat_id_updated(self, profiles):
        await profiles.create_profile("小美", 9, "gemini")
        await profiles.set_chat_id(7)
        assert (await profiles.get_profile()).chat_id == 7

    def test_ai_config_uses_profile_backend(self, monkeypatch):
        from wordisland import services as services_module
        from wordisland.models import UserProfile

        monkeypatch.setattr(services_module, "api_key_for", lambda backend: f"key-{backend}")
        config = ai_config_for(UserProfile(name="小美", age=9, ai_backend="claude"))
        assert (config.backend, config.api_key) == ("claude", "key-claude")


# ── Scheduled jobs ───────────────────────────────────────


class TestScheduler:
    def test_jobs_registered(self, services):
        scheduler = setup_scheduler(RecordingBot(), services)
        ids = {job.id for job in scheduler.get_jobs()}
        assert ids == {"morning_tasks", "settlement_reminder", "forfeit_sweep"}

    @pytest.mark.asyncio
    async def test_morning_tasks_sent_to_registered_chat(
        self, services, profiles, ai_server, monkeypatch
    ):
        from wordisland import services as services_module

        monkeypatch.setattr(services_module, "api_key_for", lambda backend: "test-key")
        await profiles.create_profile("小明", 8, "gemini", chat_id=99)
        ai_server.reply(200, gemini_body([
            task_item("環", "character", 6),
            task_item("保護", "word", 6),
            task_item("污染", "phrase", 7),
        ]))
        bot = RecordingBot()

        await morning_tasks(bot, services)

        assert len(bot.sent) == 1
        chat_id, text = bot.sent[0]
        assert chat_id == 99
        assert "環" in text and "保護" in text and "污染" in text

    @pytest.mark.asyncio
    async def test_morning_tasks_skipped_without_chat(self, services, profiles):
        await profiles.create_profile("小明", 8, "gemini")
        bot = RecordingBot()
        await morning_tasks(bot, services)
        assert bot.sent == []

    @pytest.mark.asyncio
    async def test_settlement_reminder(self, services, profiles, ledger):
        await profiles.create_profile("小明", 8, "gemini", chat_id=99)
        await ledger.add_reward(12, "t1")
        bot = RecordingBot()
        await settlement_reminder(bot, services)
        assert "/payout" in bot.sent[0][1]
        assert "12" in bot.sent[0][1]

    @pytest.mark.asyncio
    async def test_forfeit_sweep_notifies(self, services, profiles, ledger, clock):
        await profiles.create_profile("小明", 8, "gemini", chat_id=99)
        await ledger.add_reward(12, "t1")
        clock.now = datetime(2025, 3, 17, 0, 5)
        bot = RecordingBot()

        await forfeit_sweep(bot, services)

        assert "2025-W10" in bot.sent[0][1]
        assert (await ledger.store.get("2025-W10")).status == LEDGER_PAID_OUT

    def test_settlement_reminder_follows_settlement_day(self, db, clock, profiles, generator):
        ledger = WeeklyLedgerService(LedgerStore(db), clock=clock, settlement_weekday=5)
        services = Services(profiles=profiles, generator=generator, ledger=ledger)
        scheduler = setup_scheduler(RecordingBot(), services)
        trigger = str(scheduler.get_job("settlement_reminder").trigger)
        assert "day_of_week='sat'" in trigger


# ── /exchange arguments ──────────────────────────────────


class TestExchangeArgs:
    @pytest.mark.parametrize(
        "args, expected",
        [
            (None, (None, None)),
            ("", (None, None)),
            ("30", (None, 30)),
            ("2025-W10", ("2025-W10", None)),
            ("2025-W10 30", ("2025-W10", 30)),
            ("  2025-W09   20 ", ("2025-W09", 20)),
        ],
    )
    def test_accepted_forms(self, args, expected):
        assert parse_exchange_args(args) == expected

    @pytest.mark.parametrize("args", ["abc", "30 2025-W10", "2025-W10 2025-W11", "30 40", "2025-10 30"])
    def test_rejected_forms(self, args):
        with pytest.raises(ValueError):
            parse_exchange_args(args)

    @pytest.mark.asyncio
    async def test_named_week_is_used(self, ledger, clock):
        await ledger.add_reward(30, "t1")
        clock.now = datetime(2025, 3, 16, 20, 30)
        await ledger.perform_weekly_payout()
        clock.advance(days=7)
        await ledger.add_reward(5, "t2")
        await ledger.perform_weekly_payout()

        week_id, amount = parse_exchange_args("2025-W10 20")
        result = await ledger.request_exchange(week_id, amount)

        assert result.success
        assert result.exchange.week_id == "2025-W10"
        assert await ledger.get_available_coins_for_exchange("2025-W10") == 10
        assert await ledger.get_available_coins_for_exchange("2025-W11") == 5
