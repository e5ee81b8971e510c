"""Daily task pipeline and task lifecycle."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Callable

from .ai_gateway import AIConfig, AIErrorType, AIGateway, AIServiceError, GenerationRequest
from .config import GENERATION_WAIT_SECONDS
from .content_config import (
    DAILY_TASK_COUNT,
    DEDUP_WINDOW_DAYS,
    MAX_GENERATION_ATTEMPTS,
    PROMPT_HISTORY_LIMIT,
)
from .database import ProfileStore, TaskStore
from .fallback import FallbackContentProvider
from .ledger import WeeklyLedgerService, local_now
from .models import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING, DailyTask
from .profiles import ProfileNotFoundError, get_learning_grade

logger = logging.getLogger(__name__)


class TaskNotFoundError(LookupError):
    pass


class GenerationBusyError(RuntimeError):
    pass


class TaskGenerator:
    def __init__(
        self,
        profiles: ProfileStore,
        tasks: TaskStore,
        ledger: WeeklyLedgerService,
        gateway: AIGateway,
        fallback: FallbackContentProvider,
        clock: Callable[[], datetime] = local_now,
        wait_timeout: float = GENERATION_WAIT_SECONDS,
    ) -> None:
        self.profiles = profiles
        self.tasks = tasks
        self.ledger = ledger
        self.gateway = gateway
        self.fallback = fallback
        self.clock = clock
        self.wait_timeout = wait_timeout
        self._lock = asyncio.Lock()

    def _today(self) -> date:
        return self.clock().date()

    # ── Queries ───────────────────────────────────────

    async def get_task(self, task_id: str) -> DailyTask | None:
        return await self.tasks.get(task_id)

    async def get_tasks_for_date(self, day: date) -> list[DailyTask]:
        return await self.tasks.for_date(day.isoformat())

    async def get_todays_tasks(self) -> list[DailyTask]:
        """Today's tasks; anything beyond the daily quota is deleted."""
        tasks = await self.get_tasks_for_date(self._today())
        if len(tasks) > DAILY_TASK_COUNT:
            logger.warning("Found %d tasks for today, removing extras", len(tasks))
            for task in tasks[DAILY_TASK_COUNT:]:
                await self.tasks.delete(task.id)
            tasks = tasks[:DAILY_TASK_COUNT]
        return tasks

    async def get_pending_tasks(self) -> list[DailyTask]:
        return await self.tasks.query(lambda t: t.status == STATUS_PENDING)

    async def get_completed_tasks_for_week(self, start_date: date) -> list[DailyTask]:
        end_date = start_date + timedelta(days=6)
        tasks = await self.tasks.for_range(start_date.isoformat(), end_date.isoformat())
        return [t for t in tasks if t.status == STATUS_COMPLETED]

    async def _historical_contents(self) -> list[str]:
        """Every content ever assigned, deduplicated, oldest first."""
        seen: dict[str, None] = {}
        for task in await self.tasks.get_all():
            seen.pop(task.content, None)
            seen[task.content] = None
        return list(seen)

    async def _recent_contents(self) -> set[str]:
        since = (self._today() - timedelta(days=DEDUP_WINDOW_DAYS)).isoformat()
        recent = await self.tasks.query(lambda t: t.date >= since)
        return {t.content for t in recent}

    # ── Generation ────────────────────────────────────

    async def create_daily_tasks(self, ai_config: AIConfig) -> list[DailyTask]:
        """Return today's tasks, generating and persisting them on first call."""
        if self._lock.locked():
            logger.info("Task generation in progress, waiting for it to finish")
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.wait_timeout)
        except asyncio.TimeoutError as e:
            raise GenerationBusyError("Task generation is still running") from e

        try:
            existing = await self.get_todays_tasks()
            if existing:
                logger.info("%d tasks already exist for today, not regenerating", len(existing))
                return existing
            return await self._generate(ai_config)
        finally:
            self._lock.release()

    async def _generate(self, ai_config: AIConfig) -> list[DailyTask]:
        profile = await self.profiles.get()
        if profile is None:
            raise ProfileNotFoundError("No user profile found")

        today = self._today().isoformat()
        grade = get_learning_grade(profile.age)
        history = await self._historical_contents()
        recent = await self._recent_contents()

        accepted: list[DailyTask] = []
        accepted_contents: set[str] = set()
        last_error: AIServiceError | None = None

        for attempt in range(1, MAX_GENERATION_ATTEMPTS + 1):
            if len(accepted) >= DAILY_TASK_COUNT:
                break
            logger.info("Generating tasks, attempt %d", attempt)
            request = GenerationRequest(
                age=profile.age,
                grade=grade,
                previous_content=history[-PROMPT_HISTORY_LIMIT:]
                + [t.content for t in accepted],
            )
            try:
                response = await self.gateway.generate(ai_config, request)
            except AIServiceError as e:
                last_error = e
                logger.warning("Attempt %d failed: %s", attempt, e)
                if e.error_type == AIErrorType.AUTH_ERROR:
                    break
                continue

            dropped = 0
            for proposal in response.tasks:
                if proposal.content in recent or proposal.content in accepted_contents:
                    dropped += 1
                    continue
                accepted.append(
                    DailyTask(
                        id=uuid.uuid4().hex,
                        date=today,
                        content=proposal.content,
                        type=proposal.type,
                        details=proposal.details,
                        reward=proposal.reward,
                    )
                )
                accepted_contents.add(proposal.content)
                if len(accepted) >= DAILY_TASK_COUNT:
                    break
            if dropped:
                logger.info("Filtered %d duplicate tasks", dropped)

        if len(accepted) < DAILY_TASK_COUNT:
            logger.warning(
                "Only %d/%d unique tasks from AI, topping up with fallback content",
                len(accepted),
                DAILY_TASK_COUNT,
            )
            for task in await self.fallback.build_tasks(
                grade, [*history, *accepted_contents], today
            ):
                if len(accepted) >= DAILY_TASK_COUNT:
                    break
                if task.content in accepted_contents or task.content in recent:
                    continue
                accepted.append(task)
                accepted_contents.add(task.content)

        if not accepted and last_error is not None:
            raise last_error

        final = accepted[:DAILY_TASK_COUNT]
        await self.tasks.add_many(final)
        logger.info("Saved %d tasks for %s", len(final), today)
        return final

    # ── Lifecycle ─────────────────────────────────────

    async def _require(self, task_id: str) -> DailyTask:
        task = await self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    async def start_task(self, task_id: str) -> DailyTask:
        task = await self._require(task_id)
        if task.status != STATUS_PENDING:
            return task
        await self.tasks.update(task_id, status=STATUS_IN_PROGRESS)
        task.status = STATUS_IN_PROGRESS
        return task

    async def complete_task(self, task_id: str) -> DailyTask:
        """Complete a task and credit its reward to the current week, once."""
        task = await self._require(task_id)
        if task.status == STATUS_COMPLETED:
            return task

        completed_at = self.clock()
        if not await self.tasks.mark_completed(task_id, completed_at):
            return await self._require(task_id)

        task.status = STATUS_COMPLETED
        task.completed_at = completed_at
        await self.ledger.add_reward(task.reward, task_id)
        return task
