"""Curated tasks used when the AI backend cannot supply enough unique ones."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Collection

from .content_config import DEFAULT_LIBRARY, PHRASE_PROMPT, ContentLibrary
from .models import TASK_CHARACTER, TASK_PHRASE, TASK_WORD, DailyTask
from .scoring import (
    character_repetitions,
    character_reward,
    phrase_reward,
    word_repetitions,
    word_reward,
)
from .strokes import StrokeLookup

logger = logging.getLogger(__name__)


def pick_unused(candidates: tuple[str, ...], used: Collection[str]) -> str:
    """First candidate not yet used; the first one again when all are used."""
    for item in candidates:
        if item not in used:
            return item
    return candidates[0]


class FallbackContentProvider:
    def __init__(self, strokes: StrokeLookup, library: ContentLibrary = DEFAULT_LIBRARY) -> None:
        self.strokes = strokes
        self.library = library

    async def build_tasks(self, grade: int, history: Collection[str], day: str) -> list[DailyTask]:
        """One character, one word and one phrase task for ``grade``."""
        content = self.library.for_grade(grade)
        used = set(history)

        char = pick_unused(content.characters, used)
        used.add(char)
        strokes = await self.strokes.get_stroke_count(char)
        repetitions = character_repetitions(strokes)
        char_task = DailyTask(
            id=uuid.uuid4().hex,
            date=day,
            content=char,
            type=TASK_CHARACTER,
            details={"strokes": strokes, "repetitions": repetitions},
            reward=character_reward(strokes, grade, content.stroke_range, repetitions),
        )

        word = pick_unused(content.words, used)
        used.add(word)
        word_strokes = await self.strokes.get_total_strokes(word)
        word_task = DailyTask(
            id=uuid.uuid4().hex,
            date=day,
            content=word,
            type=TASK_WORD,
            details={"strokes": word_strokes, "repetitions": word_repetitions(word)},
            reward=word_reward(word_strokes, len(word), grade, content.stroke_range),
        )

        phrase = pick_unused(content.phrases, used)
        phrase_strokes = await self.strokes.get_total_strokes(phrase)
        phrase_task = DailyTask(
            id=uuid.uuid4().hex,
            date=day,
            content=phrase,
            type=TASK_PHRASE,
            details={"sentence": PHRASE_PROMPT.format(phrase=phrase)},
            reward=phrase_reward(phrase_strokes, len(phrase), grade, content.stroke_range),
        )

        logger.info("Fallback tasks for grade %d: %s, %s, %s", grade, char, word, phrase)
        return [char_task, word_task, phrase_task]
