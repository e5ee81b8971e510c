"""Profile setup and grade derivation."""

from __future__ import annotations

import logging

from .database import ProfileStore
from .models import AI_BACKENDS, UserProfile

logger = logging.getLogger(__name__)


class ProfileNotFoundError(LookupError):
    pass


def get_display_grade(age: int) -> int:
    """School grade shown to the child: 6-7 y.o. = 1st grade, capped at 6."""
    return max(1, min(6, age - 6))


def get_learning_grade(age: int) -> int:
    """Content is always one grade ahead; 7 is the advanced grade-6 tier."""
    return min(7, get_display_grade(age) + 1)


class ProfileService:
    def __init__(self, store: ProfileStore) -> None:
        self.store = store

    async def get_profile(self) -> UserProfile | None:
        return await self.store.get()

    async def has_profile(self) -> bool:
        return await self.store.get() is not None

    async def create_profile(
        self,
        name: str,
        age: int,
        ai_backend: str,
        avatar_id: str = "",
        chat_id: int | None = None,
    ) -> UserProfile:
        if ai_backend not in AI_BACKENDS:
            raise ValueError(f"Unsupported AI backend: {ai_backend}")
        profile = UserProfile(
            name=name, age=age, avatar_id=avatar_id, ai_backend=ai_backend, chat_id=chat_id
        )
        profile.id = await self.store.add(profile)
        logger.info("Profile created for %s (age %d)", name, age)
        return profile

    async def set_ai_backend(self, ai_backend: str) -> UserProfile:
        if ai_backend not in AI_BACKENDS:
            raise ValueError(f"Unsupported AI backend: {ai_backend}")
        profile = await self.store.get()
        if profile is None:
            raise ProfileNotFoundError("No user profile found")
        await self.store.update(profile.id, ai_backend=ai_backend)
        profile.ai_backend = ai_backend
        return profile

    async def set_chat_id(self, chat_id: int) -> None:
        profile = await self.store.get()
        if profile is not None:
            await self.store.update(profile.id, chat_id=chat_id)
