"""Wiring of stores and services around one DB connection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import aiohttp
import aiosqlite

from .ai_gateway import AIConfig, AIGateway
from .config import CONTENT_LIBRARY_PATH, api_key_for
from .content_config import ContentLibrary, load_content_library
from .database import LedgerStore, ProfileStore, TaskStore
from .fallback import FallbackContentProvider
from .ledger import WeeklyLedgerService, local_now
from .models import UserProfile
from .profiles import ProfileService
from .strokes import StrokeLookup
from .task_generator import TaskGenerator


@dataclass
class Services:
    profiles: ProfileService
    generator: TaskGenerator
    ledger: WeeklyLedgerService


def ai_config_for(profile: UserProfile) -> AIConfig:
    return AIConfig(backend=profile.ai_backend, api_key=api_key_for(profile.ai_backend))


def build_services(
    db: aiosqlite.Connection,
    session: aiohttp.ClientSession | None = None,
    library: ContentLibrary | None = None,
    clock: Callable[[], datetime] = local_now,
) -> Services:
    library = library or load_content_library(CONTENT_LIBRARY_PATH)
    profile_store = ProfileStore(db)
    strokes = StrokeLookup(library, session=session)
    ledger = WeeklyLedgerService(LedgerStore(db), clock=clock)
    generator = TaskGenerator(
        profiles=profile_store,
        tasks=TaskStore(db),
        ledger=ledger,
        gateway=AIGateway(strokes=strokes, library=library, session=session),
        fallback=FallbackContentProvider(strokes, library),
        clock=clock,
    )
    return Services(profiles=ProfileService(profile_store), generator=generator, ledger=ledger)
