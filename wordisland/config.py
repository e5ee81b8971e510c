import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")
TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Taipei")
MORNING_HOUR: int = int(os.getenv("MORNING_HOUR", "7"))
MORNING_MINUTE: int = int(os.getenv("MORNING_MINUTE", "0"))

# Weekly settlement window: weekday (0=Mon..6=Sun) at or after the hour
SETTLEMENT_WEEKDAY: int = int(os.getenv("SETTLEMENT_WEEKDAY", "6"))
SETTLEMENT_HOUR: int = int(os.getenv("SETTLEMENT_HOUR", "20"))

# AI backends
DEFAULT_AI_BACKEND: str = os.getenv("DEFAULT_AI_BACKEND", "gemini")
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
CLAUDE_API_KEY: str = os.getenv("CLAUDE_API_KEY", "")
GEMINI_URL: str = os.getenv(
    "GEMINI_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent",
)
OPENAI_URL: str = os.getenv("OPENAI_URL", "https://api.openai.com/v1/chat/completions")
OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
CLAUDE_URL: str = os.getenv("CLAUDE_URL", "https://api.anthropic.com/v1/messages")
CLAUDE_MODEL: str = os.getenv("CLAUDE_MODEL", "claude-3-5-sonnet-20241022")
AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

# Stroke data (hanzi-writer-data on jsDelivr)
STROKE_DATA_URL: str = os.getenv(
    "STROKE_DATA_URL", "https://cdn.jsdelivr.net/npm/hanzi-writer-data@2.0.0"
)
STROKE_TIMEOUT_SECONDS: float = float(os.getenv("STROKE_TIMEOUT_SECONDS", "5"))

# Max time a second caller waits for an in-flight generation run
GENERATION_WAIT_SECONDS: float = float(os.getenv("GENERATION_WAIT_SECONDS", "180"))

CONTENT_LIBRARY_PATH: str = os.getenv("CONTENT_LIBRARY_PATH", "")

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)
DB_PATH = DATA_DIR / "wordisland.db"


def api_key_for(backend: str) -> str:
    return {
        "gemini": GEMINI_API_KEY,
        "openai": OPENAI_API_KEY,
        "claude": CLAUDE_API_KEY,
    }.get(backend, "")
