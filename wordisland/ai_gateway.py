"""AI text-generation gateway: prompt, backend dispatch, error classification, parsing."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiohttp

from .config import (
    AI_TIMEOUT_SECONDS,
    CLAUDE_MODEL,
    CLAUDE_URL,
    GEMINI_URL,
    OPENAI_MODEL,
    OPENAI_URL,
)
from .content_config import ADVANCED_GRADE, DEFAULT_LIBRARY, PROMPT_HISTORY_LIMIT, ContentLibrary
from .models import TASK_CHARACTER, TASK_PHRASE, TASK_TYPES, TASK_WORD
from .scoring import character_repetitions, reward_cap, word_repetitions
from .strokes import StrokeLookup

logger = logging.getLogger(__name__)


class AIErrorType(str, Enum):
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNKNOWN = "UNKNOWN"


class AIServiceError(Exception):
    def __init__(
        self,
        message: str,
        error_type: AIErrorType,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error


@dataclass
class AIConfig:
    backend: str
    api_key: str


@dataclass
class GenerationRequest:
    age: int
    grade: int
    previous_content: list[str] = field(default_factory=list)


@dataclass
class GeneratedTask:
    content: str
    type: str
    details: dict[str, Any]
    reward: int


@dataclass
class GenerationResponse:
    tasks: list[GeneratedTask]


# ── Prompt ───────────────────────────────────────────────

_GRADE_GUIDANCE = {
    "early": (
        "- 學習重點：形聲字、會意字、生活常用詞\n"
        "- 詞彙特色：校園生活、人際關係、基礎情感表達\n"
        "- 範例詞彙：朋友、故事、老師、同學、班級"
    ),
    "middle": (
        "- 學習重點：抽象概念詞、社會議題、環境認知\n"
        "- 詞彙特色：品格教育、環境保護、公民意識\n"
        "- 範例詞彙：環境、保護、民主、自由、正義"
    ),
    "upper": (
        "- 學習重點：科學概念、邏輯思維、學術詞彙\n"
        "- 詞彙特色：抽象思考、科技發展、哲學概念\n"
        "- 範例詞彙：科學、技術、邏輯、分析、創新"
    ),
    "advanced": (
        "- 學習重點：文學詞彙、古典用語、高階抽象概念\n"
        "- 詞彙特色：約三成冷僻字、成語典故、詩詞用語\n"
        "- 範例詞彙：璀璨、磅礴、蒼穹、翱翔、浩瀚"
    ),
}

_EXAMPLE_OUTPUT = {
    "tasks": [
        {"content": "朋", "type": "character", "details": {"strokes": 8, "repetitions": 5}, "reward": 6},
        {"content": "朋友", "type": "word", "details": {"repetitions": 6}, "reward": 6},
        {
            "content": "故事",
            "type": "phrase",
            "details": {"sentence": "請用「故事」造一個完整的句子，描述你聽過的故事。"},
            "reward": 7,
        },
    ]
}


def _guidance_for(grade: int) -> str:
    if grade == ADVANCED_GRADE:
        return _GRADE_GUIDANCE["advanced"]
    if grade <= 2:
        return _GRADE_GUIDANCE["early"]
    if grade <= 4:
        return _GRADE_GUIDANCE["middle"]
    return _GRADE_GUIDANCE["upper"]


def build_prompt(request: GenerationRequest, library: ContentLibrary = DEFAULT_LIBRARY) -> str:
    previous = request.previous_content[-PROMPT_HISTORY_LIMIT:]
    previous_list = "、".join(previous) if previous else "無"
    content = library.for_grade(request.grade)
    min_stroke, max_stroke = content.stroke_range

    range_table = "\n".join(
        f"  - 第{g}級：{c.stroke_range[0]}-{c.stroke_range[1]}筆畫（{c.difficulty}）"
        for g, c in sorted(library.grades.items())
    )
    advanced_bonus = "- 六年級進階額外獎勵：+1 學習幣\n" if request.grade == ADVANCED_GRADE else ""
    example = json.dumps(_EXAMPLE_OUTPUT, ensure_ascii=False, indent=2)

    return (
        f"你是台灣國小國語文教學專家，熟悉教育部課程綱要。"
        f"請為 {request.age} 歲學生生成 3 個超前學習任務。\n\n"
        f"**超前學習設定：**\n"
        f"- 學生年齡：{request.age} 歲\n"
        f"- 學習級別：第 {request.grade} 級（{content.difficulty}）\n"
        f"- 目標筆畫：{min_stroke}-{max_stroke} 筆畫\n"
        f"- 各級筆畫範圍：\n{range_table}\n\n"
        f"**嚴格避重規則：**\n"
        f"絕對不可使用已學字詞：{previous_list}\n\n"
        f"**生成 3 個任務：**\n"
        f"1. 單字書寫任務（含筆畫數、練習次數）\n"
        f"2. 詞語書寫任務（雙字詞，重複練習）\n"
        f"3. 詞語造句應用（提供造句指導）\n\n"
        f"**教學重點：**\n{_guidance_for(request.grade)}\n\n"
        f"**獎勵計算：**\n"
        f"- 單字任務：基礎 3 + 筆畫符合度（符合 +1、超出 +2、低於 -1）+ 難度 + 次數加成，上限 10\n"
        f"- 詞語書寫：基礎 5 + 複雜度加成（25-29 筆畫 +1、30 筆畫以上 +2），上限 9\n"
        f"- 詞語造句：基礎 6 + 複雜度加成（18 筆畫或 2 字 +1、25 筆畫或 3 字 +2），上限 10\n"
        f"{advanced_bonus}\n"
        f"**品質要求：**使用台灣繁體字與用語，避開簡體字與異體字，符合該年級認知程度。\n\n"
        f"只回傳 JSON，格式範例：\n{example}\n"
    )


# ── Response parsing ─────────────────────────────────────


def extract_json_object(text: str) -> dict[str, Any] | None:
    """First top-level JSON object in free-form text, or None."""
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escape = False
        for i in range(start, len(text)):
            ch = text[i]
            if escape:
                escape = False
                continue
            if ch == "\\" and in_string:
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(text[start : i + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(parsed, dict):
                        return parsed
                    break
        start = text.find("{", start + 1)
    return None


def parse_ai_response(text: str) -> list[dict[str, Any]]:
    """Raw ``tasks`` list from the backend's text output."""
    parsed = extract_json_object(text)
    if parsed is None:
        logger.error("No JSON object in AI response: %.200s", text)
        raise AIServiceError("AI 回應中沒有找到 JSON 格式的內容", AIErrorType.INVALID_RESPONSE)
    tasks = parsed.get("tasks")
    if not isinstance(tasks, list):
        raise AIServiceError("AI 回應格式不正確，缺少任務陣列", AIErrorType.INVALID_RESPONSE)
    return tasks


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ── Gateway ──────────────────────────────────────────────


class AIGateway:
    """Dispatches generation requests to gemini / openai / claude."""

    def __init__(
        self,
        strokes: StrokeLookup | None = None,
        library: ContentLibrary = DEFAULT_LIBRARY,
        timeout: float = AI_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
        gemini_url: str = GEMINI_URL,
        openai_url: str = OPENAI_URL,
        claude_url: str = CLAUDE_URL,
    ) -> None:
        self.strokes = strokes
        self.library = library
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session
        self.urls = {"gemini": gemini_url, "openai": openai_url, "claude": claude_url}

    async def generate(self, config: AIConfig, request: GenerationRequest) -> GenerationResponse:
        prompt = build_prompt(request, self.library)
        try:
            if not config.api_key:
                raise AIServiceError(
                    f"尚未設定 {config.backend} 的 API Key", AIErrorType.AUTH_ERROR
                )
            if config.backend == "gemini":
                text = await self._call_gemini(config.api_key, prompt)
            elif config.backend == "openai":
                text = await self._call_openai(config.api_key, prompt)
            elif config.backend == "claude":
                text = await self._call_claude(config.api_key, prompt)
            else:
                raise AIServiceError(
                    f"Unsupported AI backend: {config.backend}", AIErrorType.UNKNOWN
                )
            raw_tasks = parse_ai_response(text)
            tasks = await self._validate_tasks(raw_tasks, request.grade)
        except AIServiceError as e:
            logger.warning("AI generation via %s failed: %s (%s)", config.backend, e, e.error_type.value)
            raise
        except Exception as e:
            logger.exception("Unexpected AI gateway error via %s", config.backend)
            raise AIServiceError("產生任務時發生未知錯誤", AIErrorType.UNKNOWN, e) from e

        logger.info("AI backend %s proposed %d tasks", config.backend, len(tasks))
        return GenerationResponse(tasks=tasks)

    async def _post(self, name: str, url: str, headers: dict[str, str], payload: dict) -> Any:
        try:
            if self.session is not None:
                return await self._send(self.session, name, url, headers, payload)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, name, url, headers, payload)
        except AIServiceError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AIServiceError(
                "網路連線失敗，請檢查網路連線", AIErrorType.NETWORK_ERROR, e
            ) from e

    async def _send(
        self,
        session: aiohttp.ClientSession,
        name: str,
        url: str,
        headers: dict[str, str],
        payload: dict,
    ) -> Any:
        async with session.post(url, json=payload, headers=headers, timeout=self.timeout) as resp:
            if resp.status in (401, 403):
                raise AIServiceError(
                    f"API Key 無效或權限不足，請檢查你的 {name} API Key",
                    AIErrorType.AUTH_ERROR,
                )
            if resp.status == 429:
                raise AIServiceError("API 請求次數過多，請稍後再試", AIErrorType.RATE_LIMIT)
            if resp.status >= 300:
                raise AIServiceError(
                    f"{name} API 錯誤：{resp.status} {resp.reason}",
                    AIErrorType.NETWORK_ERROR,
                )
            try:
                return await resp.json(content_type=None)
            except ValueError as e:
                raise AIServiceError(
                    f"{name} API 回傳的不是 JSON", AIErrorType.INVALID_RESPONSE, e
                ) from e

    @staticmethod
    def _require_text(name: str, extract) -> str:
        try:
            text = extract()
        except (KeyError, IndexError, TypeError, AttributeError):
            text = None
        if not text or not isinstance(text, str):
            raise AIServiceError(f"{name} API 沒有回傳內容", AIErrorType.INVALID_RESPONSE)
        return text

    async def _call_gemini(self, api_key: str, prompt: str) -> str:
        data = await self._post(
            "Gemini",
            self.urls["gemini"],
            {"Content-Type": "application/json", "x-goog-api-key": api_key},
            {"contents": [{"parts": [{"text": prompt}]}]},
        )
        return self._require_text(
            "Gemini", lambda: data["candidates"][0]["content"]["parts"][0]["text"]
        )

    async def _call_openai(self, api_key: str, prompt: str) -> str:
        data = await self._post(
            "OpenAI",
            self.urls["openai"],
            {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"},
            {
                "model": OPENAI_MODEL,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.7,
            },
        )
        return self._require_text("OpenAI", lambda: data["choices"][0]["message"]["content"])

    async def _call_claude(self, api_key: str, prompt: str) -> str:
        data = await self._post(
            "Claude",
            self.urls["claude"],
            {
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": "2023-06-01",
            },
            {
                "model": CLAUDE_MODEL,
                "max_tokens": 1000,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return self._require_text("Claude", lambda: data["content"][0]["text"])

    async def _validate_tasks(self, raw_tasks: list[Any], grade: int) -> list[GeneratedTask]:
        tasks: list[GeneratedTask] = []
        for item in raw_tasks:
            if not isinstance(item, dict):
                logger.warning("Dropping non-object task from AI response: %r", item)
                continue
            content = item.get("content")
            task_type = item.get("type")
            if not isinstance(content, str) or not content.strip() or task_type not in TASK_TYPES:
                logger.warning("Dropping malformed task from AI response: %r", item)
                continue
            content = content.strip()
            details = item.get("details") if isinstance(item.get("details"), dict) else {}

            if task_type == TASK_CHARACTER:
                strokes = _as_int(details.get("strokes"))
                if self.strokes is not None and len(content) == 1:
                    strokes = await self.strokes.get_stroke_count(content)
                strokes = strokes if strokes and strokes > 0 else None
                repetitions = _as_int(details.get("repetitions"))
                if not repetitions or repetitions < 1:
                    repetitions = character_repetitions(strokes or 10)
                details = {"strokes": strokes, "repetitions": repetitions}
            elif task_type == TASK_WORD:
                repetitions = _as_int(details.get("repetitions"))
                details = {**details, "repetitions": repetitions or word_repetitions(content)}
            elif task_type == TASK_PHRASE and not details.get("sentence"):
                details = {**details, "sentence": f"請用「{content}」造一個完整的句子。"}

            reward = _as_int(item.get("reward")) or 1
            reward = max(1, min(reward, reward_cap(task_type)))
            tasks.append(GeneratedTask(content=content, type=task_type, details=details, reward=reward))
        return tasks
