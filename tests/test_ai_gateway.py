"""Tests for prompt construction, response parsing and backend error classification."""

from __future__ import annotations

import json

import pytest

from conftest import gemini_body, task_item
from wordisland.ai_gateway import (
    AIConfig,
    AIErrorType,
    AIGateway,
    AIServiceError,
    GenerationRequest,
    build_prompt,
    extract_json_object,
    parse_ai_response,
)

VALID_TASKS = [
    task_item("環", "character", 6, strokes=17, repetitions=9),
    task_item("保護", "word", 6, repetitions=6),
    task_item("污染", "phrase", 7, sentence="請用「污染」造句。"),
]


# ── Prompt ───────────────────────────────────────────────


class TestPrompt:
    def test_no_history(self):
        prompt = build_prompt(GenerationRequest(age=8, grade=3))
        assert "絕對不可使用已學字詞：無" in prompt
        assert "10-16筆畫" in prompt
        assert "8 歲" in prompt

    def test_history_capped_to_most_recent(self):
        previous = [f"x{i:02d}" for i in range(60)]
        prompt = build_prompt(GenerationRequest(age=8, grade=3, previous_content=previous))
        assert "x09" not in prompt
        assert "x10" in prompt
        assert "x59" in prompt

    def test_advanced_grade_mentions_bonus(self):
        prompt = build_prompt(GenerationRequest(age=13, grade=7))
        assert "六年級進階額外獎勵" in prompt
        assert "璀璨" in prompt

    def test_regular_grade_has_no_bonus_line(self):
        assert "額外獎勵" not in build_prompt(GenerationRequest(age=8, grade=3))


# ── Parsing ──────────────────────────────────────────────


class TestParsing:
    def test_extract_from_wrapped_text(self):
        text = '好的，這是任務：\n```json\n{"tasks": [{"content": "明"}]}\n```\n祝學習愉快！'
        assert extract_json_object(text) == {"tasks": [{"content": "明"}]}

    def test_braces_inside_strings(self):
        text = 'x {"tasks": [], "note": "use } and { freely"} y'
        assert extract_json_object(text) == {"tasks": [], "note": "use } and { freely"}

    def test_skips_broken_object(self):
        assert extract_json_object('{not json} {"tasks": []}') == {"tasks": []}

    def test_nothing_found(self):
        assert extract_json_object("no json here") is None
        assert extract_json_object("") is None

    def test_parse_requires_object(self):
        with pytest.raises(AIServiceError) as exc:
            parse_ai_response("抱歉，我無法完成。")
        assert exc.value.error_type == AIErrorType.INVALID_RESPONSE

    def test_parse_requires_task_list(self):
        with pytest.raises(AIServiceError) as exc:
            parse_ai_response('{"tasks": "明"}')
        assert exc.value.error_type == AIErrorType.INVALID_RESPONSE


# ── Backends ─────────────────────────────────────────────


class TestBackends:
    @pytest.mark.asyncio
    async def test_gemini(self, gateway, ai_server, ai_config):
        ai_server.reply(200, gemini_body(VALID_TASKS, prefix="```json\n"))
        response = await gateway.generate(ai_config, GenerationRequest(age=8, grade=3))
        assert [t.content for t in response.tasks] == ["環", "保護", "污染"]
        backend, payload = ai_server.requests[0]
        assert backend == "gemini"
        assert "環境" in payload["contents"][0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_openai(self, gateway, ai_server):
        text = json.dumps({"tasks": VALID_TASKS}, ensure_ascii=False)
        ai_server.reply(200, {"choices": [{"message": {"content": text}}]})
        response = await gateway.generate(
            AIConfig(backend="openai", api_key="k"), GenerationRequest(age=8, grade=3)
        )
        assert len(response.tasks) == 3
        assert ai_server.requests[0][0] == "openai"

    @pytest.mark.asyncio
    async def test_claude(self, gateway, ai_server):
        text = '{"tasks": [{"content": "明", "type": "character", "reward": 4}]}'
        ai_server.reply(200, {"content": [{"type": "text", "text": text}]})
        response = await gateway.generate(
            AIConfig(backend="claude", api_key="k"), GenerationRequest(age=6, grade=1)
        )
        assert response.tasks[0].content == "明"
        assert ai_server.requests[0][0] == "claude"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error_type",
        [
            (401, AIErrorType.AUTH_ERROR),
            (403, AIErrorType.AUTH_ERROR),
            (429, AIErrorType.RATE_LIMIT),
            (500, AIErrorType.NETWORK_ERROR),
            (503, AIErrorType.NETWORK_ERROR),
        ],
    )
    async def test_http_status_classification(self, gateway, ai_server, ai_config, status, error_type):
        ai_server.reply(status, {"error": {"message": "nope"}})
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(ai_config, GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == error_type

    @pytest.mark.asyncio
    async def test_non_json_body(self, gateway, ai_server, ai_config):
        ai_server.reply(200, "<html>gateway</html>")
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(ai_config, GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == AIErrorType.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_text(self, gateway, ai_server, ai_config):
        ai_server.reply(200, {"candidates": []})
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(ai_config, GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == AIErrorType.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_api_key_never_calls_backend(self, gateway, ai_server):
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(AIConfig(backend="gemini", api_key=""),
                                   GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == AIErrorType.AUTH_ERROR
        assert ai_server.requests == []

    @pytest.mark.asyncio
    async def test_unknown_backend(self, gateway):
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(AIConfig(backend="llama", api_key="k"),
                                   GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == AIErrorType.UNKNOWN

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, http, ai_config):
        gateway = AIGateway(session=http, timeout=2, gemini_url="http://127.0.0.1:9/gemini")
        with pytest.raises(AIServiceError) as exc:
            await gateway.generate(ai_config, GenerationRequest(age=8, grade=3))
        assert exc.value.error_type == AIErrorType.NETWORK_ERROR


# ── Task validation ──────────────────────────────────────


class TestValidation:
    @pytest.mark.asyncio
    async def test_malformed_items_dropped(self, gateway, ai_server, ai_config):
        ai_server.reply(200, gemini_body([
            "明",
            {"content": "", "type": "character", "reward": 3},
            {"content": "朋", "type": "poem", "reward": 3},
            task_item("友", "character", 4),
        ]))
        response = await gateway.generate(ai_config, GenerationRequest(age=6, grade=1))
        assert [t.content for t in response.tasks] == ["友"]

    @pytest.mark.asyncio
    async def test_rewards_clamped(self, gateway, ai_server, ai_config):
        ai_server.reply(200, gemini_body([
            task_item("明", "character", 99),
            task_item("朋友", "word", 50),
            task_item("故事", "phrase", -3),
        ]))
        response = await gateway.generate(ai_config, GenerationRequest(age=6, grade=1))
        assert [t.reward for t in response.tasks] == [10, 9, 1]

    @pytest.mark.asyncio
    async def test_character_strokes_verified(self, gateway, ai_server, ai_config, stroke_server):
        stroke_server.counts["明"] = 8
        ai_server.reply(200, gemini_body([task_item("明", "character", 5, strokes=3)]))
        response = await gateway.generate(ai_config, GenerationRequest(age=6, grade=1))
        assert response.tasks[0].details == {"strokes": 8, "repetitions": 5}

    @pytest.mark.asyncio
    async def test_defaults_filled(self, gateway, ai_server, ai_config):
        ai_server.reply(200, gemini_body([
            task_item("朋友", "word", 5),
            task_item("故事", "phrase", 6),
        ]))
        response = await gateway.generate(ai_config, GenerationRequest(age=6, grade=1))
        word, phrase = response.tasks
        assert word.details["repetitions"] == 6
        assert "故事" in phrase.details["sentence"]
