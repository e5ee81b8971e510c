"""Pure scoring functions and message formatting, no DB or I/O."""

from __future__ import annotations

from math import ceil
from typing import Any

from .content_config import (
    ADVANCED_GRADE,
    CHARACTER_REWARD_CAP,
    DEFAULT_LIBRARY,
    EXCHANGE_RATE,
    PHRASE_REWARD_CAP,
    WORD_REWARD_CAP,
)
from .models import (
    CoinExchange,
    DailyTask,
    EXCHANGE_APPROVED,
    EXCHANGE_PAID,
    EXCHANGE_PENDING,
    EXCHANGE_REJECTED,
    LEDGER_PAID_OUT,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    TASK_CHARACTER,
    TASK_PHRASE,
    TASK_WORD,
    WeeklyLedger,
)


def _range_for(grade: int, stroke_range: tuple[int, int] | None) -> tuple[int, int]:
    return stroke_range if stroke_range is not None else DEFAULT_LIBRARY.stroke_range(grade)


def character_repetitions(strokes: int) -> int:
    return max(5, min(10, ceil(strokes / 2)))


def word_repetitions(word: str) -> int:
    return max(5, min(8, len(word) * 3))


def _average_range_bonus(total_strokes: int, length: int, stroke_range: tuple[int, int]) -> int:
    """Word/phrase fit: average strokes per character vs. the grade range."""
    min_stroke, max_stroke = stroke_range
    average = total_strokes / max(length, 1)
    if average < min_stroke:
        return -1
    if average > max_stroke:
        return 1
    return 0


def character_reward(
    strokes: int,
    grade: int,
    stroke_range: tuple[int, int] | None = None,
    repetitions: int | None = None,
) -> int:
    """Base 3, range fit, legacy stroke bonus (stacks), repetitions, advanced tier. Max 10."""
    min_stroke, max_stroke = _range_for(grade, stroke_range)
    if repetitions is None:
        repetitions = character_repetitions(strokes)

    reward = 3
    if strokes < min_stroke:
        reward -= 1
    elif strokes > max_stroke:
        reward += 2
    else:
        reward += 1

    if strokes >= 20:
        reward += 3
    elif strokes >= 17:
        reward += 2
    elif strokes >= 13:
        reward += 1

    if repetitions >= 9:
        reward += 3
    elif repetitions >= 8:
        reward += 2
    elif repetitions >= 5:
        reward += 1

    if grade == ADVANCED_GRADE:
        reward += 1

    return min(reward, CHARACTER_REWARD_CAP)


def word_reward(
    total_strokes: int,
    length: int,
    grade: int,
    stroke_range: tuple[int, int] | None = None,
) -> int:
    reward = 5 + _average_range_bonus(total_strokes, length, _range_for(grade, stroke_range))

    if total_strokes >= 30:
        reward += 2
    elif total_strokes >= 25:
        reward += 1

    if grade == ADVANCED_GRADE:
        reward += 1

    return min(reward, WORD_REWARD_CAP)


def phrase_reward(
    total_strokes: int,
    length: int,
    grade: int,
    stroke_range: tuple[int, int] | None = None,
) -> int:
    reward = 6 + _average_range_bonus(total_strokes, length, _range_for(grade, stroke_range))

    # strokes OR length, the higher tier wins
    if total_strokes >= 25 or length >= 3:
        reward += 2
    elif total_strokes >= 18 or length >= 2:
        reward += 1

    if grade == ADVANCED_GRADE:
        reward += 1

    return min(reward, PHRASE_REWARD_CAP)


def reward_cap(task_type: str) -> int:
    return {
        TASK_CHARACTER: CHARACTER_REWARD_CAP,
        TASK_WORD: WORD_REWARD_CAP,
        TASK_PHRASE: PHRASE_REWARD_CAP,
    }[task_type]


def exchange_ntd(coins: int) -> int:
    return coins // EXCHANGE_RATE


# ── Message formatting ───────────────────────────────────

TYPE_LABELS = {
    TASK_CHARACTER: "✍️ 單字練習",
    TASK_WORD: "📝 詞語書寫",
    TASK_PHRASE: "💬 詞語造句",
}

EXCHANGE_STATUS_LABELS = {
    EXCHANGE_PENDING: "🕐 等待確認",
    EXCHANGE_APPROVED: "👍 已核准",
    EXCHANGE_PAID: "💰 已發放",
    EXCHANGE_REJECTED: "❌ 已拒絕",
}


def describe_task(task: DailyTask) -> str:
    details = task.details
    if task.type == TASK_PHRASE:
        return details.get("sentence") or f"用「{task.content}」造句"
    parts = []
    if details.get("strokes"):
        parts.append(f"{details['strokes']} 筆")
    if details.get("repetitions"):
        parts.append(f"寫 {details['repetitions']} 次")
    return "、".join(parts)


def format_task_list(tasks: list[DailyTask], day_label: str) -> str:
    lines = [f"📋 <b>今日任務（{day_label}）</b>", ""]
    if not tasks:
        lines.append("今天還沒有任務。")
        return "\n".join(lines)

    for task in tasks:
        if task.status == STATUS_COMPLETED:
            icon = "✅"
        elif task.status == STATUS_IN_PROGRESS:
            icon = "⏳"
        else:
            icon = "⬜"
        lines.append(f"{icon} {TYPE_LABELS.get(task.type, task.type)}：<b>{task.content}</b>")
        desc = describe_task(task)
        if desc:
            lines.append(f"    {desc}")
        lines.append(f"    🪙 {task.reward} 學習幣")

    done = sum(1 for t in tasks if t.status == STATUS_COMPLETED)
    earned = sum(t.reward for t in tasks if t.status == STATUS_COMPLETED)
    lines.append("")
    lines.append(f"完成 {done}/{len(tasks)}，今日獲得 {earned} 學習幣")
    return "\n".join(lines)


def format_week_status(ledger: WeeklyLedger, available: int | None = None) -> str:
    lines = [
        f"🪙 <b>本週學習幣（{ledger.start_date.strftime('%m/%d')} — "
        f"{ledger.end_date.strftime('%m/%d')}）</b>",
        "",
        f"累積：<b>{ledger.total_earned}</b> 學習幣",
        f"完成任務：{len(ledger.completed_task_ids)} 個",
    ]
    if ledger.status == LEDGER_PAID_OUT:
        lines.append("狀態：已結算 ✅")
        if available is not None:
            lines.append(
                f"可兌換：<b>{available}</b> 學習幣（約 {exchange_ntd(available)} 元）"
            )
    else:
        lines.append("狀態：累積中（週日 20:00 後可以結算）")
    return "\n".join(lines)


def format_settlement_certificate(certificate: dict[str, Any]) -> str:
    return "\n".join([
        "🏆 <b>冒險者結算證書</b>",
        "",
        f"週次：{certificate['week_id']}",
        f"期間：{certificate['start_date'].strftime('%Y/%m/%d')} — "
        f"{certificate['end_date'].strftime('%Y/%m/%d')}",
        f"完成任務：{certificate['completed_tasks']} 個",
        f"獲得學習幣：<b>{certificate['total_earned']}</b>",
        f"結算時間：{certificate['generated_at'].strftime('%Y/%m/%d %H:%M')}",
    ])


def format_weekly_history(ledgers: list[WeeklyLedger]) -> str:
    lines = ["📜 <b>歷史週次</b>", ""]
    if not ledgers:
        lines.append("還沒有紀錄。")
        return "\n".join(lines)
    for ledger in ledgers:
        icon = "✅" if ledger.status == LEDGER_PAID_OUT else "⏳"
        lines.append(
            f"{icon} {ledger.id}（{ledger.start_date.strftime('%m/%d')}）："
            f"{ledger.total_earned} 學習幣，{len(ledger.completed_task_ids)} 個任務"
        )
    return "\n".join(lines)


def format_exchange(exchange: CoinExchange) -> str:
    label = EXCHANGE_STATUS_LABELS.get(exchange.status, exchange.status)
    text = (
        f"{label} {exchange.week_id}：{exchange.coins_exchanged} 學習幣 → "
        f"{exchange.ntd_amount} 元"
    )
    if exchange.notes:
        text += f"\n    備註：{exchange.notes}"
    return text
