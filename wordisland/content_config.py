"""Curated fallback content, stroke table and policy constants."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class GradeContent:
    characters: tuple[str, ...]
    words: tuple[str, ...]
    phrases: tuple[str, ...]
    stroke_range: tuple[int, int]
    difficulty: str


@dataclass(frozen=True)
class ContentLibrary:
    """Grade-indexed fallback content plus the offline stroke table.

    Loaded once and passed to the services that need it.
    """

    grades: dict[int, GradeContent]
    strokes: dict[str, int] = field(default_factory=dict)

    def for_grade(self, grade: int) -> GradeContent:
        return self.grades.get(grade) or self.grades[DEFAULT_GRADE]

    def stroke_range(self, grade: int) -> tuple[int, int]:
        return self.for_grade(grade).stroke_range


DAILY_TASK_COUNT = 3
MAX_GENERATION_ATTEMPTS = 3
PROMPT_HISTORY_LIMIT = 50
DEDUP_WINDOW_DAYS = 30

EXCHANGE_RATE = 10  # coins per 1 NTD
MIN_EXCHANGE_COINS = 10

CHARACTER_REWARD_CAP = 10
WORD_REWARD_CAP = 9
PHRASE_REWARD_CAP = 10

ADVANCED_GRADE = 7
DEFAULT_GRADE = 3

PHRASE_PROMPT = "請用「{phrase}」造一個完整的句子，要能表達出詞語的意思。"

# Learning grade -> curated content (one grade ahead of school grade)
GRADE_CONTENT: dict[int, GradeContent] = {
    1: GradeContent(
        characters=("明", "朋", "友", "故", "事", "新", "舊", "左", "右", "方"),
        words=("朋友", "故事", "新年", "左右", "方向", "時候"),
        phrases=("朋友", "故事", "新年", "時候"),
        stroke_range=(5, 10),
        difficulty="二年級程度",
    ),
    2: GradeContent(
        characters=("班", "級", "同", "學", "老", "師", "教", "室", "功", "課"),
        words=("班級", "同學", "老師", "教室", "功課", "學習"),
        phrases=("同學", "老師", "學習", "功課"),
        stroke_range=(8, 13),
        difficulty="三年級程度",
    ),
    3: GradeContent(
        characters=("環", "境", "保", "護", "污", "染", "清", "潔", "資", "源"),
        words=("環境", "保護", "污染", "清潔", "資源", "回收"),
        phrases=("環境", "保護", "污染", "資源"),
        stroke_range=(10, 16),
        difficulty="四年級程度",
    ),
    4: GradeContent(
        characters=("民", "主", "自", "由", "平", "等", "正", "義", "法", "律"),
        words=("民主", "自由", "平等", "正義", "法律", "權利"),
        phrases=("民主", "自由", "正義", "權利"),
        stroke_range=(13, 20),
        difficulty="五年級程度",
    ),
    5: GradeContent(
        characters=("科", "學", "技", "術", "發", "明", "創", "新", "實", "驗"),
        words=("科學", "技術", "發明", "創新", "實驗", "研究"),
        phrases=("科學", "技術", "創新", "研究"),
        stroke_range=(16, 25),
        difficulty="六年級程度",
    ),
    6: GradeContent(
        characters=("哲", "學", "思", "想", "邏", "輯", "推", "理", "分", "析"),
        words=("哲學", "思想", "邏輯", "推理", "分析", "判斷"),
        phrases=("哲學", "邏輯", "分析", "判斷"),
        stroke_range=(16, 25),
        difficulty="六年級程度",
    ),
    7: GradeContent(
        characters=("璀", "璨", "磅", "礴", "澎", "湃", "蒼", "穹", "翱", "翔"),
        words=("璀璨", "磅礴", "澎湃", "蒼穹", "翱翔", "浩瀚"),
        phrases=("璀璨", "磅礴", "蒼穹", "翱翔"),
        stroke_range=(18, 30),
        difficulty="六年級進階（含冷僻字）",
    ),
}

# Offline stroke counts used when the stroke-data service is unreachable
STROKE_TABLE: dict[str, int] = {
    "一": 1, "二": 2, "三": 3, "人": 2, "大": 3, "小": 3, "山": 3, "口": 3,
    "日": 4, "月": 4, "水": 4, "火": 4, "木": 4, "土": 3, "天": 4, "中": 4,
    "上": 3, "下": 3, "手": 4, "心": 4, "我": 7, "你": 7, "好": 6, "美": 9,
    # grade 1
    "明": 8, "朋": 8, "友": 4, "故": 9, "事": 8, "新": 13, "舊": 18, "左": 5,
    "右": 5, "方": 4, "時": 10, "候": 10, "年": 6, "向": 6,
    # grade 2
    "班": 10, "級": 9, "同": 6, "學": 16, "老": 6, "師": 10, "教": 11,
    "室": 9, "功": 5, "課": 15, "習": 11,
    # grade 3
    "環": 17, "境": 14, "保": 9, "護": 21, "污": 6, "染": 9, "清": 11,
    "潔": 15, "資": 13, "源": 13, "回": 6, "收": 6,
    # grade 4
    "民": 5, "主": 5, "自": 6, "由": 5, "平": 5, "等": 12, "正": 5, "義": 13,
    "法": 8, "律": 9, "權": 22, "利": 7,
    # grade 5
    "科": 9, "技": 7, "術": 11, "發": 12, "創": 12, "實": 14, "驗": 23,
    "研": 11, "究": 7,
    # grade 6
    "哲": 10, "思": 9, "想": 13, "邏": 23, "輯": 16, "推": 11, "理": 11,
    "分": 4, "析": 8, "判": 7, "斷": 18,
    # grade 7
    "璀": 15, "璨": 17, "磅": 15, "礴": 21, "澎": 15, "湃": 12, "蒼": 13,
    "穹": 8, "翱": 16, "翔": 12, "浩": 10, "瀚": 19,
}

DEFAULT_LIBRARY = ContentLibrary(grades=GRADE_CONTENT, strokes=STROKE_TABLE)


def load_content_library(path: str | Path | None = None) -> ContentLibrary:
    """Build the content library, overlaying grades/strokes from a JSON file.

    The file may hold ``{"grades": {"3": {...}}, "strokes": {"字": 6}}``;
    grades present in the file replace the built-in ones.
    """
    if not path:
        return DEFAULT_LIBRARY

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    grades = dict(GRADE_CONTENT)
    for key, value in raw.get("grades", {}).items():
        grades[int(key)] = GradeContent(
            characters=tuple(value["characters"]),
            words=tuple(value["words"]),
            phrases=tuple(value["phrases"]),
            stroke_range=(int(value["stroke_range"][0]), int(value["stroke_range"][1])),
            difficulty=value.get("difficulty", ""),
        )
    strokes = dict(STROKE_TABLE)
    strokes.update({k: int(v) for k, v in raw.get("strokes", {}).items()})
    return ContentLibrary(grades=grades, strokes=strokes)
