"""
Tolerant parsing of model output into flashcards and quiz questions.

Models do not always honour the requested JSON shape. Parsing accepts:

  1. a bare array                         [ {...}, {...} ]
  2. an envelope object                   {"flashcards": [...]} / {"cards": [...]}
                                          {"questions": [...]}  / {"quiz": [...]}
  3. either of the above wrapped in a markdown code fence
  4. either of the above embedded in prose; the first bracket-balanced
     JSON value is salvaged

Anything else yields []. Invalid items are dropped individually and the
result is truncated to the requested count.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

FLASHCARD_KEYS = ("flashcards", "cards")
QUIZ_KEYS      = ("questions", "quiz")


@dataclass
class FlashcardDraft:
    question: str
    answer:   str


@dataclass
class QuizDraft:
    question:       str
    options:        list[str] = field(default_factory=list)
    correct_answer: int = 0
    explanation:    str | None = None


# ---------------------------------------------------------------------------
# JSON recovery
# ---------------------------------------------------------------------------

def strip_fences(raw: str) -> str:
    match = _FENCE_RE.match(raw)
    return match.group(1).strip() if match else raw.strip()


def _balanced_span(text: str, start: int) -> str | None:
    """Return text[start:end] where end closes the bracket opened at start."""
    pairs = {"[": "]", "{": "}"}
    stack = [pairs[text[start]]]
    in_string = False
    escaped = False

    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif ch in ("]", "}"):
            if not stack or ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return text[start:i + 1]
    return None


def salvage_json(text: str) -> Any:
    """First bracket-balanced JSON value found in text, or None."""
    for i, ch in enumerate(text):
        if ch not in "[{":
            continue
        span = _balanced_span(text, i)
        if span is None:
            continue
        try:
            return json.loads(span)
        except ValueError:
            continue
    return None


def load_json(raw: str | None) -> Any:
    if not raw:
        return None
    text = strip_fences(raw)
    try:
        return json.loads(text)
    except ValueError:
        return salvage_json(text)


def _items(parsed: Any, keys: tuple[str, ...]) -> list:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in keys:
            value = parsed.get(key)
            if isinstance(value, list):
                return value
    return []


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


# ---------------------------------------------------------------------------
# Flashcards
# ---------------------------------------------------------------------------

def parse_flashcards(raw: str | None, count: int) -> list[FlashcardDraft]:
    cards: list[FlashcardDraft] = []
    for item in _items(load_json(raw), FLASHCARD_KEYS):
        if len(cards) >= count:
            break
        if not isinstance(item, dict):
            continue
        question, answer = _clean(item.get("question")), _clean(item.get("answer"))
        if question and answer:
            cards.append(FlashcardDraft(question=question, answer=answer))

    if not cards and raw:
        logger.warning("Flashcard parse produced nothing | raw_chars=%d", len(raw))
    return cards


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------

def _answer_index(value: Any, options: list[str]) -> int | None:
    """Resolve correctAnswer to an option index; option text is accepted."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        index = value
    elif isinstance(value, float) and value.is_integer():
        index = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            index = int(text)
        else:
            lowered = [o.lower() for o in options]
            if text.lower() not in lowered:
                return None
            index = lowered.index(text.lower())
    else:
        return None
    return index if 0 <= index < len(options) else None


def _parse_quiz_item(item: Any) -> QuizDraft | None:
    if not isinstance(item, dict):
        return None

    question = _clean(item.get("question"))
    raw_options = item.get("options")
    if not question or not isinstance(raw_options, list):
        return None

    options = [str(o).strip() for o in raw_options if str(o).strip()]
    if not 2 <= len(options) <= 6 or len(options) != len(raw_options):
        return None

    answer = item.get("correctAnswer", item.get("correct_answer"))
    index = _answer_index(answer, options)
    if index is None:
        return None

    explanation = _clean(item.get("explanation")) or None
    return QuizDraft(
        question=question,
        options=options,
        correct_answer=index,
        explanation=explanation,
    )


def parse_quiz(raw: str | None, count: int) -> list[QuizDraft]:
    questions: list[QuizDraft] = []
    for item in _items(load_json(raw), QUIZ_KEYS):
        if len(questions) >= count:
            break
        draft = _parse_quiz_item(item)
        if draft is not None:
            questions.append(draft)

    if not questions and raw:
        logger.warning("Quiz parse produced nothing | raw_chars=%d", len(raw))
    return questions
