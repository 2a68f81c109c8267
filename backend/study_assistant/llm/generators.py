"""
Study artifact generators.

Every generator caps its source text (cap_text), sends one templated prompt
through the LLMGateway and shapes the reply:

    generate_summary      raw text
    generate_notes        raw text
    generate_flashcards   parse_flashcards → ≤ count FlashcardDraft
    generate_quiz         parse_quiz       → ≤ count QuizDraft
    answer_question       raw text, fixed apology when empty
    verify_flashcard_answer  {"isCorrect", "feedback"}

Failure policy is explicit: each pipeline generator has a GeneratorPolicy
with a `required` flag. run_generator() lets a required generator's error
propagate (the run fails) and turns a best-effort generator's error into
its empty value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from study_assistant.core.config import settings
from study_assistant.llm import prompts
from study_assistant.llm.gateway import LLMGateway, UsageContext
from study_assistant.llm.parsing import (
    FlashcardDraft,
    QuizDraft,
    load_json,
    parse_flashcards,
    parse_quiz,
)

logger = logging.getLogger(__name__)


def cap_text(text: str, limit: int | None = None) -> str:
    """Hard cap on prompt source text; "..." marks a cut."""
    limit = limit or settings.pipeline_text_cap
    return text if len(text) <= limit else text[:limit] + "..."


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

async def generate_summary(gateway: LLMGateway, text: str, *, usage: UsageContext) -> str:
    result = await gateway.generate(
        "summary",
        prompts.SUMMARY_USER.format(content=cap_text(text)),
        system=prompts.SUMMARY_SYSTEM,
        max_tokens=1000,
        usage=usage,
    )
    return result.text.strip()


async def generate_notes(gateway: LLMGateway, text: str, *, usage: UsageContext) -> str:
    result = await gateway.generate(
        "notes",
        prompts.NOTES_USER.format(content=cap_text(text)),
        system=prompts.NOTES_SYSTEM,
        max_tokens=2000,
        usage=usage,
    )
    return result.text.strip()


async def generate_flashcards(
    gateway: LLMGateway,
    text: str,
    count: int | None = None,
    *,
    usage: UsageContext,
) -> list[FlashcardDraft]:
    count = count or settings.pipeline_flashcard_count
    result = await gateway.generate(
        "flashcards",
        prompts.FLASHCARDS_USER.format(count=count, content=cap_text(text)),
        system=prompts.FLASHCARDS_SYSTEM.format(count=count),
        json_mode=True,
        max_tokens=2000,
        usage=usage,
    )
    return parse_flashcards(result.text, count)


async def generate_quiz(
    gateway: LLMGateway,
    text: str,
    count: int | None = None,
    previous_questions: list[str] | None = None,
    *,
    usage: UsageContext,
) -> list[QuizDraft]:
    count = count or settings.pipeline_quiz_count
    prompt = prompts.QUIZ_USER.format(count=count, content=cap_text(text))
    if previous_questions:
        numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(previous_questions, start=1))
        prompt += prompts.QUIZ_AVOID.format(previous=numbered)

    result = await gateway.generate(
        "quiz",
        prompt,
        system=prompts.QUIZ_SYSTEM.format(count=count),
        json_mode=True,
        max_tokens=2000,
        usage=usage,
    )
    return parse_quiz(result.text, count)


async def answer_question(
    gateway: LLMGateway,
    text: str,
    question: str,
    *,
    usage: UsageContext,
) -> str:
    result = await gateway.generate(
        "qa",
        prompts.ANSWER_USER.format(content=cap_text(text), question=question),
        system=prompts.ANSWER_SYSTEM,
        max_tokens=500,
        temperature=0.7,
        usage=usage,
    )
    return result.text.strip() or prompts.ANSWER_FALLBACK


async def verify_flashcard_answer(
    gateway: LLMGateway,
    question: str,
    correct_answer: str,
    user_answer: str,
    *,
    usage: UsageContext,
) -> dict[str, Any]:
    """
    Grade a free-text flashcard answer. When the reply cannot be parsed the
    verdict falls back to a case-insensitive exact match.
    """
    result = await gateway.generate(
        "verify_answer",
        prompts.VERIFY_USER.format(
            question=question,
            correct_answer=correct_answer,
            user_answer=user_answer,
        ),
        system=prompts.VERIFY_SYSTEM,
        json_mode=True,
        max_tokens=300,
        temperature=0.2,
        usage=usage,
    )

    parsed = load_json(result.text)
    if isinstance(parsed, dict) and isinstance(parsed.get("isCorrect"), bool):
        feedback = parsed.get("feedback")
        return {
            "isCorrect": parsed["isCorrect"],
            "feedback":  feedback.strip() if isinstance(feedback, str) and feedback.strip()
                         else _default_feedback(parsed["isCorrect"], correct_answer),
        }

    logger.warning("Answer verification unparseable, using exact match | chars=%d", len(result.text))
    is_correct = user_answer.strip().lower() == correct_answer.strip().lower()
    return {"isCorrect": is_correct, "feedback": _default_feedback(is_correct, correct_answer)}


def _default_feedback(is_correct: bool, correct_answer: str) -> str:
    if is_correct:
        return "Correct! Well done."
    return f"Not quite. The expected answer is: {correct_answer}"


# ---------------------------------------------------------------------------
# Pipeline policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeneratorPolicy:
    """
    name      artifact name, also the AI cost operation
    required  True: an error fails the run; False: an error yields `empty`
    """
    name:     str
    required: bool
    run:      Callable[[LLMGateway, str, UsageContext], Awaitable[Any]]
    empty:    Callable[[], Any] = list


PIPELINE_GENERATORS: tuple[GeneratorPolicy, ...] = (
    GeneratorPolicy(
        name="summary",
        required=True,
        run=lambda gw, text, usage: generate_summary(gw, text, usage=usage),
        empty=str,
    ),
    GeneratorPolicy(
        name="notes",
        required=True,
        run=lambda gw, text, usage: generate_notes(gw, text, usage=usage),
        empty=str,
    ),
    GeneratorPolicy(
        name="flashcards",
        required=False,
        run=lambda gw, text, usage: generate_flashcards(gw, text, usage=usage),
    ),
    GeneratorPolicy(
        name="quiz",
        required=False,
        run=lambda gw, text, usage: generate_quiz(gw, text, usage=usage),
    ),
)


async def run_generator(
    policy: GeneratorPolicy,
    gateway: LLMGateway,
    text: str,
    usage: UsageContext,
) -> Any:
    try:
        return await policy.run(gateway, text, usage)
    except Exception as exc:
        if policy.required:
            logger.error("Required generator failed | name=%s error=%s", policy.name, exc)
            raise
        logger.warning(
            "Best-effort generator failed, continuing empty | name=%s error=%s",
            policy.name, exc,
        )
        return policy.empty()
