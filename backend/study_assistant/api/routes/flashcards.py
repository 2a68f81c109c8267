"""
Flashcards API Router — /api/flashcards

  POST /verify-answer   grade a typed answer; the verdict becomes the
                        card's known/unknown state for the caller
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from study_assistant.auth.dependencies import DB, CurrentUser, Gateway
from study_assistant.core.errors import Forbidden, NotFound, UpstreamFailure, ValidationFailed
from study_assistant.core.ratelimit import api_rate_limit
from study_assistant.llm.gateway import UsageContext
from study_assistant.llm.generators import verify_flashcard_answer
from study_assistant.llm.selector import ProviderError
from study_assistant.models import Flashcard
from study_assistant.schemas.common import ERROR_RESPONSES
from study_assistant.schemas.study import VerifyAnswerRequest, VerifyAnswerResponse
from study_assistant.services.performance import record_flashcard_review

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flashcards", tags=["Flashcards"], responses=ERROR_RESPONSES)


@router.post("/verify-answer", response_model=VerifyAnswerResponse, dependencies=[Depends(api_rate_limit)])
async def verify_answer(
    body:    VerifyAnswerRequest,
    user:    CurrentUser,
    db:      DB,
    gateway: Gateway,
) -> VerifyAnswerResponse:
    user_answer = (body.user_answer or "").strip()
    if body.flashcard_id is None or not user_answer:
        raise ValidationFailed("Flashcard ID and user answer are required")

    card = await db.get(Flashcard, body.flashcard_id)
    if card is None:
        raise NotFound("Flashcard not found")
    if card.user_id != user.id:
        raise Forbidden("You do not have access to this flashcard")

    try:
        verdict = await verify_flashcard_answer(
            gateway, card.question, card.answer, user_answer,
            usage=UsageContext(user_id=user.id, document_id=card.document_id),
        )
    except ProviderError as exc:
        logger.error("Answer verification failed | card=%s error=%s", card.id, exc)
        raise UpstreamFailure("Failed to verify the answer. Please try again.") from exc

    await record_flashcard_review(
        db,
        user_id=user.id,
        document_id=card.document_id,
        flashcard_id=card.id,
        is_known=verdict["isCorrect"],
    )
    return VerifyAnswerResponse(is_correct=verdict["isCorrect"], feedback=verdict["feedback"])
