"""
Cost Tracker — per-call AI usage ledger

One AICost row per provider call: operation, model, token counts, USD cost
and free-form metadata. Rows are written through their own short session so
that a failed generation run (which rolls back its own transaction) still
leaves its spend on record.

Pricing comes from the model catalogue in llm/router.py (USD per 1M
tokens). Token counts are the provider-reported ones when available,
otherwise the 4-chars-per-token estimate.

A single call above COST_WARNING_USD logs a warning.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_assistant.llm.router import spec_for
from study_assistant.models import AICost

logger = logging.getLogger(__name__)

COST_WARNING_USD = Decimal("0.01")


def _compute_cost(model: str, input_tokens: int, output_tokens: int) -> Decimal:
    """
    Compute USD cost for a single LLM call.

    Returns a Decimal (exact arithmetic) to avoid floating-point drift when
    summing many micro-payments.
    """
    spec = spec_for(model)
    cost = (
        input_tokens / 1_000_000 * spec.cost_input_per_1m
        + output_tokens / 1_000_000 * spec.cost_output_per_1m
    )
    return Decimal(str(round(cost, 8)))


class CostTracker:
    """
    Usage::

        tracker = CostTracker()
        await tracker.track_usage(
            user_id=user.id,
            operation="summary",
            model="gpt-4o-mini",
            input_tokens=2500,
            output_tokens=400,
        )
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from study_assistant.db.session import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    async def track_usage(
        self,
        user_id:       UUID,
        operation:     str,
        model:         str,
        input_tokens:  int,
        output_tokens: int,
        document_id:   UUID | None = None,
        metadata:      dict[str, Any] | None = None,
    ) -> Decimal:
        """
        Record one call. Ledger write failures are logged and swallowed:
        accounting must never fail the user-facing operation.
        """
        cost = _compute_cost(model, input_tokens, output_tokens)

        if cost > COST_WARNING_USD:
            logger.warning(
                "High AI cost | operation=%s model=%s cost_usd=%s tokens=%d",
                operation, model, cost, input_tokens + output_tokens,
            )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(AICost(
                        user_id=user_id,
                        document_id=document_id,
                        operation=operation,
                        model_name=model,
                        input_tokens=input_tokens,
                        output_tokens=output_tokens,
                        total_tokens=input_tokens + output_tokens,
                        cost_usd=cost,
                        cost_metadata=metadata or {},
                    ))
        except Exception as exc:
            logger.error(
                "Cost tracking failed | operation=%s user=%s error=%s",
                operation, user_id, exc,
            )
            return cost

        logger.debug(
            "Cost tracked | operation=%s model=%s in=%d out=%d cost_usd=%s",
            operation, model, input_tokens, output_tokens, cost,
        )
        return cost
