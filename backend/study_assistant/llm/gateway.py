"""
LLM Gateway — completion + cost accounting in one call.

    generator ──► LLMGateway.generate(operation, prompt, usage=...)
                      │
                      ├─► ModelSelector.complete()   (cached model, timeout)
                      └─► CostTracker.track_usage()  (AICost row)

Generators never talk to the selector directly, so every provider call is
accounted for with the operation name and the owning user / document.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from study_assistant.llm.selector import GenerationResult, ModelSelector, get_model_selector
from study_assistant.observability.cost_tracker import CostTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageContext:
    """Who a call is billed to."""
    user_id:     UUID
    document_id: UUID | None = None
    metadata:    dict[str, Any] = field(default_factory=dict)


class LLMGateway:

    def __init__(
        self,
        selector:     ModelSelector | None = None,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self._selector     = selector or get_model_selector()
        self._cost_tracker = cost_tracker or CostTracker()

    @property
    def selector(self) -> ModelSelector:
        return self._selector

    async def generate(
        self,
        operation: str,
        prompt:    str,
        *,
        usage:       UsageContext,
        system:      str | None = None,
        json_mode:   bool = False,
        max_tokens:  int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """
        Run one completion and record its cost.

        Raises whatever ModelSelector.complete() raises; nothing is recorded
        for failed calls.
        """
        t0 = time.perf_counter()
        result = await self._selector.complete(
            prompt,
            system,
            json_mode=json_mode,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency_ms = (time.perf_counter() - t0) * 1000

        logger.info(
            "LLM call | operation=%s model=%s in=%d out=%d latency_ms=%.0f",
            operation, result.model, result.input_tokens, result.output_tokens, latency_ms,
        )

        await self._cost_tracker.track_usage(
            user_id=usage.user_id,
            document_id=usage.document_id,
            operation=operation,
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            metadata={**usage.metadata, "latency_ms": round(latency_ms)},
        )
        return result


def get_llm_gateway() -> LLMGateway:
    """FastAPI dependency; overridden in tests."""
    return LLMGateway()
