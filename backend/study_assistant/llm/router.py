"""
Model catalogue and LangChain client construction.

The candidate order comes from settings.llm_candidate_models (cheapest
first by default). Every candidate is an OpenAI chat model; identifiers
missing from the catalogue still work and fall back to a generic spec.

    settings.llm_candidate_models
        │
        ▼
    ModelRouter.candidates()  →  [ModelSpec, ...]  →  ModelSelector probes
        │
        ▼
    ModelRouter.build_llm(spec)  →  ChatOpenAI
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from langchain_core.language_models.chat_models import BaseChatModel

from study_assistant.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """
    Static metadata for one model.

    cost_input_per_1m:   USD per 1 000 000 input tokens
    cost_output_per_1m:  USD per 1 000 000 output tokens
    context_window:      Maximum total tokens (input + output)
    supports_json_mode:  Whether response_format={"type": "json_object"} works
    """
    model_id:            str
    context_window:      int   = 16_385
    cost_input_per_1m:   float = 0.15
    cost_output_per_1m:  float = 0.60
    supports_json_mode:  bool  = True


# ---------------------------------------------------------------------------
# Registered model catalogue
# ---------------------------------------------------------------------------

_REGISTERED_MODELS: dict[str, ModelSpec] = {
    spec.model_id: spec
    for spec in (
        ModelSpec(
            model_id           = "gpt-4o-mini",
            context_window     = 128_000,
            cost_input_per_1m  = 0.15,
            cost_output_per_1m = 0.60,
        ),
        ModelSpec(
            model_id           = "gpt-4o",
            context_window     = 128_000,
            cost_input_per_1m  = 2.50,
            cost_output_per_1m = 10.00,
        ),
        ModelSpec(
            model_id           = "gpt-4-turbo",
            context_window     = 128_000,
            cost_input_per_1m  = 10.00,
            cost_output_per_1m = 30.00,
        ),
        ModelSpec(
            model_id           = "gpt-4",
            context_window     = 8_192,
            cost_input_per_1m  = 30.00,
            cost_output_per_1m = 60.00,
            supports_json_mode = False,
        ),
        ModelSpec(
            model_id           = "gpt-3.5-turbo",
            context_window     = 16_385,
            cost_input_per_1m  = 0.50,
            cost_output_per_1m = 1.50,
        ),
    )
}


def spec_for(model_id: str) -> ModelSpec:
    return _REGISTERED_MODELS.get(model_id) or ModelSpec(model_id=model_id)


class ModelRouter:
    """Resolves the configured candidate list and builds chat clients."""

    def __init__(self, candidate_ids: list[str] | None = None) -> None:
        self._candidate_ids = list(candidate_ids or settings.llm_candidate_models)

    def candidates(self) -> list[ModelSpec]:
        return [spec_for(model_id) for model_id in self._candidate_ids]

    def build_llm(
        self,
        spec: ModelSpec,
        *,
        json_mode:   bool = False,
        max_tokens:  int | None = None,
        temperature: float | None = None,
    ) -> BaseChatModel:
        """
        Instantiate the LangChain chat model for a ModelSpec.
        Returns a BaseChatModel; callers use .ainvoke().
        """
        from langchain_openai import ChatOpenAI

        kwargs: dict = {}
        if json_mode and spec.supports_json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}

        return ChatOpenAI(
            model=spec.model_id,
            api_key=settings.openai_api_key,
            temperature=settings.llm_temperature if temperature is None else temperature,
            max_tokens=max_tokens or settings.llm_max_tokens,
            max_retries=0,
            **kwargs,
        )
