"""
LLM Package

  router.py      model catalogue, ChatOpenAI construction
  selector.py    probe-once model selection (ModelSelector)
  gateway.py     completion + AI cost ledger (LLMGateway)
  generators.py  summary / notes / flashcards / quiz / answers
  parsing.py     tolerant JSON parsing of model output

Usage::

    from study_assistant.llm.gateway import LLMGateway, UsageContext

    await model_selector.initialize()          # startup
    gateway = LLMGateway()
    result = await gateway.generate("summary", prompt, usage=UsageContext(user_id))
"""

from study_assistant.llm.router import ModelRouter, ModelSpec
from study_assistant.llm.selector import (
    GenerationResult,
    ModelSelector,
    ProviderError,
    ProviderUnavailable,
    model_selector,
)

__all__ = [
    "GenerationResult",
    "ModelRouter",
    "ModelSelector",
    "ModelSpec",
    "ProviderError",
    "ProviderUnavailable",
    "model_selector",
]
