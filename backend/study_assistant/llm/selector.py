"""
Model Selector — probe once, cache the first model that answers.

Lifecycle:
  1. initialize() runs at API / worker startup. Each candidate from the
     router is sent a trivial prompt ("Say hello") in order; the first one
     that answers within the probe timeout is cached.
  2. complete() uses the cached model. If nothing is cached yet (startup
     probe failed, or invalidate() was called) it probes first.
  3. invalidate() drops the cached model; the next call re-probes.

Concurrent first-use probes are serialized by an asyncio.Lock, so a burst
of uploads on a cold process probes the candidates once, not once per
request.

If every candidate fails, ProviderUnavailable is raised. Callers decide
whether that is fatal (summary, notes, answers) or degrades to an empty
result (flashcards, quiz).
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from study_assistant.core.config import settings
from study_assistant.llm.router import ModelRouter, ModelSpec

logger = logging.getLogger(__name__)

PROBE_PROMPT = "Say hello"


class ProviderError(RuntimeError):
    """A provider call failed."""


class ProviderUnavailable(ProviderError):
    """No candidate model answered the probe."""


@dataclass
class GenerationResult:
    text:          str
    model:         str
    input_tokens:  int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def estimate_tokens(text: str) -> int:
    """Rough token count: 4 chars ≈ 1 token."""
    return math.ceil(len(text) / 4)


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    # multi-part content blocks
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content or "")


class ModelSelector:
    """
    Usage::

        selector = ModelSelector()
        await selector.initialize()
        result = await selector.complete("Summarize ...", system="You are ...")
    """

    def __init__(
        self,
        router: ModelRouter | None = None,
        call_timeout:  float | None = None,
        probe_timeout: float = 15.0,
    ) -> None:
        self._router        = router or ModelRouter()
        self._call_timeout  = call_timeout or settings.llm_timeout_s
        self._probe_timeout = probe_timeout
        self._selected: ModelSpec | None = None
        self._lock = asyncio.Lock()

    @property
    def router(self) -> ModelRouter:
        return self._router

    @property
    def selected_model(self) -> str | None:
        return self._selected.model_id if self._selected else None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def initialize(self) -> str:
        """Probe candidates in order and cache the first that answers."""
        async with self._lock:
            if self._selected is None:
                self._selected = await self._probe()
            return self._selected.model_id

    def invalidate(self) -> None:
        if self._selected is not None:
            logger.info("Model selection invalidated | model=%s", self._selected.model_id)
        self._selected = None

    async def reprobe(self) -> str:
        self.invalidate()
        return await self.initialize()

    async def _probe(self) -> ModelSpec:
        errors: list[str] = []

        for spec in self._router.candidates():
            llm = self._router.build_llm(spec, max_tokens=16)
            try:
                logger.debug("Model probe | trying model=%s", spec.model_id)
                await asyncio.wait_for(
                    llm.ainvoke([HumanMessage(content=PROBE_PROMPT)]),
                    timeout=self._probe_timeout,
                )
            except asyncio.TimeoutError:
                err = f"{spec.model_id}: timed out after {self._probe_timeout}s"
                logger.warning("Model probe | %s", err)
                errors.append(err)
                continue
            except Exception as exc:
                err = f"{spec.model_id}: {type(exc).__name__}: {exc}"
                logger.warning("Model probe | failed — %s", err)
                errors.append(err)
                continue

            logger.info("Model probe | selected model=%s", spec.model_id)
            return spec

        raise ProviderUnavailable(
            "No candidate model answered. Errors:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    # -----------------------------------------------------------------------
    # Completion
    # -----------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        *,
        json_mode:   bool = False,
        max_tokens:  int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """
        Send one prompt to the selected model.

        Raises:
            ProviderUnavailable: no model could be selected.
            ProviderError: the call failed or timed out.
        """
        if self._selected is None:
            await self.initialize()
        spec = self._selected
        if spec is None:
            # invalidated while initialize() was running
            raise ProviderUnavailable("No model selected")

        messages: list[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        llm = self._router.build_llm(
            spec, json_mode=json_mode, max_tokens=max_tokens, temperature=temperature,
        )
        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self._call_timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"{spec.model_id}: timed out after {self._call_timeout}s") from exc
        except Exception as exc:
            raise ProviderError(f"{spec.model_id}: {type(exc).__name__}: {exc}") from exc

        text = _content_text(response.content)

        # Real counts when the provider reports them, estimates otherwise
        usage = getattr(response, "usage_metadata", None) or {}
        input_tokens  = usage.get("input_tokens") or estimate_tokens(
            "".join(_content_text(m.content) for m in messages)
        )
        output_tokens = usage.get("output_tokens") or estimate_tokens(text)

        return GenerationResult(
            text=text,
            model=spec.model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )


# ---------------------------------------------------------------------------
# Process-wide instance + FastAPI dependency
# ---------------------------------------------------------------------------

model_selector = ModelSelector()


def get_model_selector() -> ModelSelector:
    return model_selector
