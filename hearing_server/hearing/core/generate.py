# hearing/core/generate.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Generation core
--------------------------------
Runs one chat-style prompt through the model tier chain:

    1) Tier1: Online LLM (OpenRouter, multi-model with priority list)
    2) Tier2: Local LLM (Ollama, via providers.tier2_local)

If both tiers fail, GenerationUnavailable is raised. There is no template
tier here: what the "safe" text is depends on what was being generated
(acknowledgement, question, summary), so the dialogue orchestrator picks
the Tier3 fallback itself (providers.tier3_templates).

It does NOT parse model output; generation.py does that per operation.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from hearing.core.config import settings
from hearing.core.errors import GenerationUnavailable
from hearing.core.types import ModelCallResult
from hearing.providers.tier1_online import Tier1Error, call_tier1_model
from hearing.providers.tier2_local import Tier2Error, call_tier2_model
from hearing.utils import Stopwatch

logger = logging.getLogger(__name__)


def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    """Chat-style message list: system first, then the single user turn."""
    messages: List[Dict[str, str]] = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


def call_text_model(
    messages: List[Dict[str, str]],
    *,
    purpose: str,
    max_tokens: int = 500,
    temperature: float = 0.7,
    json_mode: bool = False,
) -> ModelCallResult:
    """
    Generate text with the Tier1 -> Tier2 chain.

    Parameters
    ----------
    messages:
        Chat messages (see build_messages).
    purpose:
        Short label for logs ("extract", "ack", "question", "summary").
    max_tokens / temperature:
        Passed through to the backend.
    json_mode:
        Ask the backend for a JSON object response.

    Raises
    ------
    GenerationUnavailable
        If no tier produced any text.
    """
    # 1) Tier1 (online) with model priority list
    if settings.tier1_enabled and settings.tier1_api_key:
        model_list = settings.tier1_model_candidates or []
        if not model_list:
            logger.warning(
                "Tier1 is enabled and API key is set, but no "
                "tier1_model_candidates configured; skipping Tier1."
            )
        for model_name in model_list:
            try:
                with Stopwatch(
                    f"[generate:{purpose}] Tier1 {model_name}",
                    logger,
                    logging.DEBUG,
                    slow_s=settings.tier1_timeout_s / 2,
                ):
                    text = call_tier1_model(
                        messages,
                        model_name,
                        max_tokens=max_tokens,
                        temperature=temperature,
                        json_mode=json_mode,
                    )
                return ModelCallResult(
                    text=text,
                    used_tier="tier1",
                    raw={"backend": "openrouter", "model": model_name},
                )
            except Tier1Error as exc:
                logger.warning("[generate:%s] Tier1 model %s failed: %s", purpose, model_name, exc)

    # 2) Tier2 (local) if enabled
    if settings.tier2_enabled:
        try:
            with Stopwatch(
                f"[generate:{purpose}] Tier2",
                logger,
                logging.DEBUG,
                slow_s=settings.tier2_timeout_s / 2,
            ):
                text = call_tier2_model(
                    messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    json_mode=json_mode,
                )
            return ModelCallResult(
                text=text,
                used_tier="tier2",
                raw={"backend": "ollama", "model": settings.tier2_ollama_model},
            )
        except Tier2Error as exc:
            logger.warning("[generate:%s] Tier2 failed: %s", purpose, exc)

    raise GenerationUnavailable(f"No model tier available for {purpose!r}")
