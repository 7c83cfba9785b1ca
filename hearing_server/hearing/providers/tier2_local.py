# hearing/providers/tier2_local.py
# -*- coding: utf-8 -*-
"""

Hearing Server — Tier2 Local Provider (Ollama)

"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from hearing.core.config import settings

logger = logging.getLogger(__name__)


class Tier2Error(Exception):
    """Raised when Tier2 (local) fails in a recoverable way."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def call_tier2_model(
    messages: List[Dict[str, str]],
    *,
    max_tokens: int = 500,
    temperature: float = 0.7,
    json_mode: bool = False,
) -> str:
    """
    Entry point for Tier2 local models.

    Behavior
    --------
    - Checks if Tier2 is enabled in config.
    - Uses Ollama as the Tier2 backend (configured via Settings).
    - If Ollama is not configured or the HTTP/JSON fails, raises
      Tier2Error so that the caller (generate.py) can give up cleanly.

    Raises
    ------
    Tier2Error
        If Tier2 is disabled, misconfigured, or the HTTP/JSON fails.
    """
    if not settings.tier2_enabled:
        raise Tier2Error("Tier2 is disabled in config.")

    return _call_ollama(
        messages,
        max_tokens=max_tokens,
        temperature=temperature,
        json_mode=json_mode,
    )


# ---------------------------------------------------------------------------
# Ollama backend
# ---------------------------------------------------------------------------

def _call_ollama(
    messages: List[Dict[str, str]],
    *,
    max_tokens: int,
    temperature: float,
    json_mode: bool,
) -> str:
    """
    Call a local Ollama model via HTTP.

    Expected config (from hearing/core/config.Settings):
        settings.tier2_ollama_url   e.g. "http://localhost:11434/api/chat"
        settings.tier2_ollama_model e.g. "llama3.2:latest"
    """
    base_url = settings.tier2_ollama_url
    model = settings.tier2_ollama_model

    if not base_url or not model:
        raise Tier2Error(
            "Tier2 (Ollama) is not configured. "
            "Set TIER2_OLLAMA_URL and TIER2_OLLAMA_MODEL in your .env "
            "or disable Tier2."
        )

    # stream=false so we get a single JSON object back.
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": False,
        "options": {
            "temperature": temperature,
            "num_predict": max_tokens,
        },
    }
    if json_mode:
        payload["format"] = "json"

    try:
        resp = requests.post(base_url, json=payload, timeout=settings.tier2_timeout_s)
    except requests.RequestException as exc:
        raise Tier2Error(f"Ollama HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise Tier2Error(f"Ollama HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise Tier2Error("Ollama returned non-JSON response.") from exc

    # /api/chat (stream=false):
    #   {"model": "...", "message": {"role": "assistant", "content": "..."}, "done": true}
    message = data.get("message") if isinstance(data, dict) else None
    content = message.get("content") if isinstance(message, dict) else None

    if not isinstance(content, str) or not content.strip():
        raise Tier2Error("Ollama returned empty content.")

    return content.strip()
