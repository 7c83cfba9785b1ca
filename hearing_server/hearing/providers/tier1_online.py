# hearing/providers/tier1_online.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Tier1 Online Provider (OpenRouter)
---------------------------------------------------
This module is the ONLY place that knows how to talk to OpenRouter.

Responsibilities:
- Build the HTTP request (URL, headers, JSON payload).
- Ask for JSON output when the caller needs structured data (slot extraction).
- Parse the response and return assistant text.

It is used by hearing/core/generate.py, which:
- Chooses which model to call (from tier1_model_candidates in config).
- Falls back to Tier2 if this provider raises Tier1Error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from hearing.core.config import settings

logger = logging.getLogger(__name__)


class Tier1Error(Exception):
    """Raised when Tier1 (online) fails in a recoverable way."""


def _build_openrouter_payload(
    messages: List[Dict[str, str]],
    model_name: str,
    *,
    max_tokens: int,
    temperature: float,
    json_mode: bool = False,
) -> Dict[str, Any]:
    """
    Build the JSON payload for OpenRouter.

    Parameters
    ----------
    messages:
        List of {"role": "system"|"user"|"assistant", "content": "..."} dicts.
    model_name:
        Any OpenRouter model ID, e.g. "openai/gpt-4o-mini".
    json_mode:
        Request a JSON object response (OpenAI-style response_format).
        Models that ignore it still get the "JSON only" instruction
        from the prompt.
    """
    payload: Dict[str, Any] = {
        "model": model_name,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}
    return payload


def call_tier1_model(
    messages: List[Dict[str, str]],
    model_name: str,
    *,
    max_tokens: int = 500,
    temperature: float = 0.7,
    json_mode: bool = False,
) -> str:
    """
    Call a Tier1 online model via OpenRouter and return the assistant's text.

    Returns
    -------
    content: str
        The assistant's reply (already stripped).

    Raises
    ------
    Tier1Error
        If Tier1 is disabled, misconfigured, or the HTTP/JSON fails.
    """
    if not settings.tier1_enabled:
        raise Tier1Error("Tier1 is disabled in config.")

    api_key = settings.tier1_api_key
    if not api_key:
        raise Tier1Error("Tier1 API key is missing.")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = _build_openrouter_payload(
        messages,
        model_name,
        max_tokens=max_tokens,
        temperature=temperature,
        json_mode=json_mode,
    )

    try:
        resp = requests.post(
            settings.tier1_base_url,
            headers=headers,
            json=payload,
            timeout=settings.tier1_timeout_s,
        )
    except requests.RequestException as exc:
        raise Tier1Error(f"Tier1 HTTP error: {exc}") from exc

    if resp.status_code != 200:
        text_preview = resp.text[:200].replace("\n", " ")
        raise Tier1Error(f"Tier1 HTTP {resp.status_code}: {text_preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise Tier1Error("Tier1 returned non-JSON response.") from exc

    try:
        # OpenAI/OpenRouter-style: choices[0].message.content
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise Tier1Error(
            "Tier1 response JSON missing choices[0].message.content"
        ) from exc

    if not isinstance(content, str) or not content.strip():
        raise Tier1Error("Tier1 returned empty content.")

    return content.strip()
