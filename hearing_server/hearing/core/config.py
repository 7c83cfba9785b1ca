# hearing/core/config.py
# -*- coding: utf-8 -*-
"""
Hearing Server — Configuration
------------------------------
Central configuration for the hearing (activity report) server, including:

- app metadata
- API host/port
- Tier1 (online via OpenRouter),
- Tier2 (local via Ollama HTTP),
- generation limits (timeouts, reply sizes),
- session store (Redis URL, TTL, locking),
- completion policy thresholds.

"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from hearing.core.slots import ALL_SLOTS

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

# This file is: hearing_server/hearing/core/config.py
APP_DIR: Path = Path(__file__).resolve().parents[1]   # .../hearing_server/hearing
ROOT_DIR: Path = APP_DIR.parent                       # .../hearing_server


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """
    Global configuration for the hearing server.

    This class is instantiated once at import time as `settings`
    and used everywhere in the codebase.
    """

    # Tell pydantic-settings where to read .env, and how to behave with extras.
    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App / server basics -----------------------------------------------
    app_name: str = "Hearing Server"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # --- Tier toggles -------------------------------------------------------
    tier1_enabled: bool = True   # Online LLM (OpenRouter)
    tier2_enabled: bool = True   # Local LLM (Ollama HTTP)

    # --- Tier1: Online provider (OpenRouter) -------------------------------
    tier1_provider: Literal["openrouter"] = "openrouter"
    tier1_base_url: str = "https://openrouter.ai/api/v1/chat/completions"

    # ENV: TIER1_API_KEY=sk-or-v1-...
    tier1_api_key: str | None = Field(
        default=None,
        description="API key for Tier1 online provider (env: TIER1_API_KEY).",
    )

    # Priority-ordered model list for Tier1 (first → last).
    tier1_model_candidates: list[str] = [
        "openai/gpt-4o-mini",
        "meta-llama/llama-3.3-70b-instruct:free",
        "deepseek/deepseek-chat-v3-0324:free",
    ]

    # Timeout (seconds) for Tier1 HTTP calls
    tier1_timeout_s: float = 18.0

    # --- Tier2: Local backend (Ollama HTTP) --------------------------------
    #
    # Configuration comes from:
    #   TIER2_OLLAMA_URL   (e.g. http://localhost:11434/api/chat)
    #   TIER2_OLLAMA_MODEL (e.g. llama3.2:latest)
    #
    tier2_ollama_url: str | None = Field(
        default=None,
        description=(
            "Ollama chat endpoint, e.g. http://localhost:11434/api/chat "
            "(env: TIER2_OLLAMA_URL)."
        ),
    )
    tier2_ollama_model: str | None = Field(
        default=None,
        description=(
            "Ollama model name (env: TIER2_OLLAMA_MODEL), "
            "e.g. llama3.2:latest."
        ),
    )
    tier2_timeout_s: float = 60.0

    # --- Generation limits --------------------------------------------------
    # Upper bound for one generation call as seen by the dialogue
    # orchestrator (covers the whole Tier1 -> Tier2 chain).
    generation_timeout_s: float = 25.0

    max_answer_chars: int = 2000          # Incoming answer text is cut here
    max_acknowledgement_chars: int = 80   # Short "got it" style reply
    max_question_chars: int = 200
    max_summary_chars: int = 1200

    # --- Session store ------------------------------------------------------
    # ENV: REDIS_URL=redis://localhost:6379/0 (unset -> in-process store only)
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the durable session store (env: REDIS_URL).",
    )
    redis_key_prefix: str = "hearing:"
    redis_socket_timeout_s: float = 2.0
    session_ttl_s: int = 3600             # Sessions expire one hour after last write
    store_lock_timeout_s: float = 10.0    # Per-key lock around read-modify-write
    turn_lease_s: float = 90.0            # A turn still "in progress" after this is abandoned
    store_prune_interval_s: float = 60.0  # In-process store sweeps expired sessions this often

    # --- Completion policy --------------------------------------------------
    # Heuristic, tuned empirically. Treat as knobs, not contracts.
    policy_min_turns: int = 3
    policy_hard_cap_turns: int = len(ALL_SLOTS) + 1  # One fallback question per slot, then the last answer
    policy_early_turns: int = 5
    policy_early_score: float = 0.7
    policy_early_quality_slots: int = 4
    policy_late_turns: int = 8
    policy_late_score: float = 0.5
    policy_weight_required: float = 0.4
    policy_weight_quality: float = 0.4
    policy_weight_depth: float = 0.2
    policy_depth_window: int = 3          # How many recent answers feed the depth signal
    policy_depth_min_chars: int = 50      # Average length above this counts as "detailed"
    policy_depth_value: float = 0.5


# Single global settings instance used by the rest of the app.
settings = Settings()


if __name__ == "__main__":
    # Minimal self-test so you can quickly verify config loading.
    print("Hearing Server — Settings self-test")
    print(f"ROOT_DIR        : {ROOT_DIR}")
    print(f"APP_DIR         : {APP_DIR}")
    print(f"Environment     : {settings.environment}")
    print(f"Tier1 enabled   : {settings.tier1_enabled}, API key set: {bool(settings.tier1_api_key)}")
    print(f"Tier1 models    : {settings.tier1_model_candidates}")
    print(f"Tier2 enabled   : {settings.tier2_enabled}")
    print(f"Tier2 Ollama    : url={settings.tier2_ollama_url!r}, model={settings.tier2_ollama_model!r}")
    print(f"Redis URL set   : {bool(settings.redis_url)}")
    print(f"Session TTL     : {settings.session_ttl_s} s")
    print(f"Policy turns    : min={settings.policy_min_turns} cap={settings.policy_hard_cap_turns}")
