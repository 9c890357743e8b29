"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# ── Text-generation service ────────────────────────────────────────────────
LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
LLM_API_KEY: str = os.getenv("LLM_API_KEY", "")
LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4-turbo")
SERVICE_URL: str = os.getenv("EMOJILENS_SERVICE_URL", "")
INTERPRETER_ENABLED: bool = os.getenv("EMOJILENS_ENABLE_INTERPRETER", "true").lower() != "false"

# ── Quota ──────────────────────────────────────────────────────────────────
MAX_USES: int = int(os.getenv("EMOJILENS_MAX_USES", "3"))
STATE_DB: Path = Path(
    os.getenv("EMOJILENS_STATE_DB", str(PROJECT_ROOT / "var" / "state.sqlite3"))
)

# ── Streaming timers (seconds) ─────────────────────────────────────────────
ADVISORY_SECONDS: float = float(os.getenv("EMOJILENS_ADVISORY_SECONDS", "10"))
TIMEOUT_SECONDS: float = float(os.getenv("EMOJILENS_TIMEOUT_SECONDS", "30"))


def service_enabled() -> bool:
    """True when a live text-generation backend is configured."""
    if not INTERPRETER_ENABLED:
        return False
    provider = LLM_PROVIDER.lower()
    if provider == "http":
        return bool(SERVICE_URL)
    if provider == "openai":
        return bool(LLM_API_KEY)
    return False


def config_warnings() -> list[str]:
    """Return human-readable warnings for missing or inconsistent settings."""
    warnings: list[str] = []
    provider = LLM_PROVIDER.lower()
    if INTERPRETER_ENABLED and provider == "openai" and not LLM_API_KEY:
        warnings.append("LLM_API_KEY is not set. Interpretations will use placeholder results.")
    if INTERPRETER_ENABLED and provider == "http" and not SERVICE_URL:
        warnings.append(
            "EMOJILENS_SERVICE_URL is not set. Interpretations will use placeholder results."
        )
    if provider not in ("openai", "http"):
        warnings.append(f"Unknown LLM_PROVIDER '{LLM_PROVIDER}'; placeholder results will be used.")
    if TIMEOUT_SECONDS <= ADVISORY_SECONDS:
        warnings.append(
            "EMOJILENS_TIMEOUT_SECONDS should be longer than EMOJILENS_ADVISORY_SECONDS."
        )
    return warnings
