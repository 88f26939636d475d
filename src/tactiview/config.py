"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


# API keys
GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")

# Models
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")

# Agent loop policy
MAX_ITERATIONS: int = int(os.getenv("MAX_ITERATIONS", "10"))
MIN_TOOL_CALLS: int = int(os.getenv("MIN_TOOL_CALLS", "5"))
AGENT_TEMPERATURE: float = float(os.getenv("AGENT_TEMPERATURE", "0.4"))
SINGLE_SHOT_TEMPERATURE: float = float(os.getenv("SINGLE_SHOT_TEMPERATURE", "0.4"))
# Deliberation output is never consumed, so keep it at the minimum.
THINKING_BUDGET: int = int(os.getenv("THINKING_BUDGET", "0"))

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Per-session log files (disabled when empty)
SESSION_LOG_DIR: Path | None = (
    Path(os.environ["SESSION_LOG_DIR"]) if os.getenv("SESSION_LOG_DIR") else None
)
