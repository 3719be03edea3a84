# rulebuilder/settings.py

import logging
import os

from dotenv import load_dotenv

load_dotenv()

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

DEFAULT_MODEL = os.getenv("RULEBUILDER_MODEL", "gpt-5.1")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "300"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


IGNORE_FORMATTING_ISSUES = _env_flag("RULEBUILDER_IGNORE_FORMATTING_ISSUES", True)

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "RULEBUILDER_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
    )
