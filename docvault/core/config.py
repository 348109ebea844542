"""
Runtime configuration for the document access viewer.
Everything is read from the environment once at import time; accessor functions
re-read the values that tests toggle at runtime.
"""

import os
from pathlib import Path

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/docvault.db")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Masking
MASK_FILLER = os.getenv("MASK_FILLER", "X")

# Semantic rewrite service (ollama)
REWRITE_ENABLED = os.getenv("REWRITE_ENABLED", "true").lower() == "true"
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")
REWRITE_TIMEOUT_SEC = float(os.getenv("REWRITE_TIMEOUT_SEC", "30"))
REWRITE_TEMPERATURE = float(os.getenv("REWRITE_TEMPERATURE", "0.4"))

# Document and policy definition (JSON); empty means built-in defaults
DOCUMENT_CONFIG_PATH = os.getenv("DOCUMENT_CONFIG_PATH", "")

# Client side
API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
NOTIFY_POLL_INTERVAL_SEC = float(os.getenv("NOTIFY_POLL_INTERVAL_SEC", "2"))
CHANGE_LOG_RETENTION_SEC = float(os.getenv("CHANGE_LOG_RETENTION_SEC", "3600"))

VERSION = "0.3.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def is_rewrite_configured() -> bool:
    """The rewrite service is usable only when enabled and a model is named."""
    return REWRITE_ENABLED and bool(OLLAMA_MODEL.strip())


def get_document_config_path():
    """Get the document definition path, or None for the built-in document."""
    return DOCUMENT_CONFIG_PATH or None


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if len(MASK_FILLER) != 1:
        issues.append(f"MASK_FILLER must be a single character, got {MASK_FILLER!r}")

    if REWRITE_TIMEOUT_SEC <= 0:
        issues.append("REWRITE_TIMEOUT_SEC must be > 0")

    if not 0.0 <= REWRITE_TEMPERATURE <= 2.0:
        issues.append(f"Invalid REWRITE_TEMPERATURE: {REWRITE_TEMPERATURE}")

    if DOCUMENT_CONFIG_PATH and not Path(DOCUMENT_CONFIG_PATH).is_file():
        issues.append(f"DOCUMENT_CONFIG_PATH does not exist: {DOCUMENT_CONFIG_PATH}")

    if NOTIFY_POLL_INTERVAL_SEC < 0.1:
        issues.append("NOTIFY_POLL_INTERVAL_SEC must be >= 0.1")

    if CHANGE_LOG_RETENTION_SEC < NOTIFY_POLL_INTERVAL_SEC * 10:
        issues.append("CHANGE_LOG_RETENTION_SEC must cover at least 10 poll intervals")

    return issues
