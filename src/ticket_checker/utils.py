# ticket_checker/utils.py
import os
from pathlib import Path

# Single source of truth for the checker's home directory.
CHECKER_HOME = Path(os.getenv("CHECKER_HOME", Path.home() / ".ticket-checker"))


def get_artifacts_root() -> Path:
    """Default directory for screenshots and other run evidence."""
    return CHECKER_HOME / "artifacts"


def parse_bool(value: object) -> bool:
    """Interprets the usual truthy strings ('true', '1', 'yes', 'on')."""
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def truncate(text: str, limit: int = 100) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else f"{text[:limit]}..."
