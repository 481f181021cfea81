import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def require_env(name: str) -> str:
    """Return the value of a mandatory environment variable or raise RuntimeError.
    WHY: Fail fast at startup when provider credentials are missing.
    """
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_env_file() -> None:
    """Load variables from a local .env file without overwriting existing ones.

    WHAT:
        Loads variables from .env into os.environ.
    WHY:
        Local development uses a .env file; deployed environments export
        variables directly and must win.
    """
    loaded = load_dotenv(override=False)
    if loaded:
        logger.info("Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("No local .env file found or loaded")
