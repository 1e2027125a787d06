"""
Configuration for the gateway.

Tunables (models, limits, trusted domains, streaming pace) live in
grounded_qa.toml next to the package; set GROUNDED_QA_CONFIG_PATH to use a
different file. Credentials and deployment switches (GEMINI_API_KEY,
OPENAI_API_KEY, EVIDENCE_PROVIDER, ALLOWED_SOURCE_DOMAINS, DEBUG, APP_ENV)
come from the environment, with .env loaded on import.
"""

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "grounded_qa.toml"

_MISSING = object()


@lru_cache(maxsize=1)
def load_config() -> Dict[str, Any]:
    path = Path(os.environ.get("GROUNDED_QA_CONFIG_PATH", DEFAULT_CONFIG_PATH))
    if not path.exists():
        raise RuntimeError(f"Configuration file not found: {path}")
    with open(path, "rb") as f:
        return tomllib.load(f)


def get(*keys: str, fallback: Any = _MISSING) -> Any:
    """Look up a nested TOML value, e.g. ``get("streaming", "words_per_chunk")``.

    Raises RuntimeError for a missing key unless ``fallback`` is given.
    """
    node: Any = load_config()
    for key in keys:
        if not isinstance(node, dict) or key not in node:
            if fallback is not _MISSING:
                return fallback
            raise RuntimeError(f"Missing config key '{'.'.join(keys)}' in grounded_qa.toml")
        node = node[key]
    return node


def get_env(name: str) -> str | None:
    """Environment variable, with blank values treated as unset."""
    value = os.environ.get(name)
    return value if value and value.strip() else None


def env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


def is_debug() -> bool:
    """Whether error payloads may carry ``debug`` details."""
    if env_flag("DEBUG"):
        return True
    env = os.environ.get("APP_ENV", os.environ.get("ENV", "")).lower()
    return env in ("development", "dev", "local") or bool(get("app", "debug", fallback=False))
