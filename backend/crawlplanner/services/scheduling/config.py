from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

try:  # best effort: load local .env so defaults mirror backend/crawlplanner/.env
    from dotenv import load_dotenv  # type: ignore

    _ENV_PATH = Path(__file__).resolve().parents[2] / '.env'
    if _ENV_PATH.exists():
        load_dotenv(dotenv_path=_ENV_PATH, override=False)
except ImportError:
    pass

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return float(default)


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return int(default)


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in _TRUE_VALUES


@lru_cache(maxsize=1)
def max_trials() -> int:
    """Number of independent candidate events evaluated per search."""
    return max(1, _int_env("CRAWL_MAX_TRIALS", "5000"))


@lru_cache(maxsize=1)
def generation_retries() -> int:
    """Attempts at generating a valid assignment before settling for the last one."""
    return max(1, _int_env("CRAWL_GENERATION_RETRIES", "100"))


@lru_cache(maxsize=1)
def group_formation_retries() -> int:
    return max(1, _int_env("CRAWL_GROUP_FORMATION_RETRIES", "1000"))


@lru_cache(maxsize=1)
def top_k() -> int:
    return max(1, _int_env("CRAWL_TOP_K", "5"))


def search_seed() -> Optional[int]:
    raw = os.getenv("CRAWL_SEED")
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def search_deadline_seconds() -> Optional[float]:
    value = _float_env("CRAWL_SEARCH_DEADLINE_SECONDS", "0")
    return value if value > 0 else None


def strict_generation() -> bool:
    """Abort the trial instead of keeping an invalid assignment when retries run out."""
    return _bool_env("CRAWL_STRICT_GENERATION", False)
