"""
Environment-driven settings.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "postgresql+asyncpg://cctm:dev_password@db:5432/cctm_testgen"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    threshold: int = 10000
    reduction_cap: int = 10000
    random_seed: Optional[int] = None
    log_level: str = "INFO"


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def load_settings() -> Settings:
    """Read .env (if present) and the process environment."""
    load_dotenv()
    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        threshold=_int_env("CCTM_THRESHOLD", 10000),
        reduction_cap=_int_env("CCTM_REDUCTION_CAP", 10000),
        random_seed=_int_env("CCTM_RANDOM_SEED", None),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
