# content_swap/config.py

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger
from tqdm import tqdm


def env_default(name: str, default: Optional[str] = None) -> Optional[str]:
    """Retrieve env var, returning default if None or empty."""
    val = os.getenv(name)
    return val if val not in (None, "") else default


def env_bool(name: str, default: bool = False) -> bool:
    """
    Parses an environment variable as a boolean.
    Returns the default value if the variable is unset.
    True values: "1", "true", "t", "yes", "y", "on" (case-insensitive).
    """
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def env_int(name: str, default: int, *, min_value: int = 1) -> int:
    """
    Parses an environment variable as an integer.
    Returns the default value if the variable is unset.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        val = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got={raw!r}") from e
    if val < min_value:
        raise ValueError(f"{name} must be >= {min_value}, got={val}")
    return val


def env_float(name: str, default: float, *, min_value: float = 0.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        val = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got={raw!r}") from e
    if val < min_value:
        raise ValueError(f"{name} must be >= {min_value}, got={val}")
    return val


def project_root() -> Path:
    """Returns the absolute path to the project root directory."""
    return Path(__file__).resolve().parents[1]


@dataclass(frozen=True)
class Paths:
    """Immutable container for project directory paths."""
    base_dir: Path
    log_dir: Path


def build_paths() -> Paths:
    """
    Resolves project paths and creates the log directory on disk.
    LOG_DIR overrides the default ./logs.
    """
    base = project_root()

    log_dir = Path(os.getenv("LOG_DIR", str(base / "logs")))
    log_dir.mkdir(parents=True, exist_ok=True)

    return Paths(base_dir=base, log_dir=log_dir)


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters. `url` (DATABASE_URL) wins over the individual DB_* fields."""
    host: str
    port: int
    user: str
    password: str
    name: str
    schema: str
    url: Optional[str] = None


def load_database_settings() -> DatabaseSettings:
    return DatabaseSettings(
        host=env_default("DB_HOST", "localhost") or "localhost",
        port=env_int("DB_PORT", 5432),
        user=env_default("DB_USER", "postgres") or "postgres",
        password=env_default("DB_PASSWORD", "postgres") or "postgres",
        name=env_default("DB_NAME", "content") or "content",
        schema=env_default("DB_SCHEMA", "public") or "public",
        url=env_default("DATABASE_URL"),
    )


@dataclass(frozen=True)
class PromoteSettings:
    """
    Operational knobs around a promotion.

    - PROMOTE_LOCK_TIMEOUT_S: how long to wait for another operator's promotion of the same group
    - DB_STATEMENT_TIMEOUT_MS / DB_LOCK_TIMEOUT_MS: server-side time bounds, 0 disables
    - STAGING_BATCH_SIZE: rows per INSERT batch when loading staging tables
    """
    lock_timeout_s: float
    statement_timeout_ms: int
    lock_wait_timeout_ms: int
    staging_batch_size: int


def load_promote_settings() -> PromoteSettings:
    return PromoteSettings(
        lock_timeout_s=env_float("PROMOTE_LOCK_TIMEOUT_S", 60.0),
        statement_timeout_ms=env_int("DB_STATEMENT_TIMEOUT_MS", 0, min_value=0),
        lock_wait_timeout_ms=env_int("DB_LOCK_TIMEOUT_MS", 0, min_value=0),
        staging_batch_size=env_int("STAGING_BATCH_SIZE", 500, min_value=1),
    )


def configure_logging(paths: Paths) -> None:
    """Configure loguru sinks (console + file) with tqdm-safe console output."""
    logger.remove()

    def _console_sink(message: str) -> None:
        """
        Writes logs to stdout.
        Uses tqdm.write if progress bars are enabled to prevent visual corruption.
        """
        if env_bool("ENABLE_PROGRESS", default=True):
            tqdm.write(message.rstrip("\n"))
        else:
            sys.stdout.write(message)
            sys.stdout.flush()

    # Console sink
    logger.add(
        _console_sink,
        level=os.getenv("LOG_LEVEL", "INFO"),
        colorize=True,
        backtrace=False,
        diagnose=False,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level}</level> | "
               "<level>{message}</level>\n",
    )

    # File sink
    logger.add(
        str(paths.log_dir / "app.log"),
        rotation="10 MB",
        retention="7 days",
        level="DEBUG",
        backtrace=False,
        diagnose=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
