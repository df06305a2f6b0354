"""Shared utilities: logging, clock, and retry logic."""

import asyncio
import functools
import logging
import sys
import time
from pathlib import Path


def setup_logging(verbose: bool = False, log_dir: Path | str = "data") -> logging.Logger:
    """Configure console + file logging. Returns the root project logger."""
    logger = logging.getLogger("jobflow")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    console.setFormatter(fmt)
    logger.addHandler(console)

    # File handler for full debug log
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "migration.log", mode="a")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    logger.addHandler(file_handler)

    return logger


def now_ms() -> int:
    """Current time as integer epoch milliseconds (the on-disk timestamp unit)."""
    return int(time.time() * 1000)


def retry_async(max_retries: int = 3, backoff_base: float = 2.0, retry_on=(Exception,)):
    """Decorator: retry an async function with exponential backoff.

    Only exceptions matching ``retry_on`` are retried; the last one is
    re-raised once attempts run out.

    Usage:
        @retry_async(max_retries=3, retry_on=(OSError,))
        async def flaky_call():
            ...
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_error = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    last_error = e
                    if attempt < max_retries - 1:
                        wait = backoff_base ** attempt
                        logging.getLogger("jobflow").warning(
                            "%s attempt %d failed: %s. Retrying in %.1fs...",
                            func.__name__, attempt + 1, e, wait,
                        )
                        await asyncio.sleep(wait)
            raise last_error  # type: ignore[misc]
        return wrapper
    return decorator
