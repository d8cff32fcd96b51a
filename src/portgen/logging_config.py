import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger

_CONFIGURED = False

STDERR_FORMAT = "<level>{level: <8}</level> {extra[source_class]} | {message}"


def configure_logging(
    service: str = "portgen",
    version: str = os.getenv("PORTGEN_VERSION", "0.1.0"),
    environment: str = os.getenv("PORTGEN_ENV", "dev"),
    log_dir: Optional[str] = None,
) -> None:
    """
    Configure Loguru sinks for a generator run:
      • <log_dir>/YYYY-MM-DD/generation.json  everything from DEBUG
      • <log_dir>/YYYY-MM-DD/problems.json    warnings and errors only
      • stderr at PORTGEN_LOG_LEVEL (default WARNING)
    log_dir defaults to PORTGEN_LOG_DIR, then ``logs``.
    PORTGEN_DISABLE_FILE_LOGS=1 keeps only the stderr sink.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger.remove()
    logger.configure(
        extra={
            "service": service,
            "version": version,
            "env": environment,
            "source_class": "-",
        }
    )

    stderr_level = os.getenv("PORTGEN_LOG_LEVEL", "WARNING").upper()
    logger.add(sys.stderr, level=stderr_level, format=STDERR_FORMAT, colorize=sys.stderr.isatty())

    if os.getenv("PORTGEN_DISABLE_FILE_LOGS") != "1":
        root = Path(log_dir or os.getenv("PORTGEN_LOG_DIR", "logs"))
        day_dir = root / datetime.now(timezone.utc).strftime("%Y-%m-%d")
        day_dir.mkdir(parents=True, exist_ok=True)

        common_kwargs = {
            "serialize": True,
            "rotation": "10 MB",
            "retention": "30 days",
            "enqueue": True,
        }
        logger.add(day_dir / "generation.json", level="DEBUG", **common_kwargs)
        logger.add(day_dir / "problems.json", level="WARNING", **common_kwargs)

    _CONFIGURED = True
