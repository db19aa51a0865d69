"""Logging configuration for Scriptwell.

Provides centralized logging setup with sensible defaults:
- Default: WARNING level (quiet operation)
- --debug flag: DEBUG level with full context
- SCRIPTWELL_DEBUG=true or SCRIPTWELL_LOG_LEVEL=DEBUG env vars
- Config file: debug: true in .scriptwell/config.yaml
- Persistent logs: Stored in .scriptwell/logs/ with session rotation

Usage:
    from scriptwell.foundation.logging import configure_logging
    configure_logging(debug=args.debug)
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

_DEBUG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"
_DEFAULT_FORMAT = "%(name)s: %(message)s"

# Quieted even in debug mode
_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "asyncio",
    "markdown_it",
)

_MAX_LOG_SESSIONS = 10


def _get_log_directory(base: Path | None = None) -> Path:
    """Get or create the persistent log directory."""
    candidates = [base] if base else [Path.cwd(), Path.home()]
    for root in candidates:
        state_dir = root / ".scriptwell"
        if state_dir.exists():
            log_dir = state_dir / "logs"
            log_dir.mkdir(exist_ok=True)
            return log_dir

    log_dir = (base or Path.cwd()) / ".scriptwell" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _cleanup_old_logs(log_dir: Path, max_sessions: int = _MAX_LOG_SESSIONS) -> None:
    """Remove old session logs, keeping only the most recent N."""
    log_files = sorted(
        log_dir.glob("session_*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for old_log in log_files[max_sessions:]:
        try:
            old_log.unlink()
        except OSError as e:
            sys.stderr.write(f"Warning: could not remove old log {old_log}: {e}\n")


def _config_debug_enabled() -> bool:
    """Read the debug flag from the loaded config."""
    # Imported lazily: config loading logs, and logging must be configurable first
    from scriptwell.foundation.config import get_config

    try:
        return get_config().debug
    except Exception as e:  # config problems must never block logging setup
        sys.stderr.write(f"Warning: could not read config for logging: {e}\n")
        return False


def configure_logging(
    *,
    debug: bool = False,
    level: int | str | None = None,
    stream: object = None,
    persist: bool = True,
    log_root: Path | None = None,
) -> None:
    """Configure logging for the Scriptwell CLI.

    Args:
        debug: Enable DEBUG level with detailed format
        level: Override log level (int or string like "DEBUG", "INFO")
        stream: Output stream (default: stderr)
        persist: Store logs in .scriptwell/logs/ with session rotation
        log_root: Directory holding .scriptwell/ (default: cwd, then home)

    Priority for level resolution (highest to lowest):
        1. Explicit `level` parameter
        2. SCRIPTWELL_LOG_LEVEL env var
        3. SCRIPTWELL_DEBUG=true env var
        4. `debug=True` parameter (--debug flag)
        5. Config file: debug: true
        6. WARNING (default)
    """
    resolved_level: int
    if level is not None:
        resolved_level = _parse_level(level)
    elif env_level := os.environ.get("SCRIPTWELL_LOG_LEVEL"):
        resolved_level = _parse_level(env_level)
    elif os.environ.get("SCRIPTWELL_DEBUG", "").lower() in ("true", "1", "yes"):
        resolved_level = logging.DEBUG
    elif debug or _config_debug_enabled():
        resolved_level = logging.DEBUG
    else:
        resolved_level = logging.WARNING

    console_format = _DEBUG_FORMAT if resolved_level <= logging.DEBUG else _DEFAULT_FORMAT

    root_logger = logging.getLogger()
    # File handler captures DEBUG, so root must let it through when persisting
    root_logger.setLevel(logging.DEBUG if persist else resolved_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(resolved_level)
    console_handler.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console_handler)

    if persist:
        try:
            log_dir = _get_log_directory(log_root)
            _cleanup_old_logs(log_dir)
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            file_handler = logging.FileHandler(
                log_dir / f"session_{timestamp}.log", mode="w", encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(_DEBUG_FORMAT))
            root_logger.addHandler(file_handler)
        except OSError as e:
            sys.stderr.write(f"Warning: Could not enable persistent logging: {e}\n")

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, debug=%s, persist=%s",
        logging.getLevelName(resolved_level),
        debug,
        persist,
    )


def _parse_level(level: int | str) -> int:
    """Parse log level from int or string."""
    if isinstance(level, int):
        return level
    numeric = getattr(logging, level.upper(), None)
    if isinstance(numeric, int):
        return numeric
    try:
        return int(level)
    except ValueError:
        return logging.WARNING
