"""Logging configuration for junos-reconciler.

Provides configurable logging with:
- File-based logging with rotation
- Console output for real-time debugging
- Timing of every device round trip on a dedicated perf logger
- An optional raw NETCONF trace file

Environment Variables:
    JUNOS_RECONCILER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    JUNOS_RECONCILER_LOG_FILE: Path to log file (default: ~/.junos-reconciler/reconciler.log)
    JUNOS_RECONCILER_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    JUNOS_RECONCILER_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from junos_reconciler.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("netconf_commit")
    async def commit_conf(self, description):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("junos_reconciler.perf")
main_logger = logging.getLogger("junos_reconciler")

MAIN_FORMAT = logging.Formatter(
    "%(asctime)s.%(msecs)03d | %(name)-35s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("JUNOS_RECONCILER_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".junos-reconciler" / "reconciler.log"
    path_str = os.environ.get("JUNOS_RECONCILER_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging() -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (respects JUNOS_RECONCILER_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance log file next to the main log
    """
    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("JUNOS_RECONCILER_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("JUNOS_RECONCILER_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(MAIN_FORMAT)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(MAIN_FORMAT)

    perf_log_file = log_file.parent / "reconciler-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # Perf records stay out of the main handlers
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)
    perf_logger.propagate = False

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def attach_debug_log(path: str) -> logging.Handler:
    """Write the NETCONF exchange of every session to `path`.

    The RPC payloads are traced by ncclient, which PyEZ drives.
    """
    netconf_logger = logging.getLogger("junos_reconciler.devices.netconf")
    for handler in netconf_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(path):
            return handler

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(MAIN_FORMAT)
    for logger in (netconf_logger, logging.getLogger("ncclient")):
        logger.setLevel(logging.DEBUG)
        logger.addHandler(handler)
    return handler


def _perf_line(operation: str, device_id: Optional[str], elapsed: float, status: str) -> str:
    return f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "netconf_lock", "commit")
        device_id: Optional device identifier (can also be inferred from self.device_id)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000  # ms
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            dev_id = device_id
            if dev_id is None and args and hasattr(args[0], 'device_id'):
                dev_id = args[0].device_id

            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("create", device_id="srx-edge", resource="junos_application_set"):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except BaseException as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _perf_line(operation, device_id, elapsed, f"FAIL: {e!r}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
    elapsed = (time.perf_counter() - start) * 1000
    msg = _perf_line(operation, device_id, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)
