"""Colored sync logger: one console line per save batch, colored by stage.

    🔵 Blue    → Read
    🩵 Cyan    → Invoke
    🔴 Red     → Delete batch, errors
    🟢 Green   → Create batch, commit
    🟣 Magenta → Update batch
"""

import logging
import time
from contextlib import contextmanager
from typing import Any


class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"


class SyncStage:
    """Network stages of a cloud data object, as (label, color, icon)."""

    READ = ("READ", _Colors.BLUE, "📥")
    INVOKE = ("INVOKE", _Colors.CYAN, "⚙️")
    DELETE = ("DELETE", _Colors.RED, "🗑️")
    CREATE = ("CREATE", _Colors.GREEN, "➕")
    UPDATE = ("UPDATE", _Colors.MAGENTA, "✏️")
    COMMIT = ("COMMIT", _Colors.GREEN, "✅")


class SyncLogger:
    """Color-coded logger for reads, invokes and save batches.

    Usage:
        log = SyncLogger("SaveOrchestrator")
        with log.timed_step(SyncStage.CREATE, "Creating 3 record(s)", table="ttCustomer"):
            await send_batch(...)
        log.committed("ttCustomer", rows=3, pending=False)
    """

    def __init__(self, component_name: str):
        self._logger = logging.getLogger(component_name)

    @contextmanager
    def timed_step(self, stage: tuple[str, str, str], message: str, **kwargs: Any):
        """Log a network step on entry and on exit with its elapsed time; errors are re-raised."""
        label, color, icon = stage
        self._logger.info(
            f"{color}{_Colors.BOLD}{icon} [{label}]{_Colors.RESET} "
            f"{color}{message}{_Colors.RESET}{_suffix(kwargs)}"
        )
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            elapsed = time.perf_counter() - start
            self._logger.error(
                f"{_Colors.RED}{_Colors.BOLD}❌ [{label}]{_Colors.RESET} "
                f"{_Colors.RED}{message} failed after {elapsed:.2f}s{_Colors.RESET} "
                f"{_Colors.DIM}→ {type(e).__name__}: {e}{_Colors.RESET}"
            )
            raise
        else:
            elapsed = time.perf_counter() - start
            self._logger.info(
                f"{color}{icon} [{label}]{_Colors.RESET} "
                f"{_Colors.GREEN}✓ {message} ({elapsed:.2f}s){_Colors.RESET}{_suffix(kwargs)}"
            )

    def committed(self, table_name: str, *, rows: int, pending: bool) -> None:
        """Log the local commit of a save; warns when changes made in flight remain."""
        label, color, icon = SyncStage.COMMIT
        message = f"{color}{icon} [{label}]{_Colors.RESET} {rows} row(s) accepted in {table_name}"
        if pending:
            self._logger.warning(
                f"{message} {_Colors.YELLOW}(changes made during the save stay pending){_Colors.RESET}"
            )
        else:
            self._logger.info(message)

    def detail(self, message: str, **kwargs: Any) -> None:
        """Log additional detail (gray/dimmed)."""
        self._logger.debug(f"   {_Colors.GRAY}├─ {message}{_Colors.RESET}{_suffix(kwargs)}")

    def separator(self, title: str) -> None:
        self._logger.info(
            f"{_Colors.GRAY}{'─' * 10} {title} {'─' * max(0, 50 - len(title))}{_Colors.RESET}"
        )


def _suffix(values: dict[str, Any]) -> str:
    if not values:
        return ""
    details = " | ".join(f"{k}={v}" for k, v in values.items())
    return f" {_Colors.GRAY}({details}){_Colors.RESET}"
