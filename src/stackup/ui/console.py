"""Console output formatting utilities for stackup."""

from __future__ import annotations

import sys
import threading
from typing import List, Optional, Sequence

from ..model import RunResult, Status


_STATUS_LABELS = {
    Status.PENDING: "PENDING",
    Status.STARTING: "STARTING",
    Status.WAITING_HEALTHY: "WAITING",
    Status.HEALTHY: "HEALTHY",
    Status.FAILED: "FAILED",
    Status.STOPPED: "STOPPED",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress progress output (errors are still printed)
        """
        self.debug = debug
        self.quiet = quiet
        # transitions arrive from worker threads
        self._lock = threading.Lock()

    def _out(self, message: str) -> None:
        if self.quiet:
            return
        with self._lock:
            print(message)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}\n" + "-" * len(title))

    def print_run_started(self, stack: str, service_count: int) -> None:
        """Print run start information."""
        self._out(f"\nSTACK STARTING\nStack: {stack}\nServices: {service_count}\n")

    def print_transition(self, service: str, status: Status, detail: Optional[str] = None) -> None:
        """Print one service state change."""
        line = f"[{service}] {_STATUS_LABELS[status]}"
        if detail:
            line += f" ({detail})"
        self._out(line)

    def print_plan(self, levels: Sequence[Sequence[str]], shutdown: Sequence[str]) -> None:
        """Print start stages and the teardown order."""
        self.print_header("START PLAN")
        for idx, level in enumerate(levels):
            self._out(f"  Stage {idx + 1}: {', '.join(level)}")
        self.print_header("SHUTDOWN ORDER")
        self._out("  " + " -> ".join(shutdown))

    def print_results(self, result: RunResult, title: str = "RESULTS") -> None:
        """Print final results summary."""
        lines: List[str] = ["", "=" * 40, title, "=" * 40]
        for name, state in result.services.items():
            label = "SKIPPED" if state.skipped else _STATUS_LABELS[state.status]
            lines.append(f"  {name}: {label}")
            if state.last_error:
                lines.append(f"      {state.last_error}")
        lines.append(f"\nOverall: {'SUCCESS' if result.success else 'FAILURE'}")
        self._out("\n".join(lines))

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        with self._lock:
            print(f"\nERROR: {title}", file=sys.stderr)
            print(f"{message}", file=sys.stderr)
            if details:
                for detail in details:
                    print(f"  {detail}", file=sys.stderr)
            if suggestion:
                print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
