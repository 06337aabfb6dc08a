"""
VaultAuth Status Display

Best-effort progress rendering while waiting for out-of-band approval.
Rendering problems are logged and never reach the negotiation.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import Any, Optional, TextIO

import attrs
import structlog

logger = structlog.get_logger()

FG_YELLOW = "\x1b[33m"
BOLD = "\x1b[1m"
NO_BOLD = "\x1b[22m"
RESET = "\x1b[0m"
UP_CURSOR = "\x1b[1A"
CLEAR_DOWN = "\x1b[0J"


class StatusDisplay(ABC):
    """Renders the out-of-band waiting indicator."""

    @abstractmethod
    def waiting(self, name: str, can_passcode: bool) -> None:
        """Announce that approval of ``name`` is awaited."""
        ...

    @abstractmethod
    def tick(self) -> None:
        """Mark one more poll."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove the indicator."""
        ...


class NullStatus(StatusDisplay):
    """Renders nothing."""

    def waiting(self, name: str, can_passcode: bool) -> None:
        pass

    def tick(self) -> None:
        pass

    def clear(self) -> None:
        pass


@attrs.define
class TerminalStatus(StatusDisplay):
    """
    ANSI status line on a terminal stream.

    Colors are only emitted when the stream is a TTY.
    """

    stream: Optional[TextIO] = None

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def _out(self) -> TextIO:
        return self.stream or sys.stderr

    def _color(self) -> bool:
        isatty = getattr(self._out, "isatty", None)
        return bool(isatty and isatty())

    def _write(self, text: str) -> None:
        try:
            self._out.write(text)
            self._out.flush()
        except (OSError, ValueError) as e:
            self._logger.debug("status_write_failed", error=str(e))

    def waiting(self, name: str, can_passcode: bool) -> None:
        hint = ", or press Ctrl+C to enter a passcode" if can_passcode else ""
        text = f"Waiting for approval of out-of-band {name} login{hint}"
        if self._color():
            text = f"{FG_YELLOW}{BOLD}{text}{NO_BOLD}"
        self._write(f"{text}...")

    def tick(self) -> None:
        self._write(".")

    def clear(self) -> None:
        if self._color():
            self._write(f"{RESET}\n{UP_CURSOR}{CLEAR_DOWN}")
        else:
            self._write("\n")
