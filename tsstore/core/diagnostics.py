"""
Diagnostics channel for the store subsystem.

Components never write to a user-facing stream. They report two kinds of
events to an injected sink:

- informational events (``StoreInfo``), e.g. "beginning install of V at P"
- diagnostics (``Diagnostic``): an error or warning with one or more lines
  of text and, optionally, the exception that caused it

``LoggingDiagnosticSink`` is the default sink and forwards everything to the
standard ``logging`` module.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class DiagnosticCategory(Enum):
    """Severity of a diagnostic."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class Diagnostic:
    """A single- or multi-line message with a severity."""

    text: List[str]
    category: DiagnosticCategory
    cause: Optional[BaseException] = None

    @classmethod
    def error(
        cls, text: Union[str, Sequence[str]], cause: Optional[BaseException] = None
    ) -> "Diagnostic":
        return cls(_as_lines(text), DiagnosticCategory.ERROR, cause)

    @classmethod
    def warning(
        cls, text: Union[str, Sequence[str]], cause: Optional[BaseException] = None
    ) -> "Diagnostic":
        return cls(_as_lines(text), DiagnosticCategory.WARNING, cause)

    @classmethod
    def from_error(
        cls, text: Union[str, Sequence[str]], error: BaseException
    ) -> "Diagnostic":
        """
        Build an error diagnostic naming the operation and its cause.

        Only the exception message is appended, never a traceback.

        Example:
            >>> d = Diagnostic.from_error("Failed to install 'typescript@5.4.2'.",
            ...                           OSError("disk full"))
            >>> d.text
            ["Failed to install 'typescript@5.4.2'.", 'disk full']
        """
        lines = _as_lines(text)
        message = str(error)
        if message:
            lines.append(message)
        return cls(lines, DiagnosticCategory.ERROR, error)

    @property
    def message(self) -> str:
        return "\n".join(self.text)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class StoreInfo:
    """Informational event emitted before an installation begins."""

    compiler_version: str
    installation_path: Path

    def __str__(self) -> str:
        return (
            f"Adding 'typescript@{self.compiler_version}' "
            f"to {self.installation_path}"
        )


def _as_lines(text: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(text, str):
        return [text]
    return list(text)


class DiagnosticSink:
    """
    Receiver for store events.

    Subclasses override ``on_info`` and ``on_diagnostic``. The base class
    ignores everything, which makes it usable as a null sink.
    """

    def on_info(self, info: StoreInfo) -> None:
        pass

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        pass


@dataclass
class LoggingDiagnosticSink(DiagnosticSink):
    """
    Sink that forwards store events to ``logging``.

    Attributes:
        error_count: Number of error diagnostics received so far
        warning_count: Number of warning diagnostics received so far
    """

    log: logging.Logger = field(default=logger)
    error_count: int = 0
    warning_count: int = 0

    def on_info(self, info: StoreInfo) -> None:
        self.log.info(str(info))

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        if diagnostic.category is DiagnosticCategory.ERROR:
            self.error_count += 1
            self.log.error(diagnostic.message)
        else:
            self.warning_count += 1
            self.log.warning(diagnostic.message)


__all__ = [
    "Diagnostic",
    "DiagnosticCategory",
    "DiagnosticSink",
    "LoggingDiagnosticSink",
    "StoreInfo",
]
