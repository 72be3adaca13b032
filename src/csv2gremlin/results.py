"""
csv2gremlin - Import Results

Per-record outcomes (ElementResult) and the aggregate ImportReport.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import (
    GraphConnectionError,
    ImportAborted,
    InvalidRecord,
    UnresolvedEndpoint,
)


class ErrorKind(str, Enum):
    """Classification of a record-level failure."""

    INVALID_RECORD = "InvalidRecord"
    CONNECTION_ERROR = "ConnectionError"
    REMOTE_REJECTION = "RemoteRejection"
    UNRESOLVED_ENDPOINT = "UnresolvedEndpoint"

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorKind":
        """
        Map an exception to its error kind.

        Built-in ConnectionError and TimeoutError from other transports
        count as connection errors. Anything else that is not one of the
        known record-level errors is treated as a rejection.
        """
        if isinstance(error, InvalidRecord):
            return cls.INVALID_RECORD
        if isinstance(error, (GraphConnectionError, ConnectionError, TimeoutError)):
            return cls.CONNECTION_ERROR
        if isinstance(error, UnresolvedEndpoint):
            return cls.UNRESOLVED_ENDPOINT
        return cls.REMOTE_REJECTION

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ElementResult:
    """Outcome of one creation attempt, tied to its input position."""

    index: int
    element_id: Any = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    attempts: int = 0

    @classmethod
    def success(cls, index: int, element_id: Any, attempts: int = 1) -> "ElementResult":
        return cls(index=index, element_id=element_id, attempts=attempts)

    @classmethod
    def failure(
        cls, index: int, error_kind: ErrorKind, message: str = "", attempts: int = 0
    ) -> "ElementResult":
        return cls(
            index=index, error_kind=error_kind, message=message, attempts=attempts
        )

    @classmethod
    def from_exception(
        cls, index: int, error: BaseException, attempts: int = 0
    ) -> "ElementResult":
        return cls.failure(index, ErrorKind.from_exception(error), str(error), attempts)

    @property
    def ok(self) -> bool:
        return self.error_kind is None


@dataclass
class ImportReport:
    """
    Aggregate outcome of one import run.

    Built incrementally with ``add()`` while records complete, then
    ``finalize()``d once the input is exhausted (or the run stopped).
    ``results`` keeps one slot per dispatched record, ordered by input
    index, so failed rows can be mapped back to the source file.

    Example:
        >>> report = ImportReport(element="edge")
        >>> report.add(ElementResult.success(0, "#12:0"))
        >>> report.finalize()
        >>> report.summary()
        {'element': 'edge', 'attempted': 1, 'succeeded': 1, 'failed': 0, ...}
    """

    element: str = "vertex"
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[ElementResult] = field(default_factory=list)
    aborted: Optional[ImportAborted] = None
    cancelled: bool = False
    duration: float = 0.0

    def add(self, result: ElementResult):
        self.attempted += 1
        if result.ok:
            self.succeeded += 1
        else:
            self.failed += 1
        self.results.append(result)

    def finalize(self, duration: float = 0.0):
        self.results.sort(key=lambda r: r.index)
        self.duration = duration

    @property
    def failures(self) -> List[ElementResult]:
        """Failed results in input order."""
        return [r for r in self.results if not r.ok]

    def failed_indices(self) -> List[int]:
        return [r.index for r in self.failures]

    @property
    def exit_code(self) -> int:
        if self.aborted is not None:
            return 2
        return 1 if self.failed else 0

    def summary(self) -> Dict[str, Any]:
        return {
            "element": self.element,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "aborted": str(self.aborted) if self.aborted else None,
        }

    def render(self, max_failures: Optional[int] = None) -> str:
        """
        Human-readable summary: counts, then one line per failure.

        Args:
            max_failures: Only list this many failures (None = all)
        """
        lines = [
            f"{self.element.capitalize()} import: "
            f"attempted={self.attempted} succeeded={self.succeeded} "
            f"failed={self.failed} ({self.duration:.2f}s)"
        ]
        if self.cancelled:
            lines.append("Run cancelled before all records were dispatched")
        if self.aborted is not None:
            lines.append(f"Run aborted: {self.aborted}")

        failures = self.failures
        shown = failures if max_failures is None else failures[:max_failures]
        for result in shown:
            lines.append(f"  row {result.index}: {result.error_kind} - {result.message}")
        if len(shown) < len(failures):
            lines.append(f"  ... and {len(failures) - len(shown)} more failures")
        return "\n".join(lines)
