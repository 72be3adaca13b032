"""
csv2gremlin - Import Orchestrator

Drives one import run: opens the session, dispatches records to the
matching importer on a bounded thread pool, aggregates the ImportReport
and closes the session on every exit path.

Run policy lives here, not in the importers:
- how many records are in flight at once (``concurrency``)
- bounded retry with backoff for GraphConnectionError
- fail-soft (default) or fail-fast above a failure ratio
- external cancellation through a ``threading.Event``

Example:
    >>> descriptor = load_descriptor("gremlin.yaml")
    >>> settings = ImportSettings(concurrency=16)
    >>> report = ImportOrchestrator(descriptor, settings).import_vertices(records)
    >>> print(report.render())
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import ConnectionDescriptor
from .exceptions import GraphImportError, ImportAborted
from .importers import EdgeImporter, EdgeInput, VertexImporter, VertexInput
from .results import ElementResult, ImportReport
from .retry import RetryPolicy, RetryState, call_with_retry
from .session import (
    DEFAULT_TIMEOUT,
    EndpointResolution,
    GraphSession,
    SessionFactory,
    open_session,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportSettings:
    """
    Policy for one import run.

    Attributes:
        concurrency: Maximum records in flight at once
        retry: Retry bounds for transient transport failures
        timeout: Per-request timeout in seconds
        fail_fast_threshold: Abort once failed/attempted reaches this
            ratio (None = fail-soft, process everything)
        fail_fast_min_records: Completed records needed before the
            ratio is evaluated
        resolution: How edge endpoint keys are matched to vertices
        cache_lookups: Reuse resolved endpoint handles within the run
        progress: Show a progress bar on stderr
    """

    concurrency: int = 8
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: float = DEFAULT_TIMEOUT
    fail_fast_threshold: Optional[float] = None
    fail_fast_min_records: int = 20
    resolution: EndpointResolution = field(default_factory=EndpointResolution)
    cache_lookups: bool = False
    progress: bool = False

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.fail_fast_threshold is not None and not 0 < self.fail_fast_threshold <= 1:
            raise ValueError("fail_fast_threshold must be in (0, 1]")
        if self.fail_fast_min_records < 1:
            raise ValueError("fail_fast_min_records must be >= 1")


class ImportOrchestrator:
    """
    Runs vertex or edge imports against one graph service.

    Each ``import_*`` call is an independent run with its own session.

    Args:
        descriptor: Connection settings for the graph service
        settings: Run policy (default: ImportSettings())
        session_factory: Builds the GraphSession (default: Gremlin HTTP)
        cancel_event: When set, no further records are dispatched
        sleep: Used for retry backoff (default: time.sleep)
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        settings: Optional[ImportSettings] = None,
        session_factory: Optional[SessionFactory] = None,
        cancel_event: Optional[threading.Event] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.descriptor = descriptor
        self.settings = settings or ImportSettings()
        self.session_factory = session_factory
        self.cancel_event = cancel_event or threading.Event()
        self._sleep = sleep

    def cancel(self):
        """Stop dispatching new records; in-flight ones finish normally."""
        self.cancel_event.set()

    def import_vertices(self, records: Sequence[VertexInput]) -> ImportReport:
        return self._run(
            "vertex", records, lambda session: VertexImporter(session, self._runner)
        )

    def import_edges(self, records: Sequence[EdgeInput]) -> ImportReport:
        return self._run(
            "edge",
            records,
            lambda session: EdgeImporter(
                session, self._runner, cache_lookups=self.settings.cache_lookups
            ),
        )

    # Retry plumbing

    def _runner(self, fn: Callable[[], Any]) -> Tuple[Any, RetryState]:
        return call_with_retry(fn, self.settings.retry, sleep=self._sleep)

    def _establish(self, session: GraphSession):
        self._runner(session.establish)

    # Run

    def _run(self, element: str, records: Sequence, make_importer) -> ImportReport:
        report = ImportReport(element=element)
        started = time.monotonic()
        logger.info(
            "Importing %d %s record(s) into %s (concurrency=%d)",
            len(records),
            element,
            ", ".join(self.descriptor.hosts),
            self.settings.concurrency,
        )

        try:
            with open_session(
                self.descriptor,
                self.settings.resolution,
                self.settings.timeout,
                factory=self.session_factory,
                establish=self._establish,
            ) as session:
                self._dispatch(make_importer(session), records, report)
        except ImportAborted as e:
            logger.error("%s import aborted: %s", element.capitalize(), e)
            report.aborted = e
        except GraphImportError as e:
            # Only session establishment lets record-level errors escape
            logger.error("Could not establish session: %s", e)
            report.aborted = ImportAborted(f"Could not establish session: {e}", e)
        finally:
            report.finalize(time.monotonic() - started)

        logger.info(
            "%s import finished: %d attempted, %d succeeded, %d failed",
            element.capitalize(),
            report.attempted,
            report.succeeded,
            report.failed,
        )
        return report

    def _should_abort(self, report: ImportReport) -> bool:
        threshold = self.settings.fail_fast_threshold
        if threshold is None or report.attempted < self.settings.fail_fast_min_records:
            return False
        return report.failed / report.attempted >= threshold

    def _dispatch(self, importer, records: Sequence, report: ImportReport):
        """
        Feed records to the pool, keeping at most ``concurrency`` in flight.

        Results arrive in completion order; the report orders them by
        input index when it is finalized.
        """
        total = len(records)
        pending: Dict[Future, int] = {}
        next_index = 0
        abort: Optional[ImportAborted] = None

        with ThreadPoolExecutor(
            max_workers=self.settings.concurrency,
            thread_name_prefix=f"csv2gremlin-{importer.element}",
        ) as pool, tqdm(
            total=total,
            desc=f"{importer.element}s",
            unit="rec",
            disable=not self.settings.progress,
        ) as bar:
            while True:
                while (
                    next_index < total
                    and len(pending) < self.settings.concurrency
                    and abort is None
                    and not self.cancel_event.is_set()
                ):
                    future = pool.submit(
                        importer.import_record, next_index, records[next_index]
                    )
                    pending[future] = next_index
                    next_index += 1

                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    try:
                        result = future.result()
                    except Exception as e:
                        # A bug in the importer itself, not a record-level failure
                        logger.exception("Unexpected error importing row %d", index)
                        result = ElementResult.from_exception(index, e)
                        if abort is None:
                            abort = ImportAborted(
                                f"Unexpected error on row {index}: {e}", e
                            )
                    report.add(result)
                    bar.update(1)

                if abort is None and self._should_abort(report):
                    abort = ImportAborted(
                        f"Failure ratio {report.failed}/{report.attempted} reached "
                        f"fail-fast threshold {self.settings.fail_fast_threshold}"
                    )

        if abort is not None:
            raise abort
        if next_index < total:
            report.cancelled = True
            logger.warning(
                "Import cancelled: %d of %d record(s) were not dispatched",
                total - next_index,
                total,
            )


def import_vertices(
    descriptor: ConnectionDescriptor,
    records: Sequence[VertexInput],
    settings: Optional[ImportSettings] = None,
    **kwargs,
) -> ImportReport:
    """
    Import vertex records in one run.

    Args:
        descriptor: Connection settings
        records: Vertex records (or InvalidRecord placeholders) in file order
        settings: Run policy
        **kwargs: Passed to ImportOrchestrator (session_factory, ...)

    Example:
        >>> report = import_vertices(descriptor, [VertexRecord("person", {"name": "Alice"})])
        >>> report.exit_code
        0
    """
    return ImportOrchestrator(descriptor, settings, **kwargs).import_vertices(records)


def import_edges(
    descriptor: ConnectionDescriptor,
    records: Sequence[EdgeInput],
    settings: Optional[ImportSettings] = None,
    **kwargs,
) -> ImportReport:
    """Import edge records in one run. Vertices must already exist."""
    return ImportOrchestrator(descriptor, settings, **kwargs).import_edges(records)
