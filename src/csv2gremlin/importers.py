"""
csv2gremlin - Vertex and Edge Importers

Turn records into graph elements through a GraphSession, one record at a
time, reporting an ElementResult per record. A failing record never stops
the others.

Importers do not retry on their own. Every remote call goes through the
``runner`` they are given; the default runner makes exactly one attempt,
the orchestrator passes one that applies its RetryPolicy.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import GraphImportError, InvalidRecord, UnresolvedEndpoint
from .records import EdgeRecord, VertexRecord
from .results import ElementResult
from .retry import NO_RETRY, RetryState, call_with_retry
from .session import GraphSession, VertexHandle

logger = logging.getLogger(__name__)

Runner = Callable[[Callable[[], Any]], Tuple[Any, RetryState]]

# An input slot is either a valid record or the error raised while building it
VertexInput = Union[VertexRecord, InvalidRecord]
EdgeInput = Union[EdgeRecord, InvalidRecord]


def single_attempt(fn: Callable[[], Any]) -> Tuple[Any, RetryState]:
    return call_with_retry(fn, NO_RETRY)


class _AttemptCounter:
    """Remote attempts spent on one record, across all of its calls."""

    def __init__(self):
        self.count = 0


class _ElementImporter:
    """Shared plumbing for the vertex and edge importers."""

    element = "element"

    def __init__(self, session: GraphSession, runner: Optional[Runner] = None):
        self.session = session
        self._runner = runner or single_attempt

    def _call(self, fn: Callable[[], Any], counter: _AttemptCounter) -> Any:
        try:
            result, state = self._runner(fn)
        except Exception as e:
            state = getattr(e, "retry_state", None)
            counter.count += state.attempts if state is not None else 1
            raise
        counter.count += state.attempts
        return result

    def import_record(self, index: int, record) -> ElementResult:
        raise NotImplementedError

    def import_all(self, records: Sequence) -> List[ElementResult]:
        """
        Import every record sequentially.

        Returns:
            One result per input record; ``results[i]`` belongs to
            ``records[i]``
        """
        results: List[Optional[ElementResult]] = [None] * len(records)
        for index, record in enumerate(records):
            results[index] = self.import_record(index, record)
        return results


class VertexImporter(_ElementImporter):
    """
    Creates one vertex per VertexRecord.

    Example:
        >>> importer = VertexImporter(session)
        >>> results = importer.import_all([VertexRecord("person", {"name": "Alice"})])
        >>> results[0].ok
        True
    """

    element = "vertex"

    def import_record(self, index: int, record: VertexInput) -> ElementResult:
        if isinstance(record, InvalidRecord):
            return ElementResult.from_exception(index, record)

        counter = _AttemptCounter()
        try:
            handle = self._call(
                lambda: self.session.create_vertex(record.label, record.properties),
                counter,
            )
        except GraphImportError as e:
            logger.debug("Vertex row %d failed: %s", index, e)
            return ElementResult.from_exception(index, e, counter.count)
        except Exception as e:
            logger.warning(
                "Vertex row %d failed with unexpected %s: %s", index, type(e).__name__, e
            )
            return ElementResult.from_exception(index, e, counter.count)
        return ElementResult.success(index, handle.id, counter.count)


class EdgeImporter(_ElementImporter):
    """
    Creates one edge per EdgeRecord after resolving both endpoints.

    Each record costs up to two lookups and one write. With
    ``cache_lookups`` a key found once is not looked up again during the
    run; keys that were not found are always looked up again.
    """

    element = "edge"

    def __init__(
        self,
        session: GraphSession,
        runner: Optional[Runner] = None,
        cache_lookups: bool = False,
    ):
        super().__init__(session, runner)
        self.cache_lookups = cache_lookups
        self._cache: Dict[str, VertexHandle] = {}
        self._cache_lock = threading.Lock()

    def _resolve(self, key: str, side: str, counter: _AttemptCounter) -> VertexHandle:
        if self.cache_lookups:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None:
                return cached

        handle = self._call(lambda: self.session.find_vertex(key), counter)
        if handle is None:
            raise UnresolvedEndpoint(key, side)

        if self.cache_lookups:
            with self._cache_lock:
                self._cache[key] = handle
        return handle

    def import_record(self, index: int, record: EdgeInput) -> ElementResult:
        if isinstance(record, InvalidRecord):
            return ElementResult.from_exception(index, record)

        counter = _AttemptCounter()
        try:
            source = self._resolve(record.from_key, "source", counter)
            target = self._resolve(record.to_key, "destination", counter)
            edge = self._call(
                lambda: self.session.create_edge(record.relationship, source, target),
                counter,
            )
        except GraphImportError as e:
            logger.debug("Edge row %d failed: %s", index, e)
            return ElementResult.from_exception(index, e, counter.count)
        except Exception as e:
            logger.warning(
                "Edge row %d failed with unexpected %s: %s", index, type(e).__name__, e
            )
            return ElementResult.from_exception(index, e, counter.count)
        return ElementResult.success(index, edge.id, counter.count)
