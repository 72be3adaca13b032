"""
Shared pytest fixtures for csv2gremlin tests.

Most tests run against FakeGraphSession, an in-memory GraphSession with
scriptable failures, so no graph server is needed. Tests that talk to a
real Gremlin Server live in e2e-python/.
"""

import threading
import time
from collections import Counter, defaultdict

import pytest

from csv2gremlin import (
    ConnectionDescriptor,
    EdgeHandle,
    EndpointResolution,
    GraphSession,
    ImportOrchestrator,
    ImportSettings,
    RemoteRejection,
    RetryPolicy,
    VertexHandle,
)


class FakeGraph:
    """In-memory graph shared by every session a test opens."""

    def __init__(self):
        self.vertices = {}
        self.edges = []
        self.calls = Counter()
        self.sessions = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._failures = defaultdict(list)
        self._rejections = {}
        self._hooks = []
        self._next_id = 1
        self._lock = threading.Lock()

    def fail(self, operation, *errors):
        """Raise ``errors`` (in order) on the next calls of ``operation``."""
        self._failures[operation].extend(errors)

    def reject(self, operation, predicate):
        """Raise RemoteRejection whenever ``predicate(*args)`` is true."""
        self._rejections[operation] = predicate

    def on_call(self, hook):
        """Call ``hook(operation, count)`` on every operation."""
        self._hooks.append(hook)

    def add_vertex(self, label, properties):
        with self._lock:
            vertex_id = f"v{self._next_id}"
            self._next_id += 1
            self.vertices[vertex_id] = (label, dict(properties))
        return vertex_id

    def add_edge(self, relationship, from_id, to_id):
        with self._lock:
            edge_id = f"e{len(self.edges) + 1}"
            self.edges.append((edge_id, relationship, from_id, to_id))
        return edge_id

    def enter(self, operation, *args):
        with self._lock:
            self.calls[operation] += 1
            count = self.calls[operation]
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            error = self._failures[operation].pop(0) if self._failures[operation] else None
        try:
            for hook in self._hooks:
                hook(operation, count)
            if self.delay:
                time.sleep(self.delay)
            if error is not None:
                raise error
            predicate = self._rejections.get(operation)
            if predicate is not None and predicate(*args):
                raise RemoteRejection(f"{operation} rejected: {args!r}", 500)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeGraphSession(GraphSession):
    def __init__(self, graph, resolution=None):
        self.graph = graph
        self.resolution = resolution or EndpointResolution()
        self.closed = False

    def establish(self):
        self.graph.enter("establish")

    def create_vertex(self, label, properties):
        self.graph.enter("create_vertex", label, properties)
        return VertexHandle(self.graph.add_vertex(label, properties), label)

    def find_vertex(self, key):
        self.graph.enter("find_vertex", key)
        if self.resolution.mode == "id":
            if key in self.graph.vertices:
                return VertexHandle(key, self.graph.vertices[key][0])
            return None
        for vertex_id, (label, properties) in list(self.graph.vertices.items()):
            if self.resolution.label and label != self.resolution.label:
                continue
            if properties.get(self.resolution.property_key) == key:
                return VertexHandle(vertex_id, label)
        return None

    def create_edge(self, relationship, from_vertex, to_vertex):
        self.graph.enter("create_edge", relationship, from_vertex, to_vertex)
        edge_id = self.graph.add_edge(relationship, from_vertex.id, to_vertex.id)
        return EdgeHandle(edge_id, relationship)

    def close(self):
        self.closed = True


@pytest.fixture
def graph():
    """Empty in-memory graph."""
    return FakeGraph()


@pytest.fixture
def session_factory(graph):
    """Session factory with the orchestrator's signature, backed by ``graph``."""

    def _factory(descriptor, resolution, timeout):
        session = FakeGraphSession(graph, resolution)
        graph.sessions.append(session)
        return session

    return _factory


@pytest.fixture
def descriptor():
    return ConnectionDescriptor(hosts=["localhost"], port=8182, username="root", password="pw")


@pytest.fixture
def sleeps():
    """Backoff delays requested by the code under test (nothing really sleeps)."""
    return []


@pytest.fixture
def make_orchestrator(descriptor, session_factory, sleeps):
    """Build an orchestrator on the fake graph; kwargs go to ImportSettings."""

    def _make(cancel_event=None, **settings):
        settings.setdefault("retry", RetryPolicy(max_attempts=3, base_ms=10, use_jitter=False))
        return ImportOrchestrator(
            descriptor,
            ImportSettings(**settings),
            session_factory=session_factory,
            cancel_event=cancel_event,
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def write_csv(tmp_path):
    """Write ``text`` to a CSV file under tmp_path and return its path."""

    def _write(text, name="data.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: tests that sleep to exercise concurrency")
