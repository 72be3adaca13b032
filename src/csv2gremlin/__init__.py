"""
csv2gremlin

Bulk-load CSV vertices and edges into a remote Gremlin graph database,
with per-record outcome reporting, bounded retries and parallel dispatch.
"""

from ._version import __version__

# Import connection descriptor
from .config import ConnectionDescriptor, ConnectionPool, Serializer, load_descriptor

# Import exceptions
from .exceptions import (
    ConfigError,
    GraphConnectionError,
    GraphImportError,
    ImportAborted,
    InputError,
    InvalidRecord,
    RemoteRejection,
    UnresolvedEndpoint,
)

# Import importers
from .importers import EdgeImporter, VertexImporter

# Import orchestration
from .orchestrator import ImportOrchestrator, ImportSettings, import_edges, import_vertices

# Import CSV reader
from .reader import read_edges, read_vertices

# Import record model
from .records import EdgeRecord, VertexRecord

# Import result classes
from .results import ElementResult, ErrorKind, ImportReport

# Import retry policy
from .retry import RetryPolicy, RetryState

# Import session classes
from .session import (
    EdgeHandle,
    EndpointResolution,
    GraphSession,
    GremlinHttpSession,
    VertexHandle,
    open_session,
)

__all__ = [
    "__version__",
    # Exceptions
    "GraphImportError",
    "ConfigError",
    "InputError",
    "InvalidRecord",
    "GraphConnectionError",
    "RemoteRejection",
    "UnresolvedEndpoint",
    "ImportAborted",
    # Records
    "VertexRecord",
    "EdgeRecord",
    # Results
    "ElementResult",
    "ErrorKind",
    "ImportReport",
    # Connection descriptor
    "ConnectionDescriptor",
    "ConnectionPool",
    "Serializer",
    "load_descriptor",
    # Session
    "GraphSession",
    "GremlinHttpSession",
    "EndpointResolution",
    "VertexHandle",
    "EdgeHandle",
    "open_session",
    # Retry
    "RetryPolicy",
    "RetryState",
    # Importers
    "VertexImporter",
    "EdgeImporter",
    # Orchestration
    "ImportOrchestrator",
    "ImportSettings",
    "import_vertices",
    "import_edges",
    # CSV reader
    "read_vertices",
    "read_edges",
]
