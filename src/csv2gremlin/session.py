"""
csv2gremlin - Graph Session

The capability set the importers talk to (GraphSession) and its Gremlin
Server implementation over HTTP (GremlinHttpSession).

Gremlin Server accepts parameterized scripts on its HTTP endpoint:

    POST {scheme}://{host}:{port}/gremlin
    {"gremlin": "g.addV(vLabel).id()", "bindings": {"vLabel": "person"}}

Every value coming from the CSV is passed as a binding, never spliced
into the script text.
"""

import logging
import re
import ssl
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth

from .config import ConnectionDescriptor, Serializer
from .exceptions import ConfigError, GraphConnectionError, RemoteRejection

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Gremlin Server response status codes carried in the body
_STATUS_SERVER_TIMEOUT = 598

# HTTP statuses that mean the service (or a proxy in front of it) is
# temporarily unavailable rather than rejecting the request
_TRANSIENT_HTTP_STATUS = {429, 502, 503, 504}

_TLS_VERSIONS = {
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}

_GRAPHSON_MIME = "application/vnd.gremlin-v{version}.0+json"


@dataclass(frozen=True)
class VertexHandle:
    """Opaque reference to a vertex held by the service."""

    id: Any
    label: Optional[str] = None


@dataclass(frozen=True)
class EdgeHandle:
    """Opaque reference to an edge held by the service."""

    id: Any
    label: Optional[str] = None


@dataclass(frozen=True)
class EndpointResolution:
    """
    How edge endpoint keys are matched to vertices. Fixed for a run.

    Attributes:
        mode: "id" (key is the vertex id) or "property" (key is the value
              of ``property_key``)
        property_key: Vertex property holding the key (property mode)
        label: Only consider vertices with this label (property mode)
    """

    mode: str = "id"
    property_key: Optional[str] = None
    label: Optional[str] = None

    def __post_init__(self):
        if self.mode not in ("id", "property"):
            raise ConfigError(f"Unknown resolution mode: {self.mode!r}")
        if self.mode == "property" and not self.property_key:
            raise ConfigError("Property resolution needs a property_key")

    @classmethod
    def parse(cls, text: str, label: Optional[str] = None) -> "EndpointResolution":
        """
        Parse the command-line form: ``id`` or ``property:<key>``.

        Example:
            >>> EndpointResolution.parse("property:name")
            EndpointResolution(mode='property', property_key='name', label=None)
        """
        if text == "id":
            return cls("id", label=label)
        mode, _, key = text.partition(":")
        if mode != "property" or not key:
            raise ConfigError(f"Resolution must be 'id' or 'property:<key>', got {text!r}")
        return cls("property", property_key=key, label=label)

    def describe(self) -> str:
        if self.mode == "id":
            return "vertex id"
        where = f"{self.label}." if self.label else ""
        return f"property {where}{self.property_key}"


class GraphSession(ABC):
    """
    One logical connection to a graph service.

    Implementations must be safe for concurrent use by several worker
    threads; callers never lock around these methods.
    """

    @abstractmethod
    def create_vertex(self, label: str, properties: Mapping[str, str]) -> VertexHandle:
        """
        Create a vertex; the service assigns its identity.

        Raises:
            GraphConnectionError: Transport-level failure
            RemoteRejection: The service refused the vertex
        """

    @abstractmethod
    def find_vertex(self, key: str) -> Optional[VertexHandle]:
        """
        Look a vertex up by the run's resolution key.

        Returns:
            The handle, or None when nothing matches
        """

    @abstractmethod
    def create_edge(
        self, relationship: str, from_vertex: VertexHandle, to_vertex: VertexHandle
    ) -> EdgeHandle:
        """Create an edge between two resolved vertices."""

    def establish(self):
        """Verify the service is reachable. No-op unless overridden."""

    def close(self):
        """Release remote resources. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TLSProtocolAdapter(HTTPAdapter):
    """HTTPS adapter restricted to a set of TLS protocol versions."""

    def __init__(self, protocols: List[str], **kwargs):
        unknown = [p for p in protocols if p not in _TLS_VERSIONS]
        if unknown:
            raise ConfigError(f"Unsupported TLS protocols: {', '.join(unknown)}")
        versions = sorted(_TLS_VERSIONS[p] for p in protocols)
        self._minimum = versions[0]
        self._maximum = versions[-1]
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        context = ssl.create_default_context()
        context.minimum_version = self._minimum
        context.maximum_version = self._maximum
        kwargs["ssl_context"] = context
        return super().init_poolmanager(*args, **kwargs)


def accept_header(serializer: Serializer) -> str:
    """
    MIME type to request for the configured serializer class.

    GraphSON serializers map to their version; binary (and unknown)
    serializers cannot be read over HTTP as JSON, so they fall back to
    untyped GraphSON 3.
    """
    name = serializer.class_name.rsplit(".", 1)[-1]
    match = re.search(r"GraphSON\w*?V(\d)", name)
    if match is None:
        logger.warning(
            "Serializer %s is not readable over HTTP, using untyped GraphSON 3",
            serializer.class_name,
        )
        return _GRAPHSON_MIME.format(version=3) + ";types=false"
    mime = _GRAPHSON_MIME.format(version=match.group(1))
    if "Untyped" in name:
        mime += ";types=false"
    return mime


def untype(value: Any) -> Any:
    """Strip GraphSON 2/3 type wrappers (``{"@type": .., "@value": ..}``)."""
    if isinstance(value, list):
        return [untype(v) for v in value]
    if not isinstance(value, dict):
        return value
    if "@type" in value and "@value" in value:
        type_name = value["@type"]
        inner = value["@value"]
        if type_name == "g:Map":
            items = [untype(v) for v in inner]
            return {_hashable(k): v for k, v in zip(items[::2], items[1::2])}
        return untype(inner)
    return {k: untype(v) for k, v in value.items()}


def _hashable(key: Any) -> Any:
    return key if not isinstance(key, (dict, list)) else repr(key)


class GremlinHttpSession(GraphSession):
    """
    GraphSession backed by Gremlin Server's HTTP endpoint.

    Each worker thread gets its own ``requests.Session`` (and therefore
    its own keep-alive connection); all of them are closed by ``close()``.
    When several hosts are configured, a host that fails at transport
    level is rotated out in favor of the next one.

    Example:
        >>> descriptor = load_descriptor("gremlin.yaml")
        >>> with GremlinHttpSession(descriptor) as session:
        ...     session.establish()
        ...     alice = session.create_vertex("person", {"name": "Alice"})
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        resolution: Optional[EndpointResolution] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.descriptor = descriptor
        self.resolution = resolution or EndpointResolution()
        self.timeout = timeout

        self._endpoints = descriptor.endpoints()
        self._accept = accept_header(descriptor.serializer)
        self._stringify_ids = descriptor.serializer.serialize_result_to_string
        self._tls_protocols = list(descriptor.connection_pool.ssl_enabled_protocols)
        if descriptor.connection_pool.enable_ssl and self._tls_protocols:
            # Fail on bad protocol names before any thread opens a connection
            TLSProtocolAdapter(self._tls_protocols)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._http_sessions: List[requests.Session] = []
        self._host_cursor = 0
        self._closed = False

    # Connection management

    def _http(self) -> requests.Session:
        if self._closed:
            raise GraphConnectionError("Session is closed", retryable=False)
        http = getattr(self._local, "http", None)
        if http is None:
            http = requests.Session()
            if self.descriptor.username:
                http.auth = HTTPBasicAuth(self.descriptor.username, self.descriptor.password)
            http.headers.update(
                {"Accept": self._accept, "Content-Type": "application/json"}
            )
            if self.descriptor.connection_pool.enable_ssl and self._tls_protocols:
                http.mount("https://", TLSProtocolAdapter(self._tls_protocols))
            with self._lock:
                self._http_sessions.append(http)
            self._local.http = http
        return http

    def _current_endpoint(self) -> str:
        with self._lock:
            return self._endpoints[self._host_cursor % len(self._endpoints)]

    def _rotate_from(self, endpoint: str):
        with self._lock:
            # Another thread may already have moved past this host
            if self._endpoints[self._host_cursor % len(self._endpoints)] == endpoint:
                self._host_cursor += 1
                if len(self._endpoints) > 1:
                    logger.warning(
                        "Host %s unreachable, switching to %s",
                        endpoint,
                        self._endpoints[self._host_cursor % len(self._endpoints)],
                    )

    def establish(self):
        """
        Probe the service once.

        Raises:
            GraphConnectionError: The service is unreachable or refused
                the credentials
        """
        self.submit("1")
        logger.info(
            "Connected to Gremlin Server at %s (resolving endpoints by %s)",
            self._current_endpoint(),
            self.resolution.describe(),
        )

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sessions, self._http_sessions = self._http_sessions, []
        for http in sessions:
            http.close()
        logger.debug("Closed %d HTTP connection(s)", len(sessions))

    # Wire protocol

    def submit(self, script: str, bindings: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Evaluate a script and return its result list, type wrappers removed.

        Raises:
            GraphConnectionError: Transport failure, timeout, auth failure
                or a transient gateway status
            RemoteRejection: Any other error reported by the server
        """
        http = self._http()
        endpoint = self._current_endpoint()
        payload = {"gremlin": script, "bindings": bindings or {}}

        try:
            response = http.post(f"{endpoint}/gremlin", json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            self._rotate_from(endpoint)
            raise GraphConnectionError(
                f"Request to {endpoint} timed out after {self.timeout}s", host=endpoint
            ) from e
        except requests.exceptions.RequestException as e:
            self._rotate_from(endpoint)
            raise GraphConnectionError(
                f"Cannot reach {endpoint}: {e}", host=endpoint
            ) from e

        return self._parse_response(response, endpoint)

    def _parse_response(self, response: requests.Response, endpoint: str) -> List[Any]:
        status = response.status_code
        if status in (401, 403):
            raise GraphConnectionError(
                f"Authentication rejected by {endpoint} (HTTP {status})",
                host=endpoint,
                retryable=False,
            )
        if status in _TRANSIENT_HTTP_STATUS:
            raise GraphConnectionError(
                f"Service unavailable at {endpoint} (HTTP {status})", host=endpoint
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteRejection(
                f"Unreadable response (HTTP {status}): {response.text[:200]}", status
            ) from e

        if status >= 400:
            raise RemoteRejection(_error_message(body, status), status)
        if not isinstance(body, dict):
            raise RemoteRejection(f"Unexpected response shape: {str(body)[:200]}", status)

        code = (body.get("status") or {}).get("code", 200)
        if code == _STATUS_SERVER_TIMEOUT:
            raise GraphConnectionError(
                f"Server-side timeout: {_error_message(body, code)}", host=endpoint
            )
        if code >= 400:
            raise RemoteRejection(_error_message(body, code), code)

        data = untype((body.get("result") or {}).get("data"))
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    def _element_id(self, value: Any) -> Any:
        if isinstance(value, dict) and "id" in value:
            value = value["id"]
        return str(value) if self._stringify_ids else value

    # Capability set

    def create_vertex(self, label: str, properties: Mapping[str, str]) -> VertexHandle:
        script = ["g.addV(vLabel)"]
        bindings: Dict[str, Any] = {"vLabel": label}
        for i, (key, value) in enumerate(properties.items()):
            script.append(f".property(pk{i}, pv{i})")
            bindings[f"pk{i}"] = key
            bindings[f"pv{i}"] = value
        script.append(".id()")

        data = self.submit("".join(script), bindings)
        if not data:
            raise RemoteRejection(f"Service returned no id for new {label} vertex")
        return VertexHandle(self._element_id(data[0]), label)

    def find_vertex(self, key: str) -> Optional[VertexHandle]:
        if self.resolution.mode == "id":
            data = self.submit("g.V(vId).id()", {"vId": key})
        else:
            bindings: Dict[str, Any] = {"rKey": self.resolution.property_key, "rVal": key}
            script = "g.V()"
            if self.resolution.label:
                script += ".hasLabel(rLabel)"
                bindings["rLabel"] = self.resolution.label
            data = self.submit(script + ".has(rKey, rVal).limit(1).id()", bindings)
        if not data:
            return None
        return VertexHandle(self._element_id(data[0]), self.resolution.label)

    def create_edge(
        self, relationship: str, from_vertex: VertexHandle, to_vertex: VertexHandle
    ) -> EdgeHandle:
        data = self.submit(
            "g.V(srcId).addE(eLabel).to(__.V(dstId)).id()",
            {"srcId": from_vertex.id, "dstId": to_vertex.id, "eLabel": relationship},
        )
        if not data:
            # Either endpoint disappeared between lookup and write
            raise RemoteRejection(
                f"Edge {relationship} {from_vertex.id} -> {to_vertex.id} was not created"
            )
        return EdgeHandle(self._element_id(data[0]), relationship)


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        message = body.get("message") or (body.get("status") or {}).get("message")
        if message:
            return f"{message} (status {status})"
    return f"Request rejected (status {status})"


SessionFactory = Callable[[ConnectionDescriptor, EndpointResolution, float], GraphSession]


@contextmanager
def open_session(
    descriptor: ConnectionDescriptor,
    resolution: Optional[EndpointResolution] = None,
    timeout: float = DEFAULT_TIMEOUT,
    factory: Optional[SessionFactory] = None,
    establish: Optional[Callable[[GraphSession], Any]] = None,
) -> Iterator[GraphSession]:
    """
    Open a session, establish it and guarantee it is closed afterwards.

    Args:
        descriptor: Connection settings
        resolution: Endpoint resolution for the run (default: by id)
        timeout: Per-request timeout in seconds
        factory: Builds the session (default: GremlinHttpSession)
        establish: Called with the session to establish it (default:
                   ``session.establish()``); lets callers add retries

    Raises:
        GraphConnectionError: The session could not be established
    """
    factory = factory or GremlinHttpSession
    session = factory(descriptor, resolution or EndpointResolution(), timeout)
    try:
        if establish is None:
            session.establish()
        else:
            establish(session)
        yield session
    finally:
        session.close()
