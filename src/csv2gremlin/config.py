"""
csv2gremlin - Connection Descriptor

Loads the YAML connection file (Gremlin driver style) into dataclasses.

Example file:

    hosts: [localhost]
    port: 8182
    username: root
    password: secret
    connectionPool:
      enableSsl: false
      sslEnabledProtocols: [TLSv1.2]
    serializer:
      className: org.apache.tinkerpop.gremlin.util.ser.GraphSONMessageSerializerV3
      config:
        serializeResultToString: false
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8182
DEFAULT_SERIALIZER = "org.apache.tinkerpop.gremlin.util.ser.GraphSONMessageSerializerV3"


@dataclass(frozen=True)
class ConnectionPool:
    """Transport security block."""

    enable_ssl: bool = False
    ssl_enabled_protocols: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Serializer:
    """Wire serialization selection, passed through to the transport."""

    class_name: str = DEFAULT_SERIALIZER
    serialize_result_to_string: bool = False


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Everything needed to open a session with the graph service."""

    hosts: List[str]
    port: int = DEFAULT_PORT
    username: str = ""
    password: str = ""
    connection_pool: ConnectionPool = field(default_factory=ConnectionPool)
    serializer: Serializer = field(default_factory=Serializer)

    @property
    def scheme(self) -> str:
        return "https" if self.connection_pool.enable_ssl else "http"

    def endpoints(self) -> List[str]:
        """Base URL of every configured host."""
        return [f"{self.scheme}://{host}:{self.port}" for host in self.hosts]

    def __repr__(self) -> str:
        # Keep the password out of logs and tracebacks
        return (
            f"ConnectionDescriptor(hosts={self.hosts!r}, port={self.port}, "
            f"username={self.username!r}, ssl={self.connection_pool.enable_ssl})"
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionDescriptor":
        """
        Build a descriptor from the parsed YAML mapping.

        Raises:
            ConfigError: If hosts are missing or a value has the wrong type
        """
        if not isinstance(data, dict):
            raise ConfigError("Connection descriptor must be a mapping")

        hosts = _string_list(data.get("hosts"), "hosts")
        if not hosts or not all(hosts):
            raise ConfigError("Connection descriptor needs a non-empty 'hosts' list")

        port = data.get("port", DEFAULT_PORT)
        if isinstance(port, bool):
            raise ConfigError(f"Invalid port: {port!r}")
        try:
            port = int(port)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid port: {port!r}") from e
        if not 0 < port < 65536:
            raise ConfigError(f"Port out of range: {port}")

        pool = _block(data, "connectionPool")
        serializer = _block(data, "serializer")
        serializer_config = _block(serializer, "config", "serializer.config")

        class_name = serializer.get("className") or DEFAULT_SERIALIZER
        if not isinstance(class_name, str):
            raise ConfigError(f"serializer.className must be a string, got {class_name!r}")

        return cls(
            hosts=hosts,
            port=port,
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            connection_pool=ConnectionPool(
                enable_ssl=_flag(pool, "enableSsl", "connectionPool.enableSsl"),
                ssl_enabled_protocols=_string_list(
                    pool.get("sslEnabledProtocols"), "connectionPool.sslEnabledProtocols"
                ),
            ),
            serializer=Serializer(
                class_name=class_name,
                serialize_result_to_string=_flag(
                    serializer_config,
                    "serializeResultToString",
                    "serializer.config.serializeResultToString",
                ),
            ),
        )


def _block(data: Dict[str, Any], key: str, name: Optional[str] = None) -> Dict[str, Any]:
    """Nested mapping under ``key``; a missing or empty block is ``{}``."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name or key}' must be a mapping, got {value!r}")
    return value


def _flag(block: Dict[str, Any], key: str, name: str) -> bool:
    value = block.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"'{name}' must be true or false, got {value!r}")
    return value


def _string_list(value: Any, name: str) -> List[str]:
    """A list of strings; a bare string counts as a one-item list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{name}' must be a string or a list of strings, got {value!r}")
    return list(value)


def load_descriptor(path: str, environ: Optional[Dict[str, str]] = None) -> ConnectionDescriptor:
    """
    Read a connection descriptor from a YAML file.

    ``CSV2GREMLIN_PASSWORD`` in the environment overrides the password
    from the file, so credentials need not be stored on disk.

    Args:
        path: Path to the YAML file
        environ: Environment mapping (default: os.environ)

    Returns:
        ConnectionDescriptor

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    descriptor = ConnectionDescriptor.from_dict(data)

    environ = os.environ if environ is None else environ
    password = environ.get("CSV2GREMLIN_PASSWORD")
    if password:
        descriptor = replace(descriptor, password=password)

    logger.debug("Loaded %r from %s", descriptor, path)
    return descriptor
