"""
csv2gremlin - Record Model

Immutable vertex and edge records built from generic key/value rows.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .exceptions import InvalidRecord


def _required(row: Mapping[str, Any], column: str, kind: str) -> str:
    value = row.get(column)
    if value is None or str(value).strip() == "":
        raise InvalidRecord(f"{kind} row is missing required column {column!r}", column)
    return str(value).strip()


@dataclass(frozen=True)
class VertexRecord:
    """
    A vertex to create: a label and its string properties.

    Example:
        >>> VertexRecord("person", {"name": "Alice"})
        VertexRecord(label='person', properties={'name': 'Alice'})
    """

    label: str
    properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.label or not self.label.strip():
            raise InvalidRecord("Vertex label must not be empty", "label")
        # Freeze the mapping so the record cannot change after validation
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def __repr__(self) -> str:
        return f"VertexRecord(label={self.label!r}, properties={dict(self.properties)!r})"

    def __hash__(self) -> int:
        return hash((self.label, tuple(sorted(self.properties.items()))))

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], label_column: str = "label"
    ) -> "VertexRecord":
        """
        Build a vertex from a CSV row.

        Every column except ``label_column`` becomes a property. Empty
        cells are left out of the property map.

        Raises:
            InvalidRecord: If the label cell is missing or empty
        """
        label = _required(row, label_column, "Vertex")
        properties = {}
        for key, value in row.items():
            if key is None or key == label_column:
                continue
            if value is None or value == "":
                continue
            properties[str(key)] = str(value)
        return cls(label, properties)


@dataclass(frozen=True)
class EdgeRecord:
    """A directed, labeled edge between two vertex keys."""

    from_key: str
    to_key: str
    relationship: str

    def __post_init__(self):
        for name in ("from_key", "to_key", "relationship"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise InvalidRecord(f"Edge field {name!r} must not be empty", name)

    @property
    def is_self_loop(self) -> bool:
        return self.from_key == self.to_key

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        from_column: str = "from",
        to_column: str = "to",
        relationship_column: str = "relationship",
    ) -> "EdgeRecord":
        """
        Build an edge from a CSV row.

        Raises:
            InvalidRecord: If any of the three columns is missing or empty
        """
        return cls(
            from_key=_required(row, from_column, "Edge"),
            to_key=_required(row, to_column, "Edge"),
            relationship=_required(row, relationship_column, "Edge"),
        )
