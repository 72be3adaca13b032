"""
csv2gremlin - CSV Reader

Reads delimited files into vertex or edge records. A row that cannot be
turned into a record keeps its slot as an InvalidRecord, so indexes in the
import report always match data rows in the file (0 = first data row).
"""

import csv
import logging
import os
from typing import Iterator, List, Optional, Sequence

from .exceptions import InputError, InvalidRecord
from .importers import EdgeInput, VertexInput
from .records import EdgeRecord, VertexRecord

logger = logging.getLogger(__name__)


def parse_headers(headers: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated header override (``"label,name,age"``)."""
    if headers is None:
        return None
    names = [h.strip() for h in headers.split(",")]
    if not all(names):
        raise InputError(f"Empty column name in header override: {headers!r}")
    return names


def iter_rows(
    path: str, headers: Optional[Sequence[str]] = None, delimiter: str = ","
) -> Iterator[dict]:
    """
    Yield every data row of a CSV file as a dict.

    Args:
        path: CSV file path
        headers: Column names to use instead of a header row. When
                 given, the first line of the file is data.
        delimiter: Field delimiter ("\\t" accepted for TSV)

    Raises:
        InputError: If the file does not exist or is not valid CSV
    """
    if not os.path.exists(path):
        raise InputError(f"File not found: {path}")
    if delimiter == "\\t":
        delimiter = "\t"

    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f, fieldnames=headers, delimiter=delimiter)
        try:
            for row in reader:
                yield row
        except csv.Error as e:
            raise InputError(f"{path}, line {reader.line_num}: {e}") from e


def read_vertices(
    path: str,
    headers: Optional[Sequence[str]] = None,
    delimiter: str = ",",
    label_column: str = "label",
) -> List[VertexInput]:
    """
    Read vertex records: a label column, every other column a property.

    Example:
        >>> records = read_vertices("people.csv")
        >>> records[0]
        VertexRecord(label='person', properties={'name': 'Alice'})
    """
    records: List[VertexInput] = []
    for index, row in enumerate(iter_rows(path, headers, delimiter)):
        try:
            records.append(VertexRecord.from_row(row, label_column))
        except InvalidRecord as e:
            logger.warning("%s: row %d is invalid: %s", path, index, e)
            records.append(e)
    logger.debug("Read %d vertex row(s) from %s", len(records), path)
    return records


def read_edges(
    path: str,
    headers: Optional[Sequence[str]] = None,
    delimiter: str = ",",
) -> List[EdgeInput]:
    """Read edge records from ``from``, ``to`` and ``relationship`` columns."""
    records: List[EdgeInput] = []
    for index, row in enumerate(iter_rows(path, headers, delimiter)):
        try:
            records.append(EdgeRecord.from_row(row))
        except InvalidRecord as e:
            logger.warning("%s: row %d is invalid: %s", path, index, e)
            records.append(e)
    logger.debug("Read %d edge row(s) from %s", len(records), path)
    return records
