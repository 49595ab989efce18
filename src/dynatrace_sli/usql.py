"""
Decoding of USQL table rows.

The shape of a row depends on how the tile visualizes it, so every
visualization type gets its own decode rule. Rows that do not fit their
rule fail explicitly instead of being coerced.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from dynatrace_sli.core.errors import RowDecodeError


class USQLVisualization(StrEnum):
    SINGLE_VALUE = "SINGLE_VALUE"
    PIE_CHART = "PIE_CHART"
    COLUMN_CHART = "COLUMN_CHART"
    TABLE = "TABLE"


@dataclass(frozen=True)
class UsqlRowValue:
    """One decoded row: dimension name (empty for single values) and its value."""

    dimension: str
    value: float


def _number(row: list[Any], index: int, visualization: str) -> float:
    cell = row[index]
    if isinstance(cell, bool) or not isinstance(cell, (int, float)):
        raise RowDecodeError(
            f"USQL {visualization} row has a non-numeric value in column {index}",
            details={"row": row},
        )
    return float(cell)


def _dimension(row: list[Any], visualization: str) -> str:
    cell = row[0]
    if not isinstance(cell, str):
        raise RowDecodeError(
            f"USQL {visualization} row has a non-string dimension in column 0",
            details={"row": row},
        )
    return cell


def decode_usql_row(visualization: str, row: list[Any]) -> UsqlRowValue | None:
    """
    Decode one USQL row for the given visualization type.

    Returns:
        The decoded row, or None if the visualization type is not supported

    Raises:
        RowDecodeError: If the row does not have the shape the type declares
    """
    try:
        kind = USQLVisualization(visualization)
    except ValueError:
        return None

    if kind is USQLVisualization.SINGLE_VALUE:
        if len(row) < 1:
            raise RowDecodeError(f"USQL {visualization} row is empty", details={"row": row})
        return UsqlRowValue(dimension="", value=_number(row, 0, visualization))

    if kind in (USQLVisualization.PIE_CHART, USQLVisualization.COLUMN_CHART):
        if len(row) < 2:
            raise RowDecodeError(
                f"USQL {visualization} row needs a dimension and a value column",
                details={"row": row},
            )
        return UsqlRowValue(dimension=_dimension(row, visualization), value=_number(row, 1, visualization))

    if len(row) < 2:
        raise RowDecodeError(
            f"USQL {visualization} row needs a dimension and a value column",
            details={"row": row},
        )
    return UsqlRowValue(dimension=_dimension(row, visualization), value=_number(row, len(row) - 1, visualization))
