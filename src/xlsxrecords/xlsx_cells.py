"""
Cell codec: converts field values to cell values and cell contents back to field values.

Spreadsheet cells carry their own runtime type (a numeric cell may really be a
date, a code or a phone number). Reading therefore happens in two steps: the
raw value is extracted according to the cell's type tag, then parsed according
to the declared type of the target field. A failing parse re-runs both steps
up to ``MAX_DECODE_ATTEMPTS`` times before a ``RowDecodeError`` is raised.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from openpyxl.cell.cell import Cell
from openpyxl.utils.datetime import from_excel

from .xlsx_common import (
    DATE_NUMBER_FORMAT,
    DATE_PATTERN,
    FieldDescriptor,
    FormatMap,
    RowDecodeError,
    SemanticType,
)

logger = logging.getLogger(__name__)

MAX_DECODE_ATTEMPTS = 8

# Errors that count as a failed parse and trigger another decode attempt.
DECODE_ERRORS = (ValueError, TypeError, ArithmeticError)

TRUE_STRINGS = ("true", "1", "yes", "on")


class CellTag(Enum):
    """Runtime type of a cell's content."""

    BLANK = "blank"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    TEXT = "text"
    ERROR = "error"
    FORMULA = "formula"


@dataclass(frozen=True)
class CellValue:
    tag: CellTag
    raw: Any = None

    @property
    def is_blank(self) -> bool:
        return self.tag is CellTag.BLANK or self.raw is None


BLANK = CellValue(CellTag.BLANK)

# openpyxl data_type codes
_TAGS = {
    "b": CellTag.BOOLEAN,
    "n": CellTag.NUMERIC,
    "d": CellTag.NUMERIC,
    "s": CellTag.TEXT,
    "inlineStr": CellTag.TEXT,
    "str": CellTag.TEXT,
    "e": CellTag.ERROR,
    "f": CellTag.FORMULA,
}


def extract_cell_value(cell: Cell | None) -> CellValue:
    """Extract the raw value of a cell according to its type tag."""
    if cell is None or cell.value is None:
        return BLANK
    tag = _TAGS.get(cell.data_type)
    value = cell.value
    if tag is None:
        return BLANK
    if tag is CellTag.BOOLEAN:
        return CellValue(tag, bool(value))
    if tag is CellTag.NUMERIC:
        # loaded workbooks already hold datetime objects for date formatted numbers
        if cell.is_date and isinstance(value, int | float):
            value = from_excel(value)
        return CellValue(tag, value)
    if tag is CellTag.FORMULA:
        # array formulas are objects holding the formula text
        return CellValue(tag, str(getattr(value, "text", value)))
    return CellValue(tag, str(value))


def raw_text(raw: Any) -> str:
    """String form of a raw cell value as used for parsing and map lookups."""
    if isinstance(raw, bool):
        return str(raw).lower()
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    if isinstance(raw, datetime):
        return raw.strftime(DATE_PATTERN)
    return str(raw)


def parse_bool(text: str) -> bool:
    # any text outside TRUE_STRINGS reads as False
    return text.strip().lower() in TRUE_STRINGS


class XLSXCellCodec:
    """Type-directed conversion between field values and cell values."""

    def __init__(self, format_map: FormatMap | None = None):
        self.format_map = format_map or FormatMap()

    # Write direction
    def write_cell(self, cell: Cell, value: Any, descriptor: FieldDescriptor) -> None:
        """Store a field value in a cell, leaving it blank for None."""
        if value is None:
            return
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.replace(tzinfo=None)
            cell.value = value.replace(microsecond=0)
            cell.number_format = DATE_NUMBER_FORMAT
        elif isinstance(value, float):
            cell.value = value
        elif isinstance(value, bool):
            cell.value = self._substitute(descriptor, str(value).lower(), value)
        elif isinstance(value, int):
            cell.value = self._substitute(descriptor, str(value), value)
        elif isinstance(value, Enum):
            cell.value = str(value.value)
        else:
            cell.value = str(value)

    def _substitute(self, descriptor: FieldDescriptor, key: str, value: Any) -> Any:
        display = self.format_map.lookup_for_write(descriptor.name, key)
        return value if display is None else display

    # Read direction
    def parse_value(self, raw: Any, descriptor: FieldDescriptor) -> Any:
        """Convert an extracted raw value to the field's declared type.

        Returns the converted value, or ``BLANK`` for unsupported field types;
        raises one of ``DECODE_ERRORS`` when the value does not fit.
        """
        semantic_type = descriptor.semantic_type

        if semantic_type is SemanticType.DATETIME:
            if isinstance(raw, datetime):
                return raw
            if isinstance(raw, date):
                return datetime.combine(raw, time())
            return datetime.strptime(raw_text(raw), DATE_PATTERN)

        if semantic_type is SemanticType.TEXT:
            if isinstance(raw, str):
                return raw
            return raw_text(raw)

        if semantic_type is SemanticType.INTEGER:
            if type(raw) is int:
                return raw
            text = self._unsubstitute(descriptor, raw_text(raw))
            return int(text)

        if semantic_type is SemanticType.BOOLEAN:
            if isinstance(raw, bool):
                return raw
            text = self._unsubstitute(descriptor, raw_text(raw))
            return parse_bool(text)

        if semantic_type is SemanticType.DECIMAL:
            if isinstance(raw, Decimal):
                return raw
            return Decimal(raw_text(raw).strip())

        if semantic_type is SemanticType.FLOAT:
            if type(raw) is float:
                return raw
            if isinstance(raw, bool):
                msg = f"Boolean '{raw}' is not a number"
                raise TypeError(msg)
            return float(raw_text(raw))

        # unsupported types keep their zero value
        return BLANK

    def _unsubstitute(self, descriptor: FieldDescriptor, text: str) -> str:
        raw = self.format_map.lookup_for_read(descriptor.name, text)
        return text if raw is None else raw

    def decode_cell(
        self,
        cell: Cell | None,
        descriptor: FieldDescriptor,
        row: int,
        column: int,
    ) -> CellValue | Any:
        """Decode a cell for a field, retrying failed parses.

        Returns ``BLANK`` when the field should keep its zero value, the
        decoded value otherwise.
        """
        if descriptor.semantic_type is SemanticType.OTHER:
            return BLANK

        last_error = None
        for attempt in range(1, MAX_DECODE_ATTEMPTS + 1):
            cell_value = extract_cell_value(cell)
            if cell_value.is_blank:
                return BLANK
            try:
                return self.parse_value(cell_value.raw, descriptor)
            except DECODE_ERRORS as e:
                logger.debug(
                    "Attempt %i/%i to decode row %i, column %i (%s) failed: %s",
                    attempt,
                    MAX_DECODE_ATTEMPTS,
                    row,
                    column,
                    descriptor.name,
                    e,
                )
                last_error = e
        raise RowDecodeError(
            row,
            column,
            descriptor.name,
            cell_value.raw,
            MAX_DECODE_ATTEMPTS,
            last_error,
        ) from last_error
