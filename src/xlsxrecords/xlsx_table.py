"""
Table format implementation: one header row and one row per record.

This module contains:
- Table configuration
- Record writer (records -> worksheet)
- Record reader (worksheet -> records)
- Table processor for workbook level import/export
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from pydantic import BaseModel

from .xlsx_cells import BLANK, XLSXCellCodec
from .xlsx_common import (
    SEQUENCE_HEADER,
    FieldDescriptor,
    FormatMap,
    XLSXFieldCatalog,
    XLSXSerializationError,
)

logger = logging.getLogger(__name__)

HEADER_ROW = 1
SEQUENCE_COLUMN = 1


@dataclass
class XLSXTableConfig:
    """Configuration for table format (multiple records)."""

    sheet_name: str | None = None
    sequence_header: str = SEQUENCE_HEADER
    header_alignment: str = "center"

    def get_sheet_name(self, model_class: type[BaseModel] | None) -> str:
        if self.sheet_name:
            return self.sheet_name
        if model_class is not None:
            return model_class.__name__
        return "Sheet1"


class XLSXRecordWriter:
    """Writes a sequence of records as header row plus one row per record."""

    def __init__(self, config: XLSXTableConfig | None = None):
        self.config = config or XLSXTableConfig()
        self.field_catalog = XLSXFieldCatalog()

    def write(
        self,
        worksheet: Worksheet,
        records: Sequence[BaseModel],
        format_map: FormatMap | None = None,
        model_class: type[BaseModel] | None = None,
    ) -> Worksheet:
        """Write records to the worksheet.

        The model class is taken from the first record if not given. Without
        records and model class the worksheet stays empty.
        """
        if model_class is None and records:
            model_class = records[0].__class__
        if model_class is None:
            logger.debug("No records and no model class, leaving sheet empty.")
            return worksheet

        fields = self.field_catalog.exported_fields(model_class)
        codec = XLSXCellCodec(FormatMap.from_mapping(format_map))

        self._add_headers(worksheet, fields)
        self._write_data_rows(worksheet, records, fields, model_class, codec)
        logger.debug(
            "Wrote %i records with %i columns to sheet '%s'.",
            len(records),
            len(fields),
            worksheet.title,
        )
        return worksheet

    def _add_headers(self, worksheet: Worksheet, fields: list[FieldDescriptor]) -> None:
        alignment = Alignment(horizontal=self.config.header_alignment)

        cell = worksheet.cell(row=HEADER_ROW, column=SEQUENCE_COLUMN)
        cell.value = self.config.sequence_header
        cell.alignment = alignment

        for col_idx, descriptor in enumerate(fields, start=SEQUENCE_COLUMN + 1):
            cell = worksheet.cell(row=HEADER_ROW, column=col_idx)
            cell.value = descriptor.display_name
            cell.alignment = alignment
            worksheet.column_dimensions[
                get_column_letter(col_idx)
            ].width = descriptor.width

    def _write_data_rows(
        self,
        worksheet: Worksheet,
        records: Sequence[BaseModel],
        fields: list[FieldDescriptor],
        model_class: type[BaseModel],
        codec: XLSXCellCodec,
    ) -> None:
        alignment = Alignment(horizontal=self.config.header_alignment)

        for ordinal, record in enumerate(records, start=1):
            if not isinstance(record, model_class):
                msg = (
                    f"Record {ordinal} is a {type(record).__name__}, "
                    f"expected {model_class.__name__}"
                )
                raise TypeError(msg)

            row_idx = HEADER_ROW + ordinal
            sequence_cell = worksheet.cell(row=row_idx, column=SEQUENCE_COLUMN)
            sequence_cell.value = ordinal
            sequence_cell.alignment = alignment

            for col_idx, descriptor in enumerate(fields, start=SEQUENCE_COLUMN + 1):
                value = getattr(record, descriptor.name, None)
                # The cell is created even for None so that columns stay aligned.
                cell = worksheet.cell(row=row_idx, column=col_idx)
                try:
                    codec.write_cell(cell, value, descriptor)
                except (ValueError, TypeError) as e:
                    raise XLSXSerializationError(descriptor.name, value, e) from e


class XLSXRecordReader:
    """Reads records from a worksheet written in table format."""

    def __init__(self, config: XLSXTableConfig | None = None):
        self.config = config or XLSXTableConfig()
        self.field_catalog = XLSXFieldCatalog()

    def read(
        self,
        worksheet: Worksheet,
        model_class: type[BaseModel],
        format_map: FormatMap | None = None,
    ) -> list[BaseModel]:
        """Read all data rows below the header row.

        Reading stops at the first empty row. Columns whose header matches
        no field are ignored.
        """
        columns = self._read_headers(worksheet, model_class)
        codec = XLSXCellCodec(FormatMap.from_mapping(format_map))

        records = []
        for row in worksheet.iter_rows(min_row=HEADER_ROW + 1):
            if all(cell.value is None for cell in row):
                break
            row_idx = row[0].row
            cells = {cell.column: cell for cell in row}

            values = self.field_catalog.zero_values(model_class)
            fields_set = set()
            for col_idx, descriptor in columns.items():
                value = codec.decode_cell(
                    cells.get(col_idx), descriptor, row=row_idx, column=col_idx
                )
                if value is BLANK:
                    continue
                values[descriptor.name] = value
                fields_set.add(descriptor.name)

            records.append(
                model_class.model_construct(_fields_set=fields_set, **values)
            )

        logger.debug(
            "Read %i records of %s from sheet '%s'.",
            len(records),
            model_class.__name__,
            worksheet.title,
        )
        return records

    def _read_headers(
        self, worksheet: Worksheet, model_class: type[BaseModel]
    ) -> dict[int, FieldDescriptor]:
        """Map column indices to fields using the header texts."""
        index = self.field_catalog.display_name_index(model_class)
        columns = {}
        header_row = next(
            worksheet.iter_rows(min_row=HEADER_ROW, max_row=HEADER_ROW), ()
        )
        for cell in header_row:
            if cell.value is None:
                continue
            header_text = str(cell.value)
            descriptor = index.get(header_text)
            if descriptor is None:
                logger.debug(
                    "Column %i header '%s' matches no field, ignored.",
                    cell.column,
                    header_text,
                )
                continue
            columns[cell.column] = descriptor
        return columns


class XLSXTableProcessor:
    """Workbook level import/export of records in table format."""

    def __init__(self, config: XLSXTableConfig | None = None):
        self.config = config or XLSXTableConfig()
        self.writer = XLSXRecordWriter(self.config)
        self.reader = XLSXRecordReader(self.config)

    def build_workbook(
        self,
        records: Sequence[BaseModel],
        format_map: FormatMap | None = None,
        model_class: type[BaseModel] | None = None,
    ) -> Workbook:
        """Create a workbook holding a single sheet with the records."""
        if model_class is None and records:
            model_class = records[0].__class__

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.config.get_sheet_name(model_class)
        self.writer.write(worksheet, records, format_map, model_class)
        return workbook

    def export(
        self,
        records: Sequence[BaseModel],
        sink: Path | str | IO[bytes],
        format_map: FormatMap | None = None,
        model_class: type[BaseModel] | None = None,
    ) -> None:
        """Export records to an XLSX file or binary stream."""
        workbook = self.build_workbook(records, format_map, model_class)
        workbook.save(sink)
        logger.debug("Saved workbook to %s.", sink)

    def import_data(
        self,
        source: Path | str | IO[bytes],
        model_class: type[BaseModel],
        format_map: FormatMap | None = None,
    ) -> list[BaseModel]:
        """Import records from an XLSX file or binary stream."""
        # data_only=False keeps formulas as their source text
        workbook = load_workbook(source, data_only=False)
        worksheet = self._select_worksheet(workbook, model_class)
        return self.reader.read(worksheet, model_class, format_map)

    def _select_worksheet(
        self, workbook: Workbook, model_class: type[BaseModel]
    ) -> Worksheet:
        if self.config.sheet_name:
            if self.config.sheet_name not in workbook.sheetnames:
                msg = f"Sheet '{self.config.sheet_name}' not found in workbook"
                raise ValueError(msg)
            return workbook[self.config.sheet_name]
        if model_class.__name__ in workbook.sheetnames:
            return workbook[model_class.__name__]
        return workbook.worksheets[0]
