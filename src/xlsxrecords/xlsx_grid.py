"""
Grid format: pre-formatted string matrices with an optional title row per sheet.

No field metadata and no value conversion is involved, every cell is written
as text.
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

GRID_COLUMN_WIDTH = 18


class XLSXGridWriter:
    """Writes one string matrix per sheet."""

    def __init__(self, column_width: int = GRID_COLUMN_WIDTH):
        self.column_width = column_width
        self.title_font = Font(bold=True)
        self.alignment = Alignment(horizontal="center", vertical="center")

    def build(
        self,
        sheet_names: Sequence[str],
        titles: Sequence[Sequence[Any] | None],
        data: Sequence[Sequence[Sequence[Any]]],
    ) -> Workbook:
        """Create a workbook with one sheet per name.

        ``titles[i]`` and ``data[i]`` belong to ``sheet_names[i]``. Sheets
        without matching data stay empty, data without a sheet name is
        ignored.
        """
        if not data:
            msg = "No data provided for export"
            raise ValueError(msg)
        if len(data) > len(sheet_names):
            logger.warning(
                "%i data sets but only %i sheet names, extra data is ignored.",
                len(data),
                len(sheet_names),
            )

        workbook = Workbook()
        workbook.remove(workbook.active)
        for sheet_idx, sheet_name in enumerate(sheet_names):
            worksheet = workbook.create_sheet(title=sheet_name)
            worksheet.sheet_format.defaultColWidth = self.column_width
            title = titles[sheet_idx] if sheet_idx < len(titles) else None
            rows = data[sheet_idx] if sheet_idx < len(data) else []
            self._write_sheet(worksheet, title, rows)
        return workbook

    def _write_sheet(
        self,
        worksheet: Worksheet,
        title: Sequence[Any] | None,
        rows: Sequence[Sequence[Any]],
    ) -> None:
        # Without a title the data starts in the first row.
        first_data_row = 1
        if title is not None:
            for col_idx, text in enumerate(title, start=1):
                cell = worksheet.cell(row=1, column=col_idx, value=_as_text(text))
                cell.font = self.title_font
                cell.alignment = self.alignment
            first_data_row = 2

        for row_idx, row_data in enumerate(rows, start=first_data_row):
            for col_idx, value in enumerate(row_data, start=1):
                cell = worksheet.cell(
                    row=row_idx, column=col_idx, value=_as_text(value)
                )
                cell.alignment = self.alignment

    def write(
        self,
        sink: Path | str | IO[bytes],
        sheet_names: Sequence[str],
        titles: Sequence[Sequence[Any] | None],
        data: Sequence[Sequence[Sequence[Any]]],
    ) -> None:
        workbook = self.build(sheet_names, titles, data)
        workbook.save(sink)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)
