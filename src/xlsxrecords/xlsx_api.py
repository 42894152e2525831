"""
Public API for XLSX record processing.

This module provides the main public API, including:
- Factory for creating processors
- Export/import functions for files, streams and bytes
- Grid export
- Helper for serving a workbook as an HTTP download
"""

from collections.abc import Mapping, Sequence
from io import BytesIO
from pathlib import Path
from typing import IO, Any
from urllib.parse import quote

from pydantic import BaseModel

from .xlsx_common import FormatMap
from .xlsx_grid import XLSXGridWriter
from .xlsx_table import XLSXTableConfig, XLSXTableProcessor

XLSX_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
)

FormatMapLike = FormatMap | Mapping[str, Mapping[str, str]] | None


class XLSXProcessorFactory:
    """Factory to create processors."""

    @staticmethod
    def create_table_processor(
        config: XLSXTableConfig | None = None,
    ) -> XLSXTableProcessor:
        """Create processor for tabular format (multiple records)."""
        return XLSXTableProcessor(config or XLSXTableConfig())

    @staticmethod
    def create_grid_writer() -> XLSXGridWriter:
        return XLSXGridWriter()


def export_to_xlsx(
    records: Sequence[BaseModel],
    sink: Path | str | IO[bytes],
    format_map: FormatMapLike = None,
    config: XLSXTableConfig | None = None,
    model_class: type[BaseModel] | None = None,
) -> None:
    """Export records to an XLSX file or binary stream.

    Args:
        records: Records of one model class
        sink: File path or writable binary stream
        format_map: Optional per-field substitutions of coded values,
            e.g. ``{"active": {"true": "Enabled", "false": "Disabled"}}``
        config: Optional table configuration
        model_class: Model class, required to write a header for empty input
    """
    if isinstance(sink, str):
        sink = Path(sink)
    processor = XLSXProcessorFactory.create_table_processor(config)
    processor.export(records, sink, FormatMap.from_mapping(format_map), model_class)


def export_to_bytes(
    records: Sequence[BaseModel],
    format_map: FormatMapLike = None,
    config: XLSXTableConfig | None = None,
    model_class: type[BaseModel] | None = None,
) -> bytes:
    """Export records and return the XLSX document as bytes."""
    buffer = BytesIO()
    export_to_xlsx(records, buffer, format_map, config, model_class)
    return buffer.getvalue()


def import_from_xlsx(
    source: Path | str | IO[bytes],
    model_class: type[BaseModel],
    format_map: FormatMapLike = None,
    config: XLSXTableConfig | None = None,
) -> list[Any]:
    """Import records from an XLSX file or binary stream.

    Args:
        source: File path or readable binary stream
        model_class: Pydantic model class to import into
        format_map: Optional per-field substitutions, same as for export
        config: Optional table configuration

    Returns:
        List of model instances
    """
    if isinstance(source, str):
        source = Path(source)
    processor = XLSXProcessorFactory.create_table_processor(config)
    return processor.import_data(
        source, model_class, FormatMap.from_mapping(format_map)
    )


def import_from_bytes(
    data: bytes,
    model_class: type[BaseModel],
    format_map: FormatMapLike = None,
    config: XLSXTableConfig | None = None,
) -> list[Any]:
    """Import records from an XLSX document given as bytes."""
    return import_from_xlsx(BytesIO(data), model_class, format_map, config)


def write_grid_to_xlsx(
    sink: Path | str | IO[bytes],
    sheet_names: Sequence[str],
    titles: Sequence[Sequence[Any] | None],
    data: Sequence[Sequence[Sequence[Any]]],
) -> None:
    """Write pre-formatted rows to one sheet per name.

    Example:
        ```python
        write_grid_to_xlsx(
            "report.xlsx",
            ["Users"],
            [["Name", "Age"]],
            [[["Alice", 30], ["Bob", 25]]],
        )
        ```
    """
    if isinstance(sink, str):
        sink = Path(sink)
    XLSXProcessorFactory.create_grid_writer().write(sink, sheet_names, titles, data)


def attachment_headers(filename: str) -> dict[str, str]:
    """HTTP headers to serve an XLSX document as a file download."""
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return {
        "Content-Type": XLSX_CONTENT_TYPE,
        "Content-Disposition": (
            f'attachment; filename="{ascii_name}"; '
            f"filename*=UTF-8''{quote(filename)}"
        ),
    }
