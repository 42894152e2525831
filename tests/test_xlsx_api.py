"""
Tests for the public API in xlsx_api.
"""

from io import BytesIO

from openpyxl import load_workbook

from xlsxrecords.xlsx_api import (
    XLSX_CONTENT_TYPE,
    XLSXProcessorFactory,
    attachment_headers,
    export_to_bytes,
    export_to_xlsx,
    import_from_bytes,
    import_from_xlsx,
)
from xlsxrecords.xlsx_common import FormatMap
from xlsxrecords.xlsx_grid import XLSXGridWriter
from xlsxrecords.xlsx_table import XLSXTableConfig, XLSXTableProcessor

from .conftest import Account, User


class TestStreams:
    """Export and import through binary streams and bytes."""

    def test_bytes_round_trip(self, sample_users, user_format_map):
        data = export_to_bytes(sample_users, format_map=user_format_map)

        assert data[:2] == b"PK"  # xlsx is a zip container
        assert import_from_bytes(data, User, format_map=user_format_map) == (
            sample_users
        )

    def test_stream_sink(self, sample_accounts):
        buffer = BytesIO()
        export_to_xlsx(sample_accounts, buffer)
        buffer.seek(0)

        assert load_workbook(buffer).active.title == "Account"
        buffer.seek(0)
        assert import_from_xlsx(buffer, Account) == sample_accounts

    def test_string_path(self, sample_users, temp_file):
        export_to_xlsx(sample_users, str(temp_file))
        assert import_from_xlsx(str(temp_file), User) == sample_users

    def test_format_map_instance(self, sample_users, user_format_map):
        format_map = FormatMap(user_format_map)
        data = export_to_bytes(sample_users, format_map=format_map)
        worksheet = load_workbook(BytesIO(data)).active

        assert worksheet["D2"].value == "启用"

    def test_config_and_model_class(self):
        data = export_to_bytes(
            [], config=XLSXTableConfig(sheet_name="Empty"), model_class=User
        )
        workbook = load_workbook(BytesIO(data))

        assert workbook.sheetnames == ["Empty"]
        assert workbook["Empty"]["B1"].value == "id"


class TestFactory:
    def test_create_processors(self):
        config = XLSXTableConfig(sheet_name="X")
        processor = XLSXProcessorFactory.create_table_processor(config)

        assert isinstance(processor, XLSXTableProcessor)
        assert processor.config is config
        assert isinstance(XLSXProcessorFactory.create_grid_writer(), XLSXGridWriter)


class TestAttachmentHeaders:
    def test_ascii_filename(self):
        headers = attachment_headers("report.xlsx")

        assert headers["Content-Type"] == XLSX_CONTENT_TYPE
        assert headers["Content-Disposition"] == (
            "attachment; filename=\"report.xlsx\"; filename*=UTF-8''report.xlsx"
        )

    def test_non_ascii_filename(self):
        headers = attachment_headers("用户.xlsx")

        assert 'filename="__.xlsx"' in headers["Content-Disposition"]
        assert (
            "filename*=UTF-8''%E7%94%A8%E6%88%B7.xlsx"
            in headers["Content-Disposition"]
        )
