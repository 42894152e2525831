"""Config module to share a configuration across all modules in xlsxrecords."""

import logging
import sys
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, ValidationError, field_validator

from xlsxrecords.xlsx_common import SEQUENCE_HEADER, FormatMap, XLSXRecordsError
from xlsxrecords.xlsx_table import XLSXTableConfig

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)


class RecordsConfig(BaseModel):
    sheet_name: str | None = None
    sequence_header: Annotated[str, Field(min_length=1)] = SEQUENCE_HEADER
    # field name -> {raw value: display text}
    format_map: dict[str, dict[str, str]] = {}
    default_config: bool = False

    @field_validator("format_map", mode="before")
    @classmethod
    def stringify_keys(cls, value):
        # raw keys like True or 1 are allowed when configured from Python
        if isinstance(value, dict):
            return {
                field_name: {
                    str(raw).lower() if isinstance(raw, bool) else str(raw): str(text)
                    for raw, text in table.items()
                }
                if isinstance(table, dict)
                else table
                for field_name, table in value.items()
            }
        return value

    @field_validator("sheet_name", mode="before")
    @classmethod
    def handle_empty_sheet_name(cls, value):
        # None cannot be expressed in toml so we catch an empty string before validation.
        if value == "":
            return None
        return value

    def table_config(self) -> XLSXTableConfig:
        return XLSXTableConfig(
            sheet_name=self.sheet_name, sequence_header=self.sequence_header
        )

    def get_format_map(self) -> FormatMap:
        return FormatMap(self.format_map)


# This is updated/set by load_config.
CONFIG = RecordsConfig(default_config=True)


def load_config(
    config_file: Path | None = None, config: RecordsConfig | None = None
) -> RecordsConfig:
    global CONFIG  # noqa: PLW0603

    if config is not None:
        new_config = config.model_copy(deep=True)
        logger.debug("Refreshing global state of config.")
    elif config_file is None:
        new_config = RecordsConfig(default_config=True)
        logger.debug("Initializing default config.")
    elif not config_file.exists():
        logger.warning('Configuration file "%s" not found.', config_file)
        new_config = RecordsConfig(default_config=True)
    else:
        with config_file.open(mode="rb") as fp:
            try:
                conf = tomllib.load(fp)
            except tomllib.TOMLDecodeError as e:
                msg = f'Invalid toml in config file "{config_file}": {e}'
                raise XLSXRecordsError(msg) from e
        try:
            new_config = RecordsConfig(**conf)
        except ValidationError as e:
            msg = f'Invalid config file "{config_file}": {e}'
            raise XLSXRecordsError(msg) from e
        logger.debug("Config loaded from: %s", config_file)

    CONFIG = new_config
    return new_config
