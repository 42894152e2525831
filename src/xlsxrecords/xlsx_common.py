"""
Common XLSX functionality shared by record writing, record reading and the cell codec.

This module contains shared infrastructure including:
- Field metadata marker used in model annotations
- Field catalog resolving the exported columns of a model
- Value-substitution maps (FormatMap) for coded values
- Exception classes
"""

import functools
import logging
import types
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_COLUMN_WIDTH = 20
SEQUENCE_HEADER = "序号"

# Date pattern used for date cells and for parsing dates stored as text.
DATE_PATTERN = "%Y-%m-%d %H:%M:%S"
DATE_NUMBER_FORMAT = "yyyy-mm-dd hh:mm:ss"


# Exception classes
class XLSXRecordsError(Exception):
    pass


class XLSXSerializationError(XLSXRecordsError, ValueError):
    """Raised when a field value cannot be written to a cell."""

    def __init__(self, field_name: str, value: Any, original_error: Exception):
        self.field_name = field_name
        self.value = value
        self.original_error = original_error
        super().__init__(
            f"Error serializing field '{field_name}' with value '{value}': {original_error}"
        )


class RowDecodeError(XLSXRecordsError, ValueError):
    """Raised when a cell cannot be coerced to its field type."""

    def __init__(
        self,
        row: int,
        column: int,
        field_name: str,
        value: Any,
        attempts: int,
        original_error: Exception,
    ):
        self.row = row
        self.column = column
        self.field_name = field_name
        self.value = value
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(
            f"Row {row}, column {column}: cannot decode value '{value}' for field "
            f"'{field_name}' after {attempts} attempts: {original_error}"
        )


# Metadata and field analysis
@dataclass(frozen=True)
class XLSXField:
    """Marks a model field as exported to XLSX.

    Use as ``Annotated[int, XLSXField(display_name="Age", width=8)]``.
    Fields without this marker are not exported.
    """

    display_name: str | None = None
    width: int = DEFAULT_COLUMN_WIDTH
    skip: bool = False


class SemanticType(Enum):
    """Conversion family of a field, selects the cell codec rule."""

    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    OTHER = "other"


_SEMANTIC_TYPES = {
    str: SemanticType.TEXT,
    int: SemanticType.INTEGER,
    Decimal: SemanticType.DECIMAL,
    float: SemanticType.FLOAT,
    bool: SemanticType.BOOLEAN,
    datetime: SemanticType.DATETIME,
}

_ZERO_VALUES = {
    SemanticType.TEXT: "",
    SemanticType.INTEGER: 0,
    SemanticType.DECIMAL: Decimal(0),
    SemanticType.FLOAT: 0.0,
    SemanticType.BOOLEAN: False,
}


@dataclass(frozen=True)
class FieldDescriptor:
    """Resolved export metadata for one model field."""

    name: str
    display_name: str
    width: int
    skip: bool
    semantic_type: SemanticType
    is_optional: bool = False

    @property
    def zero_value(self) -> Any:
        """Value a field holds before (or without) being read from a cell."""
        if self.is_optional:
            return None
        return _ZERO_VALUES.get(self.semantic_type)


class XLSXFieldCatalog:
    """Resolves the exported fields of a Pydantic model."""

    @staticmethod
    def describe_model(model: type[BaseModel]) -> list[FieldDescriptor]:
        """Describe all fields carrying XLSXField metadata, in declaration order.

        Skipped fields are included (with ``skip=True``); fields without
        metadata are left out.
        """
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            msg = f"Expected Pydantic BaseModel, got {model!r}"
            raise TypeError(msg)
        return list(_describe_model(model))

    @staticmethod
    def exported_fields(model: type[BaseModel]) -> list[FieldDescriptor]:
        """Fields that appear as columns, in column order."""
        return [
            descriptor
            for descriptor in XLSXFieldCatalog.describe_model(model)
            if not descriptor.skip
        ]

    @staticmethod
    def display_name_index(model: type[BaseModel]) -> dict[str, FieldDescriptor]:
        """Map header text to the field it belongs to."""
        return {
            descriptor.display_name: descriptor
            for descriptor in XLSXFieldCatalog.exported_fields(model)
        }

    @staticmethod
    def zero_values(model: type[BaseModel]) -> dict[str, Any]:
        """Initial values for every field of a freshly read record.

        Declared defaults win; exported fields without default get the zero
        value of their type, all other fields ``None``.
        """
        descriptors = {d.name: d for d in XLSXFieldCatalog.describe_model(model)}
        values = {}
        for field_name, field_info in model.model_fields.items():
            if not field_info.is_required():
                values[field_name] = field_info.get_default(call_default_factory=True)
            elif field_name in descriptors:
                values[field_name] = descriptors[field_name].zero_value
            else:
                values[field_name] = None
        return values

    @staticmethod
    def extract_xlsx_field(field_info: Any) -> XLSXField | None:
        """Extract XLSXField metadata from field info."""
        # Pydantic v2 moves Annotated metadata into field_info.metadata
        for metadata_item in getattr(field_info, "metadata", None) or []:
            if isinstance(metadata_item, XLSXField):
                return metadata_item

        annotation = getattr(field_info, "annotation", None)
        candidates = [annotation]
        # Optional[Annotated[T, XLSXField()]] keeps the marker inside the Union
        if get_origin(annotation) in (Union, types.UnionType):
            candidates.extend(get_args(annotation))
        for candidate in candidates:
            if get_origin(candidate) is Annotated:
                for metadata_item in get_args(candidate)[1:]:
                    if isinstance(metadata_item, XLSXField):
                        return metadata_item
        return None

    @staticmethod
    def unwrap_optional(field_type: Any) -> tuple[Any, bool]:
        """Return the inner type of ``T | None`` and whether it was optional."""
        if get_origin(field_type) is Annotated:
            field_type = get_args(field_type)[0]
        origin = get_origin(field_type)
        # Handle typing.Union as well as the X | None syntax
        if origin is Union or origin is types.UnionType:
            args = get_args(field_type)
            if type(None) in args:
                non_none_args = [arg for arg in args if arg is not type(None)]
                if len(non_none_args) == 1:
                    inner = non_none_args[0]
                    if get_origin(inner) is Annotated:
                        inner = get_args(inner)[0]
                    return inner, True
                return field_type, True
        return field_type, False

    @staticmethod
    def semantic_type(field_type: Any) -> SemanticType:
        if isinstance(field_type, type):
            return _SEMANTIC_TYPES.get(field_type, SemanticType.OTHER)
        return SemanticType.OTHER


@functools.lru_cache(maxsize=None)
def _describe_model(model: type[BaseModel]) -> tuple[FieldDescriptor, ...]:
    descriptors = []
    for field_name, field_info in model.model_fields.items():
        xlsx_field = XLSXFieldCatalog.extract_xlsx_field(field_info)
        if xlsx_field is None:
            continue
        field_type, is_optional = XLSXFieldCatalog.unwrap_optional(
            field_info.annotation
        )
        semantic_type = XLSXFieldCatalog.semantic_type(field_type)
        if semantic_type is SemanticType.OTHER:
            logger.debug(
                "Field '%s.%s' has unsupported type %s, written as text and not read.",
                model.__name__,
                field_name,
                field_type,
            )
        descriptors.append(
            FieldDescriptor(
                name=field_name,
                display_name=xlsx_field.display_name or field_name,
                width=xlsx_field.width,
                skip=xlsx_field.skip,
                semantic_type=semantic_type,
                is_optional=is_optional,
            )
        )
    return tuple(descriptors)


# Value substitution
class FormatMap:
    """Per-field tables translating coded values to display text and back.

    Keys of the outer mapping are field names, inner mappings go from the raw
    value's string form (e.g. ``"true"`` or ``"1"``) to the display string.
    Only boolean and integer fields consult the map.
    """

    def __init__(self, mapping: Mapping[str, Mapping[str, str]] | None = None):
        self._write = {
            field_name: {str(raw): str(text) for raw, text in table.items()}
            for field_name, table in (mapping or {}).items()
        }
        self._read = {
            field_name: {text: raw for raw, text in table.items()}
            for field_name, table in self._write.items()
        }

    @classmethod
    def from_mapping(
        cls, mapping: "FormatMap | Mapping[str, Mapping[str, str]] | None"
    ) -> "FormatMap":
        if isinstance(mapping, FormatMap):
            return mapping
        return cls(mapping)

    def has_field(self, field_name: str) -> bool:
        return field_name in self._write

    def lookup_for_write(self, field_name: str, raw_value: str) -> str | None:
        """Display string for a raw value, None when there is no substitution."""
        return self._write.get(field_name, {}).get(raw_value)

    def lookup_for_read(self, field_name: str, display_value: str) -> str | None:
        """Raw string for a display string, None when there is no substitution."""
        return self._read.get(field_name, {}).get(display_value)

    def as_dict(self) -> dict[str, dict[str, str]]:
        return {field_name: dict(table) for field_name, table in self._write.items()}

    def __bool__(self) -> bool:
        return bool(self._write)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormatMap):
            return NotImplemented
        return self._write == other._write

    def __repr__(self) -> str:
        return f"FormatMap({self._write!r})"
