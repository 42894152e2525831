# Common pytest fixtures for all test modules
import tempfile
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Annotated

import pytest
from pydantic import BaseModel

from xlsxrecords import config
from xlsxrecords.xlsx_common import XLSXField


class Region(Enum):
    NORTH = "north"
    SOUTH = "south"


# Test Models
class User(BaseModel):
    """Minimal record with coded boolean."""

    id: Annotated[int, XLSXField()]
    name: Annotated[str, XLSXField()]
    active: Annotated[bool, XLSXField()]


class Account(BaseModel):
    """Record using every supported field type."""

    account_id: Annotated[int, XLSXField(display_name="Account ID", width=12)]
    owner: Annotated[str, XLSXField(display_name="Owner", width=30)]
    balance: Annotated[Decimal, XLSXField(display_name="Balance")]
    rate: Annotated[float, XLSXField(display_name="Rate")]
    verified: Annotated[bool, XLSXField(display_name="Verified")]
    opened_at: Annotated[datetime | None, XLSXField(display_name="Opened")] = None
    level: Annotated[int | None, XLSXField(display_name="Level")] = None
    password: Annotated[str, XLSXField(skip=True)] = "secret"
    note: str = ""


class Employee(BaseModel):
    """Record with coded integer and an unsupported field type."""

    name: Annotated[str, XLSXField(display_name="Name")]
    gender: Annotated[int, XLSXField(display_name="Gender")]
    region: Annotated[Region | None, XLSXField(display_name="Region")] = None


class Event(BaseModel):
    title: Annotated[str, XLSXField(display_name="Title")]
    happened_at: Annotated[datetime | None, XLSXField(display_name="Happened")] = None


@pytest.fixture
def sample_users():
    return [
        User(id=1, name="A", active=True),
        User(id=2, name="B", active=False),
    ]


@pytest.fixture
def user_format_map():
    return {"active": {"true": "启用", "false": "禁用"}}


@pytest.fixture
def sample_accounts():
    return [
        Account(
            account_id=1001,
            owner="Alice",
            balance=Decimal("1234.50"),
            rate=0.035,
            verified=True,
            opened_at=datetime(2023, 4, 1, 9, 30, 15),
            level=3,
        ),
        Account(
            account_id=1002,
            owner="Bob",
            balance=Decimal("-20"),
            rate=1.5,
            verified=False,
        ),
    ]


@pytest.fixture
def sample_employees():
    return [
        Employee(name="Li", gender=1, region=Region.NORTH),
        Employee(name="Wang", gender=0),
    ]


@pytest.fixture
def temp_file():
    """Temporary file for testing."""
    with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
        yield Path(f.name)
    Path(f.name).unlink(missing_ok=True)


@pytest.fixture
def reset_config():
    yield
    config.load_config()
