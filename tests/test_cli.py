import json
import logging

import pytest
from openpyxl import load_workbook

from xlsxrecords.cli import load_model_class, main_cli, run_cli_app
from xlsxrecords.xlsx_common import XLSXRecordsError

from .conftest import User

USER_MODEL = "tests.conftest:User"
USERS = [
    {"id": 1, "name": "A", "active": True},
    {"id": 2, "name": "B", "active": False},
]
CONFIG = """\
sheet_name = "Users"

[format_map.active]
true = "on"
false = "off"
"""


@pytest.fixture
def users_json(tmp_path):
    fpath = tmp_path / "users.json"
    fpath.write_text(json.dumps(USERS), encoding="utf-8")
    return fpath


@pytest.fixture
def records_config(tmp_path):
    fpath = tmp_path / "records.toml"
    fpath.write_text(CONFIG, encoding="utf-8")
    return fpath


def test_run_cli_app_no_args_entrypoint(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["xlsxrecords"])
    run_cli_app()
    captured = capsys.readouterr()
    assert "usage: xlsxrecords" in captured.out


def test_run_cli_app_no_args(capsys):
    run_cli_app([])
    captured = capsys.readouterr()
    assert "usage: xlsxrecords" in captured.out


def test_main_unknown_arg(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main_cli(["--unknown-arg"])
    assert exc_info.value.code == 2  # noqa: PLR2004
    captured = capsys.readouterr()
    assert "xlsxrecords: error: unrecognized arguments: --unknown-arg" in captured.err


def test_main_version(capsys):
    main_cli(["--version"])
    captured = capsys.readouterr()
    assert captured.out.startswith("xlsxrecords")


def test_main_subcmd_help(capsys):
    with pytest.raises(SystemExit) as exc_info:
        run_cli_app(["export", "--help"])
    assert exc_info.value.code == 0
    captured = capsys.readouterr()
    assert "usage: xlsxrecords export" in captured.out


# ===== Tests for common options of all subcommands =====


def test_nonexisting_file(tmp_path, caplog, reset_config):
    fpath = tmp_path / "missing.json"
    with caplog.at_level(logging.ERROR), pytest.raises(XLSXRecordsError):
        main_cli(["export", "-m", USER_MODEL, str(fpath)])
    assert f"File not found: {fpath}" in caplog.text


def test_exit_errorvalue(tmp_path, caplog, reset_config):
    fpath = tmp_path / "missing.json"
    with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as exc_info:
        run_cli_app(["export", "-m", USER_MODEL, str(fpath)])
    assert exc_info.value.code == 1
    assert "Terminating with error" in caplog.text


def test_nonexisting_config(users_json, tmp_path, caplog, reset_config):
    fpath = tmp_path / "missing.toml"
    with caplog.at_level(logging.ERROR), pytest.raises(XLSXRecordsError):
        main_cli(
            ["export", "-m", USER_MODEL, "--config", str(fpath), str(users_json)]
        )
    assert "Config file not found at:" in caplog.text


def test_invalid_outdir(users_json, tmp_path, caplog, reset_config):
    outdir = tmp_path / "file.txt"
    outdir.touch()
    with caplog.at_level(logging.ERROR), pytest.raises(XLSXRecordsError):
        main_cli(["export", "-m", USER_MODEL, "-O", str(outdir), str(users_json)])
    assert "Outdir must be a directory but it is a file." in caplog.text


def test_logfile(users_json, tmp_path, caplog, reset_config):
    logfile = tmp_path / "logs" / "cli.log"
    with caplog.at_level(logging.INFO):
        main_cli(["export", "-m", USER_MODEL, "-l", str(logfile), str(users_json)])
    assert logfile.exists()
    assert "Executing cmd: xlsxrecords export" in logfile.read_text()
    for handler in logging.getLogger().handlers[:]:
        if getattr(handler, "baseFilename", None) == str(logfile):
            logging.getLogger().removeHandler(handler)
            handler.close()


# ===== Tests for the export and import subcommands =====


def test_export_import_round_trip(users_json, records_config, tmp_path, reset_config):
    main_cli(
        ["export", "-m", USER_MODEL, "--config", str(records_config), str(users_json)]
    )
    xlsx_file = tmp_path / "users.xlsx"
    workbook = load_workbook(xlsx_file)
    assert workbook.sheetnames == ["Users"]
    assert workbook["Users"]["D2"].value == "on"
    assert workbook["Users"]["D3"].value == "off"

    outdir = tmp_path / "out"
    main_cli(
        [
            "import",
            "-m",
            USER_MODEL,
            "--config",
            str(records_config),
            "-O",
            str(outdir),
            str(xlsx_file),
        ]
    )
    assert json.loads((outdir / "users.json").read_text(encoding="utf-8")) == USERS


def test_export_with_sheet_option(users_json, tmp_path, reset_config):
    main_cli(["export", "-m", USER_MODEL, "--sheet", "People", str(users_json)])
    assert load_workbook(tmp_path / "users.xlsx").sheetnames == ["People"]


def test_export_refuses_overwrite(users_json, tmp_path, reset_config):
    (tmp_path / "users.xlsx").touch()
    with pytest.raises(XLSXRecordsError, match="Use --force to overwrite it"):
        main_cli(["export", "-m", USER_MODEL, str(users_json)])

    main_cli(["export", "-m", USER_MODEL, "--force", str(users_json)])
    assert load_workbook(tmp_path / "users.xlsx").sheetnames == ["User"]


def test_export_invalid_records(tmp_path, reset_config):
    fpath = tmp_path / "broken.json"
    fpath.write_text('[{"id": "x"}]', encoding="utf-8")
    with pytest.raises(XLSXRecordsError, match="Invalid records"):
        main_cli(["export", "-m", USER_MODEL, str(fpath)])


def test_import_requires_xlsx(users_json, reset_config):
    with pytest.raises(XLSXRecordsError, match="Expected an xlsx file"):
        main_cli(["import", "-m", USER_MODEL, str(users_json)])


def test_load_model_class():
    assert load_model_class(USER_MODEL) is User

    with pytest.raises(XLSXRecordsError, match="module:ClassName"):
        load_model_class("tests.conftest")
    with pytest.raises(XLSXRecordsError, match="Cannot import module"):
        load_model_class("no_such_module_xyz:User")
    with pytest.raises(XLSXRecordsError, match="not a pydantic model class"):
        load_model_class("tests.conftest:Region")
