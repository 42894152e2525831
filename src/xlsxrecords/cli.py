"""Command line interface for xlsxrecords with subcommands."""

import argparse
import importlib
import logging
import os.path
import sys
import textwrap
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

from xlsxrecords import __version__, config, setup_logging
from xlsxrecords.xlsx_api import export_to_xlsx, import_from_xlsx
from xlsxrecords.xlsx_common import XLSXRecordsError

logger = logging.getLogger(__name__)


def process_common_options(args, raw_args):
    # set up output directory
    outdir = getattr(args, "outdir", None)
    if outdir is not None and os.path.isfile(outdir):
        msg = "Outdir must be a directory but it is a file."
        logger.error(msg)
        raise XLSXRecordsError(msg)
    if outdir is not None and not os.path.isdir(outdir):
        outdir.mkdir(exist_ok=True, parents=True)

    # set up logging
    loglevel = logging.INFO + (args.quieter - args.verboser) * 10
    logfile = args.logfile
    if logfile is None:
        setup_logging(loglevel)
    else:
        logfile.parents[0].mkdir(exist_ok=True, parents=True)
        setup_logging(loglevel, logfile)

    logger.info("Executing cmd: xlsxrecords %s", " ".join(raw_args))
    logger.debug("Processing common options.")

    # load config
    if args.config is not None:
        if args.config.exists():
            config.load_config(config_file=Path(args.config))
        else:
            msg = "Config file not found at: %s"
            logger.error(msg, args.config)
            raise XLSXRecordsError(msg % args.config)
    else:
        config.load_config()

    if not args.INPUT.exists():
        msg = "File not found: %s"
        logger.error(msg, args.INPUT)
        raise XLSXRecordsError(msg % args.INPUT)


def load_model_class(model_path: str) -> type[BaseModel]:
    """Import a model class given as "package.module:ClassName"."""
    module_name, _, class_name = model_path.partition(":")
    if not module_name or not class_name:
        msg = f'Model must be given as "module:ClassName", got "{model_path}".'
        raise XLSXRecordsError(msg)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        msg = f'Cannot import module "{module_name}": {e}'
        raise XLSXRecordsError(msg) from e
    model_class = getattr(module, class_name, None)
    if not (isinstance(model_class, type) and issubclass(model_class, BaseModel)):
        msg = f'"{model_path}" is not a pydantic model class.'
        raise XLSXRecordsError(msg)
    return model_class


def _output_path(args, suffix: str) -> Path:
    outdir = args.outdir or args.INPUT.parent
    outfile = outdir / args.INPUT.with_suffix(suffix).name
    if outfile.exists() and not args.force:
        msg = 'Output file "%s" exists. Use --force to overwrite it.'
        raise XLSXRecordsError(msg % outfile)
    return outfile


def _table_config(args):
    table_config = config.CONFIG.table_config()
    if args.sheet:
        table_config.sheet_name = args.sheet
    return table_config


def export_cmd(args):
    """Export records from a json file to xlsx."""
    model_class = load_model_class(args.model)
    adapter = TypeAdapter(list[model_class])
    try:
        records = adapter.validate_json(args.INPUT.read_bytes())
    except ValidationError as e:
        msg = f'Invalid records in "{args.INPUT}": {e}'
        raise XLSXRecordsError(msg) from e

    outfile = _output_path(args, ".xlsx")
    export_to_xlsx(
        records,
        outfile,
        format_map=config.CONFIG.get_format_map(),
        config=_table_config(args),
        model_class=model_class,
    )
    logger.info('Exported %i records to "%s".', len(records), outfile)


def import_cmd(args):
    """Import records from xlsx and save them as json."""
    model_class = load_model_class(args.model)
    if args.INPUT.suffix.lower() != ".xlsx":
        msg = 'Expected an xlsx file, got "%s".'
        raise XLSXRecordsError(msg % args.INPUT)

    records = import_from_xlsx(
        args.INPUT,
        model_class,
        format_map=config.CONFIG.get_format_map(),
        config=_table_config(args),
    )
    outfile = _output_path(args, ".json")
    adapter = TypeAdapter(list[model_class])
    outfile.write_bytes(adapter.dump_json(records, indent=2))
    logger.info('Imported %i records to "%s".', len(records), outfile)


class DecentFormatter(argparse.HelpFormatter):
    """
    An argparse formatter that preserves newlines & keeps indentation.
    """

    def _fill_text(self, text, width, indent):
        """
        Reformat text while keeping newlines for lines shorter than width.
        """
        lines = []
        for line in textwrap.indent(textwrap.dedent(text), indent).splitlines():
            lines.append(textwrap.fill(line, width, subsequent_indent=indent))
        return "\n".join(lines)

    def _split_lines(self, text, width):
        """
        Conserve indentation in help/description lines when splitting long lines.
        """
        lines = []
        for line in textwrap.dedent(text).splitlines():
            if not line.strip():  # pragma: no cover
                continue
            indent = " " * (len(line) - len(line.lstrip()))
            lines.extend(
                textwrap.fill(line, width, subsequent_indent=indent).splitlines()
            )
        return lines


def root_cmd(args):
    if args.version:  # pragma: no cover
        print(f"xlsxrecords {__version__}")


def create_root_parser():
    parser = argparse.ArgumentParser(
        prog="xlsxrecords",
        description=(
            "A command-line tool to export records to Excel (xlsx) tables "
            "and to import them back."
        ),
        allow_abbrev=False,
        formatter_class=DecentFormatter,
    )
    parser.add_argument(
        "-V",
        "--version",
        help="The version of xlsxrecords command line interface.",
        action="store_true",
    )
    parser.set_defaults(func=root_cmd)
    return parser


def create_common_options_parser():
    parser = argparse.ArgumentParser(
        prog="xlsxrecords",
        allow_abbrev=False,
        add_help=False,
        formatter_class=DecentFormatter,
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-v",
        "--verbose",
        action="count",
        dest="verboser",
        default=0,
        help="More verbose output. Repeat to increase verbosity (-vv or -vvv).",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        dest="quieter",
        help="Less verbose output. Repeat to reduce verbosity (-qq or -qqq).",
    )
    parser.add_argument(
        "--config",
        help="Path to config file (toml) with sheet name and format maps.",
        type=Path,
        required=False,
    )
    parser.add_argument(
        "-O",
        "--outdir",
        help=(
            "Specify directory where files should be written to. "
            "The directory is created if required."
        ),
        metavar=("DIRECTORY"),
        type=Path,
    )
    parser.add_argument(
        "-l",
        "--logfile",
        help=(
            "Activate logging to a file at given path. "
            "The path will be created if it is not existing."
        ),
        type=Path,
    )
    parser.add_argument(
        "-m",
        "--model",
        help='The record model as "package.module:ClassName".',
        required=True,
    )
    parser.add_argument(
        "--sheet",
        help="Name of the worksheet (default: from config or model class name).",
    )
    parser.add_argument(
        "--force",
        help="Enforce overwriting existing output files.",
        default=False,
        action="store_true",
    )
    return parser


def add_export_subparser(subparsers, options):
    parser = subparsers.add_parser(
        "export",
        description=(
            "Export records from a json file (a list of objects) to an xlsx "
            "file with the same name."
        ),
        help="Export records from json to xlsx.",
        **options,
    )
    parser.add_argument(
        "INPUT",
        type=Path,
        help="The json file with the records to export.",
    )
    parser.set_defaults(func=export_cmd)


def add_import_subparser(subparsers, options):
    parser = subparsers.add_parser(
        "import",
        description=(
            "Import records from an xlsx file and write them to a json file "
            "with the same name."
        ),
        help="Import records from xlsx to json.",
        **options,
    )
    parser.add_argument(
        "INPUT",
        type=Path,
        help="The xlsx file to import.",
    )
    parser.set_defaults(func=import_cmd)


def main_cli(raw_args=None):
    """Setup CLI app and run commands based on args."""
    # Create root parser for cli app
    parser = create_root_parser()

    subparsers = parser.add_subparsers(
        title="Subcommands",
        dest="subcommand",
        description="Get help for commands with xlsxrecords COMMAND --help",
    )
    # Create parser to share some options between subparsers. We cannot use the
    # root parser for this because it includes the sub-commands and their help.
    common_options_parser = create_common_options_parser()

    # Create the subparsers with some common options
    common_options = {
        "parents": [common_options_parser],
        "formatter_class": DecentFormatter,
    }
    add_export_subparser(subparsers, common_options)
    add_import_subparser(subparsers, common_options)

    if not raw_args:
        parser.print_help()
        return

    # Parse the command-line arguments
    #   pars_args will call sys.exit(2) if invalid commands are given.
    args = parser.parse_args(raw_args)
    if hasattr(args, "config"):
        process_common_options(args, raw_args)
    args.func(args)


def run_cli_app(raw_args=None):
    """Entry point for running the cli app."""
    if raw_args is None:
        raw_args = sys.argv[1:]
    try:
        main_cli(raw_args)
    except XLSXRecordsError as e:
        logger.error("Terminating with error: %s", e)  # noqa: TRY400
        sys.exit(1)
    except Exception:  # pragma: no cover
        logger.exception("Unexpected error.")
        sys.exit(3)  # value 2 is used by argparse for invalid args.


if __name__ == "__main__":
    run_cli_app(sys.argv[1:])
