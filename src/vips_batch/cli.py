from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from vips_batch.config import (
    CONFIG_FILE,
    AppConfig,
    ConfigError,
    load_config,
    save_config,
    validate_config,
)
from vips_batch.executor import OutputSinks
from vips_batch.pipeline import run_pipeline

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# flags that arrive as strings but are stored as Path
_PATH_FIELDS = ("src_dir", "dest_dir", "list_dir")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vips-batch",
        description="Convert a tree of images with an external command on parallel workers.",
        epilog="Defaults are read from the config file when it exists; flags override them.",
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--config",
        default=str(CONFIG_FILE),
        help=f"Path to the JSON config file (default: {CONFIG_FILE}).",
    )
    parser.add_argument("-t", "--dry-run", dest="dry_run", action="store_true", help="Dry run (implies -v).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every mapped and skipped file.")
    parser.add_argument("--save", action="store_true", help="Overwrite the config file with the effective config.")
    parser.add_argument("-p", "--proc", type=int, help="Number of concurrent conversions.")
    parser.add_argument("--type", help='Discovery type: "files" or "filelist[.{ext}]".')
    parser.add_argument("-s", "--src-dir", dest="src_dir", help="Source directory.")
    parser.add_argument("-d", "--dest-dir", dest="dest_dir", help="Destination directory.")
    parser.add_argument("-b", "--list-dir", dest="list_dir", help="Filelist directory.")
    parser.add_argument("-e", "--ext", help="Source file extension.")
    parser.add_argument(
        "-f",
        "--format",
        dest="vips_fmt",
        help="Command template with two %%s slots (source, destination), run through sh.",
    )
    parser.add_argument("--log", help='Log file, written alongside stdout ("" for stdout only).')
    parser.add_argument("--stdout", help='File for the command\'s stdout ("" to inherit).')
    parser.add_argument("--stderr", help='File for the command\'s stderr ("" to inherit).')
    return parser


def merge_args(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    overrides: dict[str, Any] = {
        key: value for key, value in vars(args).items() if key != "config"
    }
    for key in _PATH_FIELDS:
        if key in overrides:
            overrides[key] = Path(overrides[key])

    merged = replace(config, **overrides)
    if merged.dry_run:
        merged = replace(merged, verbose=True)
    return merged


def configure_logging(stack: contextlib.ExitStack, *, log_file: str) -> None:
    """
    Send log records to stdout, and also to `log_file` when set.

    Handlers are attached to the root logger for the lifetime of `stack`, even
    when the process already configured logging.
    """
    root = logging.getLogger()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
        stack.callback(handler.close)
        stack.callback(root.removeHandler, handler)

    stack.callback(root.setLevel, root.level)
    root.setLevel(logging.INFO)


def open_sinks(stack: contextlib.ExitStack, config: AppConfig) -> OutputSinks:
    stdout = stack.enter_context(open(config.stdout, "wb")) if config.stdout else None
    stderr = stack.enter_context(open(config.stderr, "wb")) if config.stderr else None
    return OutputSinks(stdout=stdout, stderr=stderr)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config_path = Path(args.config).expanduser()

    try:
        config = validate_config(merge_args(load_config(config_path), args))
    except ConfigError as e:
        raise SystemExit(str(e)) from e

    with contextlib.ExitStack() as stack:
        try:
            configure_logging(stack, log_file=config.log)
            sinks = open_sinks(stack, config)
            if config.save:
                save_config(config, config_path)
        except OSError as e:
            raise SystemExit(f"error: {e}") from e

        if config.verbose:
            LOGGER.info("config: %r", config)

        run_pipeline(config=config, sinks=sinks)

    print("done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
