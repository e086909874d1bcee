from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

LOGGER = logging.getLogger(__name__)

DIR_MODE = 0o755


@dataclass(frozen=True, slots=True)
class OutputSinks:
    """Where the conversion command writes. `None` inherits this process's stream."""

    stdout: BinaryIO | None = None
    stderr: BinaryIO | None = None


def build_command(template: str, src: Path, dest: Path) -> str:
    return template % (shlex.quote(str(src)), shlex.quote(str(dest)))


def run_conversion(
    *,
    src: Path,
    dest: Path,
    template: str,
    dry_run: bool,
    verbose: bool,
    sinks: OutputSinks,
) -> bool:
    """
    Run the conversion command for one file through `sh`.

    Failures are logged and reported as False; nothing is raised or retried.
    """
    if verbose:
        LOGGER.info("%s -> %s", src, dest)
    if dry_run:
        return True

    command = build_command(template, src, dest)
    try:
        dest.parent.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        subprocess.run(
            command,
            shell=True,
            stdout=sinks.stdout,
            stderr=sinks.stderr,
            check=True,
        )
    except (subprocess.CalledProcessError, OSError) as e:
        LOGGER.error("error: %s:\n  %s", command, e)
        return False
    return True
