from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from vips_batch.config import TYPE_FILES, AppConfig
from vips_batch.paths import has_extension

LOGGER = logging.getLogger(__name__)

_SEPARATORS = os.sep + (os.altsep or "")


class DiscoveryError(OSError):
    pass


def _raise_walk_error(err: OSError) -> None:
    raise DiscoveryError(f"cannot walk {err.filename}: {err.strerror or err}") from err


def _walk_files(root: Path) -> Iterator[Path]:
    if not root.is_dir():
        raise DiscoveryError(f"not a directory: {root}")
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(filenames):
            path = base / name
            try:
                regular = path.is_file()
            except OSError as e:
                raise DiscoveryError(f"cannot stat {path}: {e}") from e
            if regular:
                yield path


def iter_source_files(source_dir: Path) -> Iterator[Path]:
    """Yield every regular file under `source_dir`, recursively."""
    yield from _walk_files(source_dir)


def _read_manifest(path: Path) -> Iterator[str]:
    try:
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                entry = line.strip()
                if entry:
                    yield entry
    except (OSError, UnicodeDecodeError) as e:
        raise DiscoveryError(f"cannot read filelist {path}: {e}") from e


def iter_filelist_entries(
    *, list_dir: Path, source_dir: Path, manifest_ext: str, verbose: bool = False
) -> Iterator[Path]:
    """
    Yield `source_dir / line` for every non-blank line of every manifest under `list_dir`.

    Manifests are files whose extension equals `manifest_ext`; other files are skipped.
    """
    for path in _walk_files(list_dir):
        if not has_extension(path, manifest_ext):
            if verbose:
                LOGGER.info("filelist skip (ext): %s", path)
            continue

        if verbose:
            LOGGER.info("filelist: %s", path)
        for entry in _read_manifest(path):
            # manifest lines are always relative to source_dir
            yield source_dir / entry.lstrip(_SEPARATORS)


def discover(config: AppConfig) -> Iterator[Path]:
    if config.discovery_type == TYPE_FILES:
        return iter_source_files(config.src_dir)
    return iter_filelist_entries(
        list_dir=config.list_dir,
        source_dir=config.src_dir,
        manifest_ext=config.filelist_ext,
        verbose=config.verbose,
    )
