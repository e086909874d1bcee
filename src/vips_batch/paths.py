from __future__ import annotations

import os
from pathlib import Path

DEFAULT_EXT = ".jpg"


class PathError(ValueError):
    pass


def has_extension(path: Path, ext: str) -> bool:
    return path.suffix == ext


def map_output_path(*, source_path: Path, source_dir: Path, dest_dir: Path, ext: str) -> Path:
    """
    Mirror `source_path` from `source_dir` into `dest_dir`.

    Non-default source extensions get a `.jpg` destination by swapping the last
    four characters, so `ext` is assumed to be four characters long.
    """
    source = Path(os.path.normpath(source_path))
    root = Path(os.path.normpath(source_dir))
    try:
        rel = source.relative_to(root)
    except ValueError as e:
        raise PathError(f"{source_path} is not under {source_dir}") from e

    dest = dest_dir / rel
    if ext != DEFAULT_EXT:
        dest = Path(str(dest)[:-4] + DEFAULT_EXT)
    return dest
