from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

CONFIG_FILE = Path("config.json")

TYPE_FILES = "files"
TYPE_FILELIST = "filelist"

DEFAULT_PROC = 4
DEFAULT_FILELIST_EXT = ".txt"
DEFAULT_VIPS_FMT = "vips im_vips2tiff %s %s:jpeg:60,tile:256x256,pyramid"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class AppConfig:
    dry_run: bool = False
    verbose: bool = False
    save: bool = False
    proc: int = DEFAULT_PROC
    type: str = TYPE_FILES
    filelist_ext: str = DEFAULT_FILELIST_EXT
    src_dir: Path = Path("src")
    dest_dir: Path = Path("dest")
    list_dir: Path = Path("list")
    ext: str = ".jpg"
    vips_fmt: str = DEFAULT_VIPS_FMT
    log: str = ""
    stdout: str = ""
    stderr: str = ""

    @property
    def discovery_type(self) -> str:
        return TYPE_FILES if self.type == TYPE_FILES else TYPE_FILELIST


def _as_dict_table(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"config: {name} must be a JSON object")
    return value


def _get_int(table: dict[str, Any], key: str, default: int) -> int:
    value = table.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"config: {key} must be an int")
    return value


def _get_str(table: dict[str, Any], key: str, default: str) -> str:
    value = table.get(key, default)
    if not isinstance(value, str):
        raise ConfigError(f"config: {key} must be a string")
    return value


def _get_path(table: dict[str, Any], key: str, default: Path) -> Path:
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"config: {key} must be a non-empty string path")
    return Path(value)


def parse_discovery_type(value: str) -> tuple[str, str]:
    """
    Split `files` / `filelist[.ext]` into (type, manifest extension).

    A bare `filelist` reads `.txt` manifests.
    """
    if value == TYPE_FILES:
        return TYPE_FILES, DEFAULT_FILELIST_EXT
    if value.startswith(TYPE_FILELIST):
        ext = value[len(TYPE_FILELIST):]
        if not ext:
            return TYPE_FILELIST, DEFAULT_FILELIST_EXT
        if ext.startswith(".") and len(ext) > 1:
            return TYPE_FILELIST, ext
    raise ConfigError('type must be "files" or "filelist[.{ext}]"')


def validate_config(config: AppConfig) -> AppConfig:
    """Check the merged config and fill in the manifest extension from `type`."""
    if config.proc < 1:
        raise ConfigError("config: proc must be >= 1")
    if not config.ext:
        raise ConfigError("config: ext must be non-empty")
    try:
        config.vips_fmt % ("src", "dest")
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"config: vips_fmt must take exactly two %s arguments: {config.vips_fmt!r}"
        ) from e

    _, filelist_ext = parse_discovery_type(config.type)
    return replace(config, filelist_ext=filelist_ext)


def load_config(path: Path = CONFIG_FILE) -> AppConfig:
    """
    Read the persisted defaults from `path`.

    A missing file yields the built-in defaults. Only the persisted keys are
    read; run flags (dry-run, verbose, save) always start off.
    """
    defaults = AppConfig()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return defaults
    except OSError as e:
        raise ConfigError(f"config: cannot read {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"config: {path} is not valid JSON: {e}") from e

    table = _as_dict_table(data, str(path))
    return AppConfig(
        proc=_get_int(table, "proc", defaults.proc),
        type=_get_str(table, "type", defaults.type),
        src_dir=_get_path(table, "src_dir", defaults.src_dir),
        dest_dir=_get_path(table, "dest_dir", defaults.dest_dir),
        list_dir=_get_path(table, "base_dir", defaults.list_dir),
        ext=_get_str(table, "ext", defaults.ext),
        vips_fmt=_get_str(table, "vips_fmt", defaults.vips_fmt),
        log=_get_str(table, "log", defaults.log),
        stdout=_get_str(table, "stdout", defaults.stdout),
        stderr=_get_str(table, "stderr", defaults.stderr),
    )


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    return {
        "proc": config.proc,
        "type": config.type,
        "src_dir": config.src_dir.as_posix(),
        "dest_dir": config.dest_dir.as_posix(),
        "base_dir": config.list_dir.as_posix(),
        "ext": config.ext,
        "vips_fmt": config.vips_fmt,
        "log": config.log,
        "stdout": config.stdout,
        "stderr": config.stderr,
    }


def save_config(config: AppConfig, path: Path = CONFIG_FILE) -> None:
    payload = config_to_dict(config)
    path.write_text(json.dumps(payload, indent=1, ensure_ascii=False) + "\n", encoding="utf-8")
    LOGGER.info("%s was successfully saved.", path)
