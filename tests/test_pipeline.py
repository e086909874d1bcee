from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from vips_batch.config import AppConfig, validate_config
from vips_batch.executor import OutputSinks
from vips_batch.pipeline import run_pipeline


def _touch(path: Path, data: bytes = b"img") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def _snapshot(root: Path) -> list[Path]:
    return sorted(root.rglob("*"))


def test_dry_run_maps_only_matching_files(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    src = tmp_path / "src"
    dest = tmp_path / "dest"
    _touch(src / "a.jpg")
    _touch(src / "b.png")
    _touch(src / "c.jpg")
    cfg = validate_config(AppConfig(src_dir=src, dest_dir=dest, proc=2, dry_run=True, verbose=True))

    caplog.set_level(logging.INFO, logger="vips_batch.executor")
    report = run_pipeline(config=cfg)

    traces = sorted(r.getMessage() for r in caplog.records if r.name == "vips_batch.executor")
    assert traces == [f"{src / 'a.jpg'} -> {dest / 'a.jpg'}", f"{src / 'c.jpg'} -> {dest / 'c.jpg'}"]
    assert report.discovered == 3
    assert report.converted == 2
    assert report.skipped == 1
    assert not dest.exists()


def test_dry_run_is_repeatable(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    src = tmp_path / "src"
    for name in ("a.jpg", "x/b.jpg", "x/y/c.jpg", "x/d.txt"):
        _touch(src / name)
    cfg = validate_config(
        AppConfig(src_dir=src, dest_dir=tmp_path / "dest", proc=3, dry_run=True, verbose=True)
    )
    before = _snapshot(tmp_path)

    caplog.set_level(logging.INFO)
    run_pipeline(config=cfg)
    first = sorted(r.getMessage() for r in caplog.records)
    caplog.clear()
    run_pipeline(config=cfg)
    second = sorted(r.getMessage() for r in caplog.records)

    assert first == second
    assert _snapshot(tmp_path) == before


@pytest.mark.parametrize(("jobs", "workers"), [(0, 1), (1, 4), (25, 1), (40, 7)])
def test_every_job_processed_before_return(tmp_path: Path, jobs: int, workers: int) -> None:
    src = tmp_path / "src"
    src.mkdir()
    for i in range(jobs):
        _touch(src / f"d{i % 3}" / f"{i}.jpg", data=str(i).encode())
    cfg = validate_config(
        AppConfig(src_dir=src, dest_dir=tmp_path / "dest", proc=workers, vips_fmt="cp %s %s")
    )

    report = run_pipeline(config=cfg)

    assert report.discovered == jobs
    assert report.processed == jobs
    assert report.converted == jobs
    dest = tmp_path / "dest"
    outputs = list(dest.rglob("*.jpg")) if dest.exists() else []
    assert len(outputs) == jobs


def test_one_failure_does_not_stop_the_batch(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    src = tmp_path / "src"
    list_dir = tmp_path / "list"
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        _touch(src / "imgs" / name)
    list_dir.mkdir()
    (list_dir / "batch.txt").write_text(
        "imgs/a.jpg\nimgs/missing.jpg\nimgs/b.jpg\nimgs/c.jpg\n", encoding="utf-8"
    )
    cfg = validate_config(
        AppConfig(
            type="filelist",
            src_dir=src,
            list_dir=list_dir,
            dest_dir=tmp_path / "dest",
            proc=2,
            vips_fmt="cp %s %s",
        )
    )

    caplog.set_level(logging.INFO)
    with (tmp_path / "stderr.log").open("wb") as err:
        report = run_pipeline(config=cfg, sinks=OutputSinks(stderr=err))

    assert report.converted == 3
    assert report.failed == 1
    assert sorted(p.name for p in (tmp_path / "dest" / "imgs").iterdir()) == ["a.jpg", "b.jpg", "c.jpg"]
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "missing.jpg" in errors[0]


def test_discovery_error_still_drains(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    src = tmp_path / "src"
    list_dir = tmp_path / "list"
    list_dir.mkdir()
    (list_dir / "a.txt").write_text("one.jpg\ntwo.jpg\n", encoding="utf-8")
    (list_dir / "b.txt").write_bytes(b"\xff\xfe\xfa\n")
    cfg = validate_config(
        AppConfig(type="filelist", src_dir=src, list_dir=list_dir, dry_run=True, proc=2)
    )

    caplog.set_level(logging.INFO)
    report = run_pipeline(config=cfg)

    assert report.discovered == 2
    assert report.processed == 2
    assert report.discovery_error is not None
    assert "b.txt" in report.discovery_error
    assert any(r.levelno == logging.ERROR and "b.txt" in r.getMessage() for r in caplog.records)
    assert "Finished 2 jobs" in caplog.records[-1].getMessage()


def test_missing_source_dir_reports_completion(tmp_path: Path) -> None:
    cfg = validate_config(AppConfig(src_dir=tmp_path / "nope", dest_dir=tmp_path / "dest"))

    report = run_pipeline(config=cfg)

    assert report.discovered == 0
    assert report.processed == 0
    assert report.discovery_error is not None


def test_unexpected_discovery_failure_still_drains(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    src = tmp_path / "src"
    first = _touch(src / "a.jpg")

    def failing_discover(config: AppConfig) -> Iterator[Path]:
        yield first
        raise PermissionError(13, "Permission denied", str(src / "locked"))

    monkeypatch.setattr("vips_batch.pipeline.discover", failing_discover)
    cfg = validate_config(AppConfig(src_dir=src, dest_dir=tmp_path / "dest", dry_run=True, proc=2))

    caplog.set_level(logging.INFO)
    report = run_pipeline(config=cfg)

    assert report.discovered == 1
    assert report.processed == 1
    assert report.discovery_error is not None
    assert "Permission denied" in report.discovery_error
    assert any(r.levelno == logging.ERROR for r in caplog.records)
    assert "Finished 1 jobs" in caplog.records[-1].getMessage()
