from __future__ import annotations

import enum
import logging
import threading
from collections import Counter
from pathlib import Path

from vips_batch.config import AppConfig
from vips_batch.executor import OutputSinks, run_conversion
from vips_batch.handoff import HandoffQueue
from vips_batch.paths import PathError, has_extension, map_output_path

LOGGER = logging.getLogger(__name__)


class JobOutcome(enum.Enum):
    SKIPPED = "skipped"
    CONVERTED = "converted"
    FAILED = "failed"


def process_job(job: Path, *, config: AppConfig, sinks: OutputSinks) -> JobOutcome:
    if not has_extension(job, config.ext):
        if config.verbose:
            LOGGER.info("skip (ext): %s", job)
        return JobOutcome.SKIPPED

    try:
        dest = map_output_path(
            source_path=job,
            source_dir=config.src_dir,
            dest_dir=config.dest_dir,
            ext=config.ext,
        )
    except PathError as e:
        LOGGER.error("error: %s", e)
        return JobOutcome.FAILED

    ok = run_conversion(
        src=job,
        dest=dest,
        template=config.vips_fmt,
        dry_run=config.dry_run,
        verbose=config.verbose,
        sinks=sinks,
    )
    return JobOutcome.CONVERTED if ok else JobOutcome.FAILED


class WorkerPool:
    """
    Fixed set of threads consuming one `HandoffQueue`.

    Each worker counts its own outcomes; `join` merges them once every worker
    has seen the queue closed.
    """

    def __init__(
        self,
        queue: HandoffQueue[Path],
        *,
        workers: int,
        config: AppConfig,
        sinks: OutputSinks,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.queue = queue
        self.workers = workers
        self.config = config
        self.sinks = sinks

        self._threads: list[threading.Thread] = []
        self._counts: list[Counter[JobOutcome]] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("pool already started")
        for i in range(self.workers):
            counts: Counter[JobOutcome] = Counter()
            thread = threading.Thread(
                target=self._work,
                args=(counts,),
                name=f"worker-{i}",
                daemon=True,
            )
            self._counts.append(counts)
            self._threads.append(thread)
        for thread in self._threads:
            thread.start()

    def _work(self, counts: Counter[JobOutcome]) -> None:
        for job in self.queue:
            try:
                outcome = process_job(job, config=self.config, sinks=self.sinks)
            except Exception:
                LOGGER.exception("error: unexpected failure processing %s", job)
                outcome = JobOutcome.FAILED
            counts[outcome] += 1

    def join(self) -> Counter[JobOutcome]:
        for thread in self._threads:
            thread.join()
        total: Counter[JobOutcome] = Counter()
        for counts in self._counts:
            total.update(counts)
        return total
