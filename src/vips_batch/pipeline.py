from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from vips_batch.config import AppConfig
from vips_batch.discovery import DiscoveryError, discover
from vips_batch.executor import OutputSinks
from vips_batch.handoff import HandoffQueue
from vips_batch.pool import JobOutcome, WorkerPool

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineReport:
    discovered: int
    converted: int
    skipped: int
    failed: int
    discovery_error: str | None = None

    @property
    def processed(self) -> int:
        return self.converted + self.skipped + self.failed


def run_pipeline(*, config: AppConfig, sinks: OutputSinks | None = None) -> PipelineReport:
    """
    Discover jobs and convert them on `config.proc` workers.

    Returns after every worker has drained the queue, even when discovery
    stopped early on an error.
    """
    sinks = sinks or OutputSinks()
    queue: HandoffQueue[Path] = HandoffQueue()
    pool = WorkerPool(queue, workers=config.proc, config=config, sinks=sinks)
    pool.start()

    discovered = 0
    discovery_error: str | None = None
    try:
        for job in discover(config):
            queue.put(job)
            discovered += 1
    except DiscoveryError as e:
        LOGGER.error("error: %s", e)
        discovery_error = str(e)
    except Exception as e:
        LOGGER.exception("error: discovery failed: %s", e)
        discovery_error = str(e) or type(e).__name__
    finally:
        queue.close()

    counts = pool.join()
    report = PipelineReport(
        discovered=discovered,
        converted=counts[JobOutcome.CONVERTED],
        skipped=counts[JobOutcome.SKIPPED],
        failed=counts[JobOutcome.FAILED],
        discovery_error=discovery_error,
    )
    LOGGER.info(
        "Finished %d jobs: %d converted, %d skipped, %d failed",
        report.processed,
        report.converted,
        report.skipped,
        report.failed,
    )
    return report
