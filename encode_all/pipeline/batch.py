"""
Runs many encoding requests through one `EncodingSupervisor`.

The batch runner adds what a single job does not need: bounded parallelism,
results reported in input order, retries for jobs that ended in an error, and a
single cancel that stops the whole batch. Canceling closes the supervisor, so a
worker that was just about to start a job cannot slip past it.
"""
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from loguru import logger

from ..config.common import (
    DEFAULT_MAX_WORKERS,
    JOB_STATUS_CANCELED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    MAX_ENCODE_RETRIES,
)
from ..domain.exceptions import DuplicateJobError
from ..domain.request import EncodingRequest
from ..services.job_registry import EncodingSupervisor, resolve_job_id
from ..utils.format_utils import format_timedelta


@dataclass
class BatchItemResult:
    job_id: str
    request: EncodingRequest
    state: str
    attempts: int
    message: Optional[str] = None


@dataclass
class BatchReport:
    results: List[BatchItemResult] = field(default_factory=list)

    def _count(self, state: str) -> int:
        return sum(1 for r in self.results if r.state == state)

    @property
    def completed(self) -> int:
        return self._count(JOB_STATUS_COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(JOB_STATUS_FAILED)

    @property
    def canceled(self) -> int:
        return self._count(JOB_STATUS_CANCELED)

    @property
    def all_succeeded(self) -> bool:
        return all(r.state == JOB_STATUS_COMPLETED for r in self.results)


class BatchEncoder:
    """
    Runs a list of requests through a supervisor with bounded parallelism.

    A job that ends in an error is started again until it has used
    `max_retries` extra attempts. Canceled jobs are never retried.
    """

    def __init__(
        self,
        supervisor: EncodingSupervisor,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_retries: int = MAX_ENCODE_RETRIES,
    ):
        self.supervisor = supervisor
        self.max_workers = max(1, max_workers)
        self.max_retries = max(0, max_retries)
        self._stopped = threading.Event()

    def run(self, requests: Iterable[EncodingRequest]) -> BatchReport:
        requests = list(requests)
        logger.info(f"Starting batch of {len(requests)} job(s) with {self.max_workers} worker(s)")
        ordered: List[Optional[BatchItemResult]] = [None] * len(requests)
        started = datetime.now()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="batch") as pool:
            futures = {
                pool.submit(self._run_with_retries, request): index
                for index, request in enumerate(requests)
            }
            for future in as_completed(futures):
                ordered[futures[future]] = future.result()

        report = BatchReport([r for r in ordered if r is not None])
        logger.info(
            f"Batch finished in {format_timedelta(datetime.now() - started)}: "
            f"{report.completed} completed, {report.failed} failed, {report.canceled} canceled"
        )
        return report

    def cancel(self):
        """Stops scheduling new attempts, cancels every running job and closes the supervisor."""
        self._stopped.set()
        self.supervisor.shutdown(cancel=True, wait=False)

    def _run_with_retries(self, request: EncodingRequest) -> BatchItemResult:
        job_id = resolve_job_id(request)
        attempts = 0
        while True:
            if self._stopped.is_set():
                return BatchItemResult(job_id, request, JOB_STATUS_CANCELED, attempts)
            attempts += 1
            try:
                result = self.supervisor.run(request)
            except DuplicateJobError as e:
                logger.error(str(e))
                return BatchItemResult(job_id, request, JOB_STATUS_FAILED, attempts, str(e))

            if result.state != JOB_STATUS_FAILED or attempts > self.max_retries:
                return BatchItemResult(result.job_id, request, result.state, attempts, result.message)
            logger.warning(
                f"[{job_id}] Attempt {attempts} failed ({result.message}); "
                f"retrying ({attempts}/{self.max_retries})"
            )
