"""
This module defines the EncodingSupervisor, the entry point for running encoding
jobs. It owns the registry of active jobs and everything shared between them.

Responsibilities:
- Accept a request: resolve its job id, open its log file, register it, and
  take one unit of sleep inhibition.
- Drive the job through its passes (`created -> pass1 -> [pass2]`), spawning
  ffmpeg once per pass and remapping each pass's progress into the job's
  overall 0-100 range.
- Finish every job exactly once, whatever happened: close the log, drop the
  process handle, release the inhibition unit, unregister, then emit one of
  `complete` / `error` (canceled jobs emit neither).
- Cancel one job or all jobs on request, without waiting for ffmpeg to exit.
- Refuse new jobs once `shutdown()` has been called.

Jobs run on the calling thread (`start_encoding`, `run`) or on a thread pool
(`submit`). The job map and the sleep-inhibition counter are the only state
shared between jobs. The registry lock guards only the map itself, never
log-file, process or power-management calls.
"""
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Dict, List, NamedTuple, Optional, Set

from loguru import logger

from ..config.common import (
    DEFAULT_MAX_WORKERS,
    JOB_LOG_FOLDER_PREFIX,
    JOB_LOG_SUFFIX,
    JOB_STATUS_CANCELED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)
from ..domain.exceptions import (
    DuplicateJobError,
    EncodingException,
    InvalidStateTransition,
    LogFileError,
)
from ..domain.job import PASS_STATES, Job, generate_job_id
from ..domain.request import EncodingRequest
from ..utils.ffmpeg_utils import format_command, remove_passlog_files
from .argument_builder import EncodingPlan, build_encoding_plan
from .events import EncodingEvents
from .power import ProgressIndicator, SleepInhibitor
from .process_supervisor import FfmpegProcess, PassOutcome


@dataclass
class JobResult:
    job_id: str
    state: str
    output_path: Path
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == JOB_STATUS_COMPLETED


class SubmittedJob(NamedTuple):
    job_id: str
    future: "Future[JobResult]"


def resolve_job_id(request: EncodingRequest) -> str:
    return request.job_id or generate_job_id(
        request.input_path, request.output_path, request.job_timestamp
    )


def resolve_log_path(request: EncodingRequest) -> Path:
    """
    Picks the per-job log file location.

    Priority: the explicit log directory, then a `logs_<timestamp>` folder next
    to the output, then `<output>.log` beside the output itself.
    """
    filename = request.output_path.name + JOB_LOG_SUFFIX
    if request.log_directory:
        return request.log_directory / filename
    if request.job_timestamp:
        return request.output_path.parent / f"{JOB_LOG_FOLDER_PREFIX}{request.job_timestamp}" / filename
    return request.output_path.with_name(filename)


def open_job_log(path: Path) -> IO[str]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return path.open("w", encoding="utf-8", errors="replace")
    except OSError as e:
        raise LogFileError(path, e.strerror or str(e)) from e


class EncodingSupervisor:
    def __init__(
        self,
        events: Optional[EncodingEvents] = None,
        sleep_inhibitor: Optional[SleepInhibitor] = None,
        progress_indicator: Optional[ProgressIndicator] = None,
        spawn: Callable = subprocess.Popen,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        Args:
            events: Publisher the job events go to. A private one is created if omitted.
            sleep_inhibitor: Shared inhibition counter. Defaults to the platform backend.
            progress_indicator: OS-level progress display. Defaults to a no-op.
            spawn: Process factory with the `subprocess.Popen` signature.
            max_workers: Thread pool size used by `submit()`.
        """
        self.events = events if events is not None else EncodingEvents()
        self.sleep_inhibitor = sleep_inhibitor if sleep_inhibitor is not None else SleepInhibitor()
        self.progress_indicator = progress_indicator if progress_indicator is not None else ProgressIndicator()
        self.max_workers = max(1, max_workers)
        self._spawn = spawn
        self._jobs: Dict[str, Job] = {}
        self._reserved: Set[str] = set()
        self._closed = False
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

    # --- Registry queries ---

    def active_jobs(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    # --- Starting jobs ---

    def start_encoding(self, request: EncodingRequest) -> str:
        """
        Runs one job to completion on the calling thread.

        Returns:
            The job id. The outcome is reported through the event publisher.

        Raises:
            DuplicateJobError: A job with the same id is still registered.
        """
        return self.run(request).job_id

    def submit(self, request: EncodingRequest) -> SubmittedJob:
        """
        Schedules a job on the supervisor's thread pool.

        The job id is resolved up front so the caller can cancel the job or match
        its events before it has started.
        """
        job_id = resolve_job_id(request)
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="encode"
                )
            executor = self._executor
        return SubmittedJob(job_id, executor.submit(self.run, request))

    def run(self, request: EncodingRequest) -> JobResult:
        """Accepts, runs and finishes one job, returning its final state."""
        accepted = self._accept(request)
        if isinstance(accepted, JobResult):
            return accepted
        job, plan = accepted
        return self._execute(job, plan)

    def _accept(self, request: EncodingRequest):
        """
        Registers a job, or returns a final `JobResult` if it never gets to run.

        The id is reserved first so that opening the log and taking sleep
        inhibition happen outside the registry lock.
        """
        job_id = resolve_job_id(request)
        plan = build_encoding_plan(request)
        log_path = resolve_log_path(request)
        with self._lock:
            if job_id in self._jobs or job_id in self._reserved:
                raise DuplicateJobError(job_id)
            if self._closed:
                return self._refused(job_id, request)
            self._reserved.add(job_id)

        try:
            try:
                log_stream = open_job_log(log_path)
            except LogFileError as e:
                logger.error(f"[{job_id}] {e}")
                self.progress_indicator.set_error()
                self.events.error(job_id, str(e))
                return JobResult(job_id, JOB_STATUS_FAILED, request.output_path, str(e))

            job = Job(job_id, request, log_path, log_stream)
            job.advisories.extend(plan.advisories)
            job.passlog_prefix = plan.passlog_prefix
            # Taken before the job becomes visible, so a cancel can never release first.
            self.sleep_inhibitor.acquire()
            with self._lock:
                closed = self._closed
                if not closed:
                    self._jobs[job_id] = job
            if closed:
                job.close_log()
                self.sleep_inhibitor.release()
                return self._refused(job_id, request)
        finally:
            with self._lock:
                self._reserved.discard(job_id)

        logger.info(
            f"[{job_id}] Accepted {request.input_path.name} -> {request.output_path.name} "
            f"({len(plan.passes)} pass{'es' if plan.is_two_pass else ''}, log: {log_path})"
        )
        for advisory in plan.advisories:
            logger.warning(f"[{job_id}] {advisory}")
        return job, plan

    def _refused(self, job_id: str, request: EncodingRequest) -> JobResult:
        logger.info(f"[{job_id}] Not started: the supervisor is shutting down")
        return JobResult(job_id, JOB_STATUS_CANCELED, request.output_path, "Supervisor is shutting down")

    # --- Running jobs ---

    def _execute(self, job: Job, plan: EncodingPlan) -> JobResult:
        total = len(plan.passes)
        try:
            for index, args in enumerate(plan.passes):
                outcome = self._run_pass(job, args, index, total)
                if outcome is None or job.canceled:
                    break
                if not outcome.success:
                    raise outcome.error
        except EncodingException as e:
            logger.error(f"[{job.job_id}] {e}")
            self._finish(job, JOB_STATUS_FAILED, str(e))
        except Exception as e:
            logger.exception(f"[{job.job_id}] Unexpected error while encoding")
            self._finish(job, JOB_STATUS_FAILED, f"Unexpected error: {e}")
        else:
            if job.canceled:
                self._finish(job, JOB_STATUS_CANCELED)
            else:
                self._finish(job, JOB_STATUS_COMPLETED)
        finally:
            if plan.passlog_prefix is not None:
                self._remove_passlog(job, plan.passlog_prefix)

        return JobResult(job.job_id, job.state, job.output_path, job.error_message)

    def _run_pass(self, job: Job, args: List[str], index: int, total: int) -> Optional[PassOutcome]:
        process = FfmpegProcess(
            job.request.ffmpeg_path,
            args,
            on_output=lambda text: self._on_output(job, text),
            on_progress=lambda fraction: self._on_progress(job, index, total, fraction),
            spawn=self._spawn,
        )
        with job.lock:
            if job.canceled:
                return None
            job.write_log(format_command(process.cmd) + "\n")
            process.start()
            job.process = process
            job.transition(PASS_STATES[index])
            logger.info(f"[{job.job_id}] Pass {index + 1}/{total} started (pid {process.pid})")

        try:
            outcome = process.wait()
        finally:
            with job.lock:
                job.process = None

        job.duration = max(job.duration, outcome.duration)
        logger.debug(f"[{job.job_id}] Pass {index + 1}/{total} exited with {outcome.returncode}")
        return outcome

    def _remove_passlog(self, job: Job, prefix: Path):
        """
        Deletes the two-pass statistics unless a newer job for the same output
        has already taken the prefix over.
        """
        with self._lock:
            for other in self._jobs.values():
                if other is not job and other.passlog_prefix == prefix:
                    logger.debug(f"[{job.job_id}] Keeping {prefix.name} files, now used by {other.job_id}")
                    return
            remove_passlog_files(prefix)

    def _on_output(self, job: Job, text: str):
        job.write_log(text)
        if not job.canceled:
            self.events.log(job.job_id, text)

    def _on_progress(self, job: Job, index: int, total: int, fraction: float):
        if job.canceled:
            return
        overall = (index + fraction) / total
        self.events.progress(job.job_id, min(100, round(overall * 100)))
        self.progress_indicator.set(overall)

    # --- Finishing jobs ---

    def _finish(self, job: Job, state: str, message: Optional[str] = None):
        """
        The single terminal path of a job. Only the first caller does anything.
        """
        if not job.claim_finish():
            return
        with job.lock:
            try:
                job.transition(state)
            except InvalidStateTransition as e:
                logger.warning(str(e))
            job.process = None
            job.error_message = message
        try:
            job.close_log()
        except OSError as e:
            logger.warning(f"[{job.job_id}] Could not close log {job.log_path}: {e}")
        with self._lock:
            self._jobs.pop(job.job_id, None)
        self.sleep_inhibitor.release()

        if state == JOB_STATUS_COMPLETED:
            logger.success(f"[{job.job_id}] Completed: {job.output_path}")
            self.progress_indicator.clear()
            self.events.complete(job.job_id, job.output_path)
        elif state == JOB_STATUS_FAILED:
            self.progress_indicator.set_error()
            self.events.error(job.job_id, message or "Encoding failed")
        else:
            logger.info(f"[{job.job_id}] Canceled")

    # --- Cancellation ---

    def cancel_encoding(self, job_id: Optional[str] = None):
        """
        Cancels one job, or every registered job when `job_id` is None.

        Unknown ids are ignored. Resources are released immediately; ffmpeg is
        signalled but not waited for.
        """
        with self._lock:
            if job_id is None:
                jobs = list(self._jobs.values())
            else:
                job = self._jobs.get(job_id)
                if job is None:
                    logger.debug(f"Cancel ignored: no running job '{job_id}'")
                    return
                jobs = [job]

        for job in jobs:
            with job.lock:
                job.mark_canceled()
                process = job.process
            if process is not None:
                process.terminate()
            self._finish(job, JOB_STATUS_CANCELED)

    def shutdown(self, cancel: bool = True, wait: bool = True):
        """
        Refuses new jobs, optionally cancels the running ones, then stops the
        thread pool. Jobs that were being accepted concurrently end as canceled.
        """
        with self._lock:
            self._closed = True
        if cancel:
            self.cancel_encoding()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
