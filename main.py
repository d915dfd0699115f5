"""
Main entry point for encode-all.

This script initializes logging, parses command-line arguments, builds the
encoding requests and runs them through the encoding supervisor. Job events
are reported through the logger.
"""

import signal
import sys

from loguru import logger

from encode_all.cli import get_args, requests_from_args
from encode_all.config.common import LOGGER_FORMAT
from encode_all.domain.exceptions import InvalidRequestError, MediaProbeError
from encode_all.pipeline.batch import BatchEncoder
from encode_all.services.argument_builder import build_encoding_plan
from encode_all.services.events import (
    EVENT_COMPLETE,
    EVENT_ERROR,
    EVENT_LOG,
    EVENT_PROGRESS,
    EncodingEvents,
)
from encode_all.services.job_registry import EncodingSupervisor
from encode_all.services.power import LoggingProgressIndicator
from encode_all.utils.ffmpeg_utils import check_ffmpeg, check_nvenc_support, format_command, probe_media


# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are parsed.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


def subscribe_logging(events: EncodingEvents):
    """Mirrors job events to the console logger."""
    last_percent = {}

    def on_progress(event):
        if last_percent.get(event.job_id) != event.percent:
            last_percent[event.job_id] = event.percent
            logger.debug(f"[{event.job_id}] {event.percent}%")

    events.subscribe(EVENT_LOG, lambda event: logger.trace(f"[{event.job_id}] {event.text.rstrip()}"))
    events.subscribe(EVENT_PROGRESS, on_progress)
    events.subscribe(EVENT_COMPLETE, lambda event: logger.success(f"[{event.job_id}] Done: {event.output_path}"))
    events.subscribe(EVENT_ERROR, lambda event: logger.error(f"[{event.job_id}] {event.message}"))


def main(argv=None) -> int:
    """
    Runs the CLI.

    Steps:
    1. Parses arguments and re-configures the logger.
    2. With --check-ffmpeg, reports the toolchain and exits.
    3. Builds the requests, optionally probing every input with ffprobe.
    4. With --dry-run, prints the ffmpeg command lines and exits.
    5. Runs the batch and returns 0 only if every job completed.
    """
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    if args.check_ffmpeg:
        status = check_ffmpeg(args.ffmpeg_path)
        if not status.is_installed:
            logger.error(f"FFmpeg is not available: {status.error}")
            return 1
        logger.info(f"FFmpeg {status.version} at {status.path}")
        logger.info(f"NVENC encoders available: {'yes' if check_nvenc_support(status.path) else 'no'}")
        return 0

    try:
        requests = requests_from_args(args)
    except InvalidRequestError as e:
        logger.error(str(e))
        return 2

    if args.probe:
        usable = []
        for request in requests:
            try:
                info = probe_media(request.input_path)
            except MediaProbeError as e:
                logger.error(f"Skipping {request.input_path}: {e}")
                continue
            logger.info(
                f"{request.input_path.name}: {info.duration:.2f}s, "
                f"{info.video_streams} video / {info.audio_streams} audio / {info.subtitle_streams} subtitle stream(s)"
            )
            usable.append(request)
        requests = usable

    if args.dry_run:
        for request in requests:
            plan = build_encoding_plan(request)
            for advisory in plan.advisories:
                logger.warning(advisory)
            for pass_args in plan.passes:
                print(format_command([request.ffmpeg_path] + pass_args))
        return 0

    if not requests:
        logger.warning("No jobs to run.")
        return 1

    events = EncodingEvents()
    subscribe_logging(events)
    supervisor = EncodingSupervisor(events=events, progress_indicator=LoggingProgressIndicator())
    batch = BatchEncoder(supervisor, max_workers=args.processes, max_retries=args.retries)

    def handle_interrupt(signum, frame):
        logger.warning("Interrupted; canceling running jobs.")
        batch.cancel()

    signal.signal(signal.SIGINT, handle_interrupt)
    report = batch.run(requests)
    supervisor.shutdown(cancel=False)

    logger.info(f"{report.completed}/{len(report.results)} job(s) completed")
    return 0 if report.all_succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
