"""
Common configuration settings used throughout the application.

This module contains globally shared configuration settings and constants that are
used across the whole encode-all package. It centralizes parameters for logging,
external tool locations, batch behavior, and job states. It also handles the
loading of user-specific configurations from an external YAML file, allowing for
easy customization without modifying the source code.
"""
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

# --- User-Defined Configuration ---
# This block loads user-specific settings from a 'config.user.yaml' file located
# at the project root. Every key is optional.
#
#   paths:
#     ffmpeg_dir: C:/tools/ffmpeg/bin
#   batch:
#     max_workers: 2
#     max_retries: 1
#   logging:
#     level: DEBUG

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


def load_user_config(config_path: Path = USER_CONFIG_PATH) -> dict:
    """
    Reads the user YAML configuration.

    Returns an empty dict when the file is absent, empty, or cannot be parsed.
    A parse failure is logged as a warning and never aborts start-up.
    """
    if not config_path.is_file():
        logger.debug(f"User config '{config_path}' not found. Using built-in defaults.")
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load or parse '{config_path}': {e}")
        return {}
    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring '{config_path}': top level must be a mapping.")
        return {}
    return loaded


_user_config = load_user_config()
_paths_config = _user_config.get("paths") or {}
_batch_config = _user_config.get("batch") or {}
_logging_config = _user_config.get("logging") or {}

# The directory containing the ffmpeg and ffprobe executables. If not provided,
# the bare executable names are used and resolved through the system PATH.
MODULE_PATH: Optional[Path] = (
    Path(_paths_config["ffmpeg_dir"]) if _paths_config.get("ffmpeg_dir") else None
)


# --- Logging Configuration ---

# The format string for the Loguru logger.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{thread.name} - <level>{message}</level>"
)

DEFAULT_LOG_LEVEL: str = str(_logging_config.get("level", "INFO")).upper()

# Per-job ffmpeg log files.
JOB_LOG_SUFFIX = ".log"
JOB_LOG_FOLDER_PREFIX = "logs_"


# --- Batch Settings ---

# How many jobs the batch runner keeps in flight at once.
DEFAULT_MAX_WORKERS: int = int(_batch_config.get("max_workers", 1))

# How many times a job that ended in an error is re-submitted by the batch runner.
MAX_ENCODE_RETRIES: int = int(_batch_config.get("max_retries", 0))

# Size of the chunks read from ffmpeg's stderr pipe.
STDERR_CHUNK_SIZE = 4096


# --- Job Status Constants ---
# These constants represent the states an encoding job moves through while it
# is owned by the supervisor.

JOB_STATUS_CREATED = "created"  # Accepted, log opened, sleep inhibition held.
JOB_STATUS_PASS1 = "pass1"  # First (or only) ffmpeg invocation is running.
JOB_STATUS_PASS2 = "pass2"  # Second pass of a two-pass encode is running.
JOB_STATUS_COMPLETED = "completed"  # ffmpeg exited with 0 for every pass.
JOB_STATUS_FAILED = "failed"  # Spawn failure, non-zero exit or filesystem error.
JOB_STATUS_CANCELED = "canceled"  # Explicitly canceled by the caller.
