"""
Common configuration settings used throughout DivePlay.

This module contains globally shared settings: logging format, the progress
file name, persistence and resume timings, and user-specific overrides loaded
from an optional `config.user.yaml` file at the project root. The YAML file
lets users point at a custom FFmpeg directory, disable transcoding or change
the recognized file types without modifying the source code.
"""
from pathlib import Path

import yaml
from loguru import logger

# --- User-Defined Configuration ---
# Loaded from 'config.user.yaml' at the project root when present.

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"

# Directory containing the ffmpeg and ffprobe executables. None means the
# executables are expected on the system PATH.
MODULE_PATH: Path | None = None

# Directory used as the transcoding engine's working area. None means the
# system temporary directory.
TEMP_WORK_DIR: Path | None = None

# Master switch for the codec compatibility pipeline.
TRANSCODING_ENABLED: bool = True

# File-type preferences. Empty means "use the defaults from config.media".
USER_VIDEO_EXTENSIONS: tuple[str, ...] = ()
USER_AUDIO_EXTENSIONS: tuple[str, ...] = ()
USER_SUBTITLE_EXTENSIONS: tuple[str, ...] = ()


def _normalize_extensions(values) -> tuple[str, ...]:
    if not values:
        return ()
    return tuple(
        v.lower() if v.startswith(".") else f".{v.lower()}"
        for v in values
        if isinstance(v, str) and v.strip()
    )


if USER_CONFIG_PATH.is_file():
    try:
        with USER_CONFIG_PATH.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f) or {}

        paths_config = user_config.get("paths") or {}
        if paths_config.get("ffmpeg_dir"):
            MODULE_PATH = Path(paths_config["ffmpeg_dir"])
        if paths_config.get("temp_work_dir"):
            TEMP_WORK_DIR = Path(paths_config["temp_work_dir"])

        transcoding_config = user_config.get("transcoding") or {}
        TRANSCODING_ENABLED = bool(transcoding_config.get("enabled", True))

        file_types_config = user_config.get("file_types") or {}
        USER_VIDEO_EXTENSIONS = _normalize_extensions(file_types_config.get("video"))
        USER_AUDIO_EXTENSIONS = _normalize_extensions(file_types_config.get("audio"))
        USER_SUBTITLE_EXTENSIONS = _normalize_extensions(file_types_config.get("subtitles"))
    except Exception as e:
        logger.warning(f"Could not load or parse '{USER_CONFIG_PATH}': {e}")
else:
    logger.debug(f"User config '{USER_CONFIG_PATH}' not found. Using built-in defaults.")


# --- Logging Configuration ---

# The format string for the Loguru logger.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{thread.name} - <level>{message}</level>"
)


# --- Progress Persistence ---

# The well-known file, relative to the session root, holding the saved progress.
STATE_FILE_NAME = ".player-state.json"

# Minimum wall-clock seconds between two position-driven writes while playing.
POSITION_WRITE_THROTTLE_SECONDS = 5.0

# Delay before writing after a pause, so the just-reported position is captured.
PAUSE_SETTLE_SECONDS = 0.1

# Seconds the resume offer waits before resuming on its own.
RESUME_COUNTDOWN_SECONDS = 15


# --- Transport Ergonomics ---

# prev() restarts the current item instead of going back when past this point.
PREV_RESTART_THRESHOLD_SECONDS = 3.0

# Step used by seek_relative() from keyboard-style controls.
SEEK_STEP_SECONDS = 10.0

# Step used by step_volume().
VOLUME_STEP = 0.05


# --- Workers ---

# Threads used for byte-source acquisition and the codec pipeline.
LOAD_WORKERS = 2
