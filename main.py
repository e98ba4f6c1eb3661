"""
Main entry point for the DivePlay headless runner.

This script opens a folder the way the player's folder picker would: it scans
the catalog, reports what it found, reads any saved progress and answers the
resume offer according to `--resume`. With `--check-file` it instead runs the
codec compatibility check on a single file and reports whether it had to be
transcoded.
"""

import sys
import threading
from pathlib import Path

from loguru import logger

from diveplay.cli import get_args
from diveplay.config.common import LOGGER_FORMAT, TEMP_WORK_DIR, TRANSCODING_ENABLED
from diveplay.domain import events
from diveplay.domain.session import Phase
from diveplay.services.codec_service import CodecCompatibilityPipeline
from diveplay.services.session_service import PlaybackSession
from diveplay.utils.format_utils import format_time
from diveplay.utils.module_check import Modules

logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)

_SETTLED_PHASES = (Phase.PLAYING, Phase.PAUSED, Phase.ERROR, Phase.IDLE)


def log_event(event: events.SessionEvent):
    if event.name == events.SCAN_DEGRADED:
        for failed_dir in event.data["failed_dirs"]:
            logger.warning(f"Not scanned (unreadable): {failed_dir}")
    elif event.name == events.TRANSCODE_PROGRESS:
        logger.info(f"Transcoding: {event.data['percent']}%")
    elif event.name in (events.MEDIA_UNPLAYABLE, events.PERMISSION_REVOKED, events.PERSISTENCE_FAILED):
        logger.error(f"{event.name}: {event.data.get('error', '')}")
    else:
        logger.debug(f"Event {event.name}")


def check_file(pipeline: CodecCompatibilityPipeline, path):
    source = pipeline.ensure_playable(path, on_progress=lambda p: logger.info(f"Transcoding: {p}%"))
    if source.was_transcoded:
        logger.success(f"{path.name} needed transcoding. Playable copy: {source.path}")
    else:
        logger.success(f"{path.name} plays as-is.")


def run_session(pipeline: CodecCompatibilityPipeline, target_dir, resume_mode: str):
    settled = threading.Event()

    def on_phase(event: events.SessionEvent):
        if event.name == events.PHASE_CHANGED and event.data["phase"] in _SETTLED_PHASES:
            settled.set()

    with PlaybackSession(pipeline=pipeline) as session:
        session.add_listener(log_event)
        offer = session.open_folder(target_dir)

        for index, item in enumerate(session.catalog):
            subtitles = f" [+{len(item.subtitles)} subtitle(s)]" if item.subtitles else ""
            logger.info(f"{index:>4}  {item.kind.value:<5}  {item.relative_path}{subtitles}")

        if offer is None:
            logger.info("No saved progress to resume.")
            return

        logger.info(
            f"Saved progress: '{offer.item.relative_path}' at {format_time(offer.position)}"
        )
        session.add_listener(on_phase)
        if resume_mode == "auto":
            offer.resume()
        elif resume_mode == "never":
            offer.dismiss()
            return
        else:
            logger.info(f"Resuming in {offer.remaining_seconds()}s (Ctrl+C to skip)...")
            try:
                offer.decision.wait()
            except KeyboardInterrupt:
                offer.dismiss()
                logger.warning("Resume skipped.")
                return

        if session.phase in (Phase.LOADING, Phase.TRANSCODING):
            settled.wait()
        state = session.state
        if state.current_item is not None:
            logger.info(
                f"Ready: '{state.current_item.relative_path}' at {format_time(state.position)} "
                f"({state.phase.value})"
            )


def main():
    """
    Runs DivePlay from the command line.

    1. Parses arguments and configures the logger.
    2. Checks that FFmpeg works, unless transcoding is off.
    3. Either checks a single file or opens the target folder as a session.
    """
    args = get_args()

    effective_log_level = "DEBUG" if args.debug_mode else args.log_level
    logger.remove()
    logger.add(sys.stderr, level=effective_log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    transcoding = TRANSCODING_ENABLED and not args.no_transcode
    if transcoding and not Modules.verify_ffmpeg():
        transcoding = False

    pipeline = CodecCompatibilityPipeline(
        enabled=transcoding,
        work_dir=args.temp_work_dir or TEMP_WORK_DIR,
        log_dir=args.error_log_dir,
    )

    if args.check_file:
        check_file(pipeline, args.check_file)
    else:
        target_dir = args.target_dir or Path.cwd().resolve()
        logger.info(f"Opening {target_dir}")
        run_session(pipeline, target_dir, args.resume)

    logger.success("DivePlay finished.")


if __name__ == "__main__":
    main()
