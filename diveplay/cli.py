"""
Command-Line Interface (CLI) setup for DivePlay.

This module uses Python's `argparse` to define and parse the arguments of the
headless runner in `main.py`.
"""
import argparse
from pathlib import Path

RESUME_MODES = ("ask", "auto", "never")


def get_args(argv=None) -> argparse.Namespace:
    """
    Parses command-line arguments for the DivePlay runner.

    Args:
        argv: Argument list to parse instead of `sys.argv[1:]`.

    Returns:
        argparse.Namespace: The parsed arguments. `temp_work_dir`,
                            `error_log_dir` and `target_dir` are resolved
                            `Path` objects (or None).
    """
    parser = argparse.ArgumentParser(description="DivePlay local media-session engine.")
    parser.add_argument(
        "--target-dir", type=str, default=None,
        help="Folder to open. Defaults to the current working directory."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level."
    )
    parser.add_argument(
        "--debug-mode", action="store_true", help="Shortcut for --log-level DEBUG."
    )
    parser.add_argument(
        "--no-transcode", action="store_true",
        help="Hand every file to the renderer as-is, even if it may not decode."
    )
    parser.add_argument(
        "--temp-work-dir", type=str, default=None,
        help="Directory for transcoding scratch files, e.g. on a RAM disk."
    )
    parser.add_argument(
        "--error-log-dir", type=str, default=None,
        help="Directory for the transcode error and success logs. No file logs when omitted."
    )
    parser.add_argument(
        "--check-file", type=str, default=None,
        help="Run the codec compatibility check on one file and exit."
    )
    parser.add_argument(
        "--resume", type=str, default="ask", choices=RESUME_MODES,
        help="How to answer a resume offer: wait for the countdown (ask), "
             "resume at once (auto) or dismiss it (never)."
    )

    args = parser.parse_args(argv)

    if args.temp_work_dir:
        temp_dir_path = Path(args.temp_work_dir)
        if not temp_dir_path.is_dir():
            try:
                temp_dir_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                parser.error(
                    f"The temporary working directory '{args.temp_work_dir}' does not exist "
                    f"and could not be created: {e}"
                )
        args.temp_work_dir = temp_dir_path.resolve()

    if args.error_log_dir:
        args.error_log_dir = Path(args.error_log_dir).resolve()

    if args.target_dir:
        args.target_dir = Path(args.target_dir).resolve()
        if not args.target_dir.is_dir():
            parser.error(f"Target directory '{args.target_dir}' is not a directory.")

    if args.check_file:
        args.check_file = Path(args.check_file).resolve()
        if not args.check_file.is_file():
            parser.error(f"File to check '{args.check_file}' does not exist.")

    return args
