"""
This module provides the Modules class to locate and verify the external tools
the codec compatibility pipeline runs, namely ffmpeg and ffprobe.
"""
import subprocess
import sys

from loguru import logger

from ..config.common import MODULE_PATH


class Modules:
    """
    A utility class to handle operations related to external modules like FFmpeg.

    It reads the tool directory from the user's `config.user.yaml` file and
    falls back to the system's PATH if no directory is configured.
    """

    @staticmethod
    def _get_tool_path(tool: str) -> str:
        """
        Determines the command or absolute path to use for `tool`.

        The configured `ffmpeg_dir` wins when it holds the executable; otherwise
        the bare tool name is returned so the system PATH is used.
        """
        exe_name = f"{tool}.exe" if sys.platform == "win32" else tool

        if MODULE_PATH and MODULE_PATH.is_dir():
            configured_path = MODULE_PATH / exe_name
            if configured_path.is_file():
                return str(configured_path)
            logger.warning(
                f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH."
            )
        return tool

    @staticmethod
    def get_ffmpeg_path() -> str:
        return Modules._get_tool_path("ffmpeg")

    @staticmethod
    def get_ffprobe_path() -> str:
        return Modules._get_tool_path("ffprobe")

    @staticmethod
    def verify_ffmpeg() -> bool:
        """
        Verifies that FFmpeg is installed, accessible, and can be executed.

        Runs `ffmpeg -version` and logs the first line of its output on success.
        A missing FFmpeg is not fatal for DivePlay: files are then handed to the
        renderer untouched.

        Returns:
            True when `ffmpeg -version` succeeded.
        """
        ffmpeg_cmd = Modules.get_ffmpeg_path()

        try:
            result = subprocess.run(
                [ffmpeg_cmd, "-version"],
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
            )
            version_output_lines = result.stdout.splitlines()
            logger.info(f"FFmpeg version check successful: {version_output_lines[0] if version_output_lines else 'unknown'}")
            return True
        except subprocess.CalledProcessError as e:
            logger.error(f"FFmpeg version command failed (return code {e.returncode}):\n{e.stderr}")
        except FileNotFoundError:
            logger.warning(
                "FFmpeg command not found. Files with unsupported encodings will be played as-is.\n"
                "Add FFmpeg to your system's PATH or set 'paths.ffmpeg_dir' in 'config.user.yaml'."
            )
        except Exception as e:
            logger.error(f"An unexpected error occurred while checking FFmpeg version: {e}")
        return False
