"""
Configuration settings related to media files and codec compatibility.

This module defines the recognized file extensions for the catalog scan, the
discrete playback settings a session accepts, and the rules the codec
compatibility pipeline uses to decide whether a file must be re-encoded.
"""
from .common import (
    USER_AUDIO_EXTENSIONS,
    USER_SUBTITLE_EXTENSIONS,
    USER_VIDEO_EXTENSIONS,
)

# ======================================================================================
# File Identification
# ======================================================================================

_DEFAULT_VIDEO_EXTENSIONS = (".mp4", ".mkv", ".webm", ".avi", ".mov", ".m4v")
_DEFAULT_AUDIO_EXTENSIONS = (".mp3", ".flac", ".ogg", ".wav", ".aac", ".m4a")
_DEFAULT_SUBTITLE_EXTENSIONS = (".srt", ".vtt", ".sub")

VIDEO_EXTENSIONS = USER_VIDEO_EXTENSIONS or _DEFAULT_VIDEO_EXTENSIONS
AUDIO_EXTENSIONS = USER_AUDIO_EXTENSIONS or _DEFAULT_AUDIO_EXTENSIONS
SUBTITLE_EXTENSIONS = USER_SUBTITLE_EXTENSIONS or _DEFAULT_SUBTITLE_EXTENSIONS


# ======================================================================================
# Playback Settings
# ======================================================================================

PLAYBACK_RATES = (0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0)
DEFAULT_PLAYBACK_RATE = 1.0
DEFAULT_VOLUME = 1.0
DEFAULT_SUBTITLE_FONT_SIZE = 18
MIN_SUBTITLE_FONT_SIZE = 8
MAX_SUBTITLE_FONT_SIZE = 72


# ======================================================================================
# Codec Compatibility
# ======================================================================================

# Containers that can carry encodings the native renderer cannot decode.
# Anything else goes straight to the renderer.
TRANSCODE_SCAN_EXTENSIONS = (".mkv", ".mp4", ".m4v", ".avi", ".mov")

# Video codecs (ffprobe codec_name) that must be re-encoded.
INCOMPATIBLE_VIDEO_CODECS = ("hevc", "h265")

# Audio codecs (ffprobe codec_name) that must be re-encoded.
INCOMPATIBLE_AUDIO_CODECS = ("ac3", "a52", "eac3", "dts")

# DTS profiles the renderer handles, so they are left alone.
COMPATIBLE_DTS_PROFILES = ("dts-hd ma",)

# Re-encoding parameters. Speed over compression: this is interactive playback.
VIDEO_TRANSCODE_ENCODER = "libx264"
VIDEO_TRANSCODE_PRESET = "ultrafast"
VIDEO_TRANSCODE_CRF = 23
AUDIO_TRANSCODE_ENCODER = "aac"
AUDIO_TRANSCODE_BITRATE = "192k"
TRANSCODE_OUTPUT_SUFFIX = ".mp4"
