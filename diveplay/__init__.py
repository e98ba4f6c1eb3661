"""
DivePlay: a local media-session engine.

Open a folder, get an ordered catalog of its videos and audio files, play them
through a pluggable renderer, and pick up where you left off next time. Files
the renderer cannot decode are transcoded on the fly with FFmpeg.

The usual entry point is `diveplay.services.session_service.PlaybackSession`.
"""

__version__ = "0.1.0"
