"""
Utilities Package for DivePlay.

Helpers shared across the engine that belong to no single component.

Modules:
    - ffmpeg_utils.py: Runs FFmpeg child processes and parses their
      `-progress` output into percentages.
    - format_utils.py: Human-readable times and sizes, extension matching and
      the forward-slash relative paths used as item identities.
    - module_check.py: Locates and verifies the ffmpeg/ffprobe executables.
"""
