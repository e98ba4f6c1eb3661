"""
Configuration Package for DivePlay.

This package centralizes the static configuration of the media-session engine.
Keeping these values out of the session and codec logic makes it easy to
adjust timings, recognized file types and transcoding parameters without
touching the core code.

This package includes settings for:
- Logging format and user-overridable paths (loaded from `config.user.yaml`).
- Progress persistence timings and the resume countdown.
- Recognized video, audio and subtitle extensions.
- Playback rates, aspect-ratio modes and codec compatibility rules.
"""
