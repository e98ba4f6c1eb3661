"""
Services Package for DivePlay.

This package contains the service layer: the classes that carry out the
engine's work on top of the domain models and the configuration.

- **Playback Session (`PlaybackSession`):**
  The state machine for one open folder. It turns user commands and render
  callbacks into phase changes, loads items on a worker thread and decides
  when progress is saved.

- **Catalog Service (`CatalogBuilder`):**
  Scans a folder into an ordered catalog of media items with their subtitles.

- **Codec Service (`CodecCompatibilityPipeline`, `FFmpegBackend`):**
  Probes media files and re-encodes the streams the renderer cannot decode.

- **Persistence and Resume (`ProgressStore`, `ProgressWriter`, `ResumeOffer`):**
  Save where playback was and offer to continue from there next time.

- **Storage and Render Collaborators:**
  The abstract filesystem, permission, folder-memory and renderer interfaces
  the session talks to, with local and headless implementations.

- **Logging Service (`ErrorLog`, `TranscodeLog`):**
  File logs of transcode failures (plain text) and successes (YAML), separate
  from the console logging.
"""
