"""
This package contains the domain models of DivePlay.

The domain layer describes the media-session world independently of the
filesystem, ffmpeg and whatever UI drives the session.

Modules:
    exceptions.py: Custom exception types, one per failure the engine knows about.
    media.py: `MediaItem` and the catalog, scan results, probed stream
              descriptors and the `PlayableSource` handed to the renderer.
    session.py: `Settings`, transport `Phase`, the read-only `SessionState`
                snapshot and the `PersistedProgress` record with its JSON shape.
    events.py: Event names and the `SessionEvent` passed to UI listeners.
"""
