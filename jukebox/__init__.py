"""
Jukebox Remote — keeps a local view of a remote jukebox engine in sync.

See ``jukebox.controller`` for the queue/playback state machine and
``jukebox.service`` for the long-running HTTP + WebSocket service.
"""

__version__ = "0.4.0"
