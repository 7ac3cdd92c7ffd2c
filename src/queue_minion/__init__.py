"""Queue Minion - background media queue daemon driving mpv."""

__version__ = "0.1.0"
