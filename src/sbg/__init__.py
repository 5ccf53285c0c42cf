"""Storyboard generator: turn a prose script into persisted, versioned scenes."""

__version__ = "0.1.0"
