"""Tool management, file watching, live-reload messages and version checks for a build pipeline."""

__version__ = "0.1.0"