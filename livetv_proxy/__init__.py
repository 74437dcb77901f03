"""Live-TV HLS streaming proxy."""

__version__ = "0.1.0"
