"""Batch file processing through external AI coding-assistant CLIs."""

__version__ = "0.1.0"
