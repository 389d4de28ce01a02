"""Detect, download and relay videos from public hosting sites."""

__version__ = "1.0.0"
