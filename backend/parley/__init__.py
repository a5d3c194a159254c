"""Parley: real-time 1:1 chat backend with presence tracking."""

__version__ = "0.1.0"
