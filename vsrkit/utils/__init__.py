"""Utility functions for vsrkit."""

from .logging import LogCapture, setup_logging

__all__ = ["LogCapture", "setup_logging"]
