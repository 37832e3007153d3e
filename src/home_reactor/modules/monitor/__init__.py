"""
Monitor module for home-reactor.

Logs bus traffic for diagnostics.
"""

from .module import EventLogger

__all__ = ["EventLogger"]
