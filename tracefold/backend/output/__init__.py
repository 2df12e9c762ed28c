"""
output/__init__.py

Public API for the output sub-package.
"""

from .sink import JsonLinesSink, sink_consumer

__all__ = ["JsonLinesSink", "sink_consumer"]
