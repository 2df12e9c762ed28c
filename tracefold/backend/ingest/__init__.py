"""
ingest/__init__.py

Public API for the ingest sub-package.
"""

from .parser import parse_line
from .tailer import LogTailer

__all__ = ["LogTailer", "parse_line"]
