"""
aggregation/__init__.py

Public API for the aggregation sub-package.
"""

from .aggregator import Aggregator
from .models import Decision, Emit, Group, PassThrough, Suppress
from .worker import AggregatorWorker

__all__ = [
    "Aggregator",
    "AggregatorWorker",
    "Decision",
    "Emit",
    "Group",
    "PassThrough",
    "Suppress",
]
