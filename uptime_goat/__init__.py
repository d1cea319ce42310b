"""
Uptime goat reporting service.

Reports liveness to a set of remote collection servers on a fixed,
drift-corrected cadence.
"""

__version__ = "0.1.0"
