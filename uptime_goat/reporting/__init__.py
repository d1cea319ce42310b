"""
Endpoint directory and report fan-out.
"""

from .endpoints import EndpointDirectory
from .dispatcher import ReportDispatcher

__all__ = [
    "EndpointDirectory",
    "ReportDispatcher"
]
