"""
HTTP clients for the endpoint source and report targets.
"""

from .report_client import ReportClient, BaseReportClient, parse_endpoints, parse_report_response
from .factory import create_report_client

__all__ = [
    "ReportClient",
    "BaseReportClient",
    "parse_endpoints",
    "parse_report_response",
    "create_report_client"
]
