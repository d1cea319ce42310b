"""
Factory for creating report clients.
"""

from ..config.models import ServiceConfig
from .report_client import ReportClient, BaseReportClient


def create_report_client(config: ServiceConfig) -> BaseReportClient:
    """
    Create a report client from service configuration.

    Args:
        config: Service configuration

    Returns:
        Configured client instance (not yet opened)
    """
    return ReportClient(config.credentials, config.endpoints, config.reporting)
