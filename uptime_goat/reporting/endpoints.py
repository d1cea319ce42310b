"""
Endpoint directory: the current target name -> URL mapping.
"""

import logging
from datetime import datetime
from typing import Optional

from uptime_goat.clients import BaseReportClient
from uptime_goat.models.core import EndpointSet
from uptime_goat.utils.error_handling import EndpointFetchError

logger = logging.getLogger(__name__)


class EndpointDirectory:
    """
    Holds the endpoint set in effect and refreshes it from the remote source.

    The set is replaced wholesale on a successful refresh and left untouched
    on failure, so a snapshot obtained from ``current()`` stays valid for a
    whole dispatch.
    """

    def __init__(self, client: BaseReportClient):
        self.client = client
        self._current = EndpointSet({})
        self._initialized = False
        self.last_refresh_at: Optional[datetime] = None
        self.last_refresh_error: Optional[str] = None
        self.refresh_failures = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    def current(self) -> EndpointSet:
        """Return the endpoint set in effect."""
        return self._current

    async def initialize(self) -> EndpointSet:
        """
        Perform the mandatory startup fetch.

        Raises:
            EndpointFetchError: If the fetch fails; callers treat this as fatal
        """
        endpoints = await self.client.fetch_endpoints()
        self._replace(endpoints)
        self._initialized = True
        return self._current

    async def refresh(self) -> Optional[EndpointSet]:
        """
        Fetch a replacement endpoint set.

        Returns:
            The new set, or None if the fetch failed and the previous set
            was kept
        """
        try:
            endpoints = await self.client.fetch_endpoints()
        except EndpointFetchError as e:
            self.refresh_failures += 1
            self.last_refresh_error = str(e)
            logger.error(f"Failed to fetch endpoints: {e}")
            return None

        self._replace(endpoints)
        return self._current

    def _replace(self, endpoints) -> None:
        self._current = EndpointSet(endpoints)
        self.last_refresh_at = self._current.fetched_at
        self.last_refresh_error = None
        logger.debug(f"Endpoint set replaced with {len(self._current)} targets")
