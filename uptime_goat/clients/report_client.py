"""
HTTP client for the endpoint directory source and the report exchange.
"""

import asyncio
import json
import logging
import math
import time
from abc import ABC, abstractmethod
from types import SimpleNamespace
from typing import Any, Dict, Optional, Tuple, Union

import aiohttp

from ..config.models import CredentialsConfig, EndpointsConfig, ReportingConfig
from ..models.core import ReportOutcome
from ..utils.error_handling import EndpointFetchError, ReportExchangeError, describe_error


logger = logging.getLogger(__name__)


def parse_endpoints(body: str) -> Dict[str, str]:
    """
    Parse the endpoint directory document.

    The document is a JSON object mapping target name to URL string.

    Raises:
        EndpointFetchError: If the body is not such an object
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise EndpointFetchError(f"Failed to parse endpoints JSON: {e}") from e

    if not isinstance(data, dict):
        raise EndpointFetchError("Invalid endpoints format received")

    for name, url in data.items():
        if not isinstance(url, str) or not url:
            raise EndpointFetchError(f"Invalid URL for endpoint '{name}': {url!r}")

    return data


def parse_report_response(body: str) -> Tuple[str, Union[int, float]]:
    """
    Parse a report response body into (miner name, deviation in ms).

    The deviation is kept as sent. A missing or null deviation reads as 0;
    anything non-numeric or non-finite is malformed.

    Raises:
        ValueError: If the body is malformed
    """
    try:
        data = json.loads(body)
    except ValueError as e:
        raise ValueError(f"Malformed JSON response: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Response is not a JSON object")

    miner_name = data.get("name") or "Unknown"

    deviation = data.get("ms_deviation")
    if deviation is None:
        deviation = 0
    if isinstance(deviation, bool) or not isinstance(deviation, (int, float)):
        raise ValueError(f"Non-numeric deviation: {deviation!r}")
    if isinstance(deviation, float) and not math.isfinite(deviation):
        raise ValueError(f"Non-finite deviation: {deviation!r}")

    return str(miner_name), deviation


class BaseReportClient(ABC):
    """Abstract base class for report clients."""

    @abstractmethod
    async def fetch_endpoints(self) -> Dict[str, str]:
        """Fetch the current target name -> URL mapping."""
        pass

    @abstractmethod
    async def send_report(self, target_name: str, url: str) -> ReportOutcome:
        """Perform one report exchange; never raises for target failures."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        pass


class ReportClient(BaseReportClient):
    """
    aiohttp-based client.

    Each report opens a fresh connection so that the measured connect
    time ("ping") reflects the network path to the target.
    """

    def __init__(
        self,
        credentials: CredentialsConfig,
        endpoints_config: EndpointsConfig,
        reporting_config: ReportingConfig
    ):
        """
        Initialize the client with configuration.

        Args:
            credentials: Report credentials
            endpoints_config: Endpoint directory source settings
            reporting_config: Report exchange settings
        """
        self.credentials = credentials
        self.endpoints_config = endpoints_config
        self.reporting_config = reporting_config
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(force_close=True),
                headers={"User-Agent": self.reporting_config.user_agent},
                trace_configs=[self._create_trace_config()]
            )
        return self._session

    @staticmethod
    def _create_trace_config() -> aiohttp.TraceConfig:
        """Trace hooks that record when the TCP connection is established."""

        async def on_request_start(session, trace_config_ctx: SimpleNamespace, params):
            timing = trace_config_ctx.trace_request_ctx
            if isinstance(timing, dict):
                timing.setdefault("start", time.monotonic())

        async def on_connection_create_end(session, trace_config_ctx: SimpleNamespace, params):
            timing = trace_config_ctx.trace_request_ctx
            if isinstance(timing, dict) and "start" in timing:
                timing["connected"] = time.monotonic()

        trace_config = aiohttp.TraceConfig()
        trace_config.on_request_start.append(on_request_start)
        trace_config.on_connection_create_end.append(on_connection_create_end)
        return trace_config

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    @property
    def closed(self) -> bool:
        return self._session is None or self._session.closed

    def _build_payload(self) -> Dict[str, Any]:
        return {
            "goat_id": self.credentials.goat_id,
            "goat_key": self.credentials.goat_key
        }

    async def fetch_endpoints(self) -> Dict[str, str]:
        """
        Fetch and parse the endpoint mapping.

        Returns:
            Mapping of target name to URL

        Raises:
            EndpointFetchError: On transport error, bad status or bad content
        """
        session = self._get_session()
        url = self.endpoints_config.source_url
        start_time = time.monotonic()

        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.endpoints_config.timeout)
            ) as response:
                if response.status != 200:
                    raise EndpointFetchError(f"Request failed with status {response.status}")
                body = await response.text()
        except asyncio.TimeoutError as e:
            raise EndpointFetchError("Request timeout") from e
        except aiohttp.ClientError as e:
            raise EndpointFetchError(describe_error(e)) from e

        endpoints = parse_endpoints(body)

        fetch_time = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Fetched endpoints in {fetch_time}ms:\n{json.dumps(endpoints, indent=2)}")
        return endpoints

    async def send_report(self, target_name: str, url: str) -> ReportOutcome:
        """
        Send one report to one target.

        Args:
            target_name: Name of the target
            url: Report URL of the target

        Returns:
            ReportOutcome; failures are reported, not raised
        """
        session = self._get_session()
        timing: Dict[str, float] = {"start": time.monotonic()}

        try:
            async with session.post(
                url,
                json=self._build_payload(),
                timeout=aiohttp.ClientTimeout(total=self.reporting_config.request_timeout),
                trace_request_ctx=timing
            ) as response:
                body = await response.text()
                if response.status != 200:
                    raise ReportExchangeError(target_name, f"Status {response.status}")

            try:
                miner_name, deviation_ms = parse_report_response(body)
            except ValueError as e:
                raise ReportExchangeError(target_name, str(e)) from e

        except ReportExchangeError as e:
            return ReportOutcome.failed(target_name, str(e))
        except asyncio.TimeoutError:
            return ReportOutcome.failed(target_name, "Request timeout")
        except (aiohttp.ClientError, OSError, ValueError) as e:
            return ReportOutcome.failed(target_name, describe_error(e))

        finished = time.monotonic()
        ping_end = timing.get("connected", finished)
        ping_ms = int((ping_end - timing["start"]) * 1000)

        return ReportOutcome(
            target_name=target_name,
            success=True,
            deviation_ms=deviation_ms,
            miner_name=miner_name,
            ping_ms=ping_ms
        )
