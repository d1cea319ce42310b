"""
Concurrent report fan-out across all targets of one cycle.
"""

import asyncio
import logging
from typing import List, Optional

from uptime_goat.clients import BaseReportClient
from uptime_goat.models.core import EndpointSet, ReportOutcome
from uptime_goat.utils.error_handling import describe_error
from uptime_goat.utils.structured_logging import get_logger, LogContext

logger = logging.getLogger(__name__)

# Slack on top of the client's own request timeout before a report is abandoned
TIMEOUT_GRACE_SECONDS = 5.0


class ReportDispatcher:
    """
    Sends one report to every target concurrently and waits for all to settle.

    A failure of any single target is isolated into a failed ReportOutcome;
    nothing raised by an individual exchange crosses the ``dispatch`` call.
    """

    def __init__(self, client: BaseReportClient, request_timeout: Optional[float] = None):
        """
        Args:
            client: Client performing the individual exchanges
            request_timeout: Per-request timeout in seconds; a report still
                pending after this (plus a small grace) is abandoned
        """
        self.client = client
        self.request_timeout = request_timeout
        self._logger = get_logger(__name__, LogContext(operation="report"))

    async def dispatch(
        self,
        endpoints: EndpointSet,
        cycle_number: Optional[int] = None
    ) -> List[ReportOutcome]:
        """
        Report to every target in the given endpoint set.

        Args:
            endpoints: Snapshot of the endpoint set for this cycle
            cycle_number: Cycle number, used for log context

        Returns:
            One outcome per target, in endpoint set order
        """
        items = endpoints.items()
        if not items:
            return []

        width = max(len(name) for name, _ in items)
        logger.info("📯 Sending goat report")

        results = await asyncio.gather(
            *(self._report(name, url, width, cycle_number) for name, url in items),
            return_exceptions=True
        )

        outcomes = []
        for (name, _), result in zip(items, results):
            if isinstance(result, BaseException):
                outcomes.append(ReportOutcome.failed(name, describe_error(result)))
            else:
                outcomes.append(result)
        return outcomes

    async def _report(
        self,
        name: str,
        url: str,
        width: int,
        cycle_number: Optional[int]
    ) -> ReportOutcome:
        target_logger = self._logger.with_context(target_name=name, cycle_number=cycle_number)

        try:
            if self.request_timeout is not None:
                outcome = await asyncio.wait_for(
                    self.client.send_report(name, url),
                    timeout=self.request_timeout + TIMEOUT_GRACE_SECONDS
                )
            else:
                outcome = await self.client.send_report(name, url)
        except asyncio.TimeoutError:
            outcome = ReportOutcome.failed(name, "Request timeout")
        except Exception as e:
            outcome = ReportOutcome.failed(name, describe_error(e))

        if outcome.success:
            padding = " " * (width - len(name) + 5)
            target_logger.info(
                f"🐐 {outcome.miner_name} → {name}{padding}"
                f"deviation {outcome.deviation_ms:>4}ms   ping {outcome.ping_ms}ms",
                deviation_ms=outcome.deviation_ms,
                ping_ms=outcome.ping_ms
            )
        else:
            target_logger.error(f"Request failed for {name}: {outcome.error}")

        return outcome
