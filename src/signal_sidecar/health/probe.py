"""
Probe executor for signal-sidecar.
Bounded-time HTTP and status-file checks that never raise.
"""
import asyncio
import logging
from typing import Optional

import aiohttp

from signal_sidecar.health.models import ProbeOutcome

logger = logging.getLogger(__name__)

# Network-level failures that are worth another attempt
RETRYABLE_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class HttpProbe:
    def __init__(self, timeout=3.0, retries=2, retry_delay=0.1):
        """
        timeout: Seconds per probe attempt.
        retries: Extra attempts after a network-level failure.
        retry_delay: Seconds to pause between attempts.
        """
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay

    async def probe(self, url: str, method: str = "GET",
                    session: Optional[aiohttp.ClientSession] = None) -> ProbeOutcome:
        """Probe a single URL, retrying only on network-level failures.

        Any HTTP response, whatever its status code, counts as reachable and
        is returned immediately.

        Args:
            url: Target URL
            method: HTTP method
            session: Optional shared client session

        Returns:
            Outcome of the last attempt
        """
        timed_out = False
        for attempt in range(self.retries + 1):
            try:
                return await self._request(url, method, session)
            except asyncio.TimeoutError:
                timed_out = True
                logger.debug(f"probe of {url} timed out (attempt {attempt + 1})")
            except RETRYABLE_ERRORS as e:
                timed_out = False
                logger.debug(f"probe of {url} failed (attempt {attempt + 1}): {e!r}")
            except Exception as e:
                logger.warning(f"probe of {url} failed: {e!r}")
                return ProbeOutcome.unreachable()
            if attempt < self.retries:
                await asyncio.sleep(self.retry_delay)
        return ProbeOutcome.unreachable(timed_out=timed_out)

    async def _request(self, url, method, session):
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        if session is None:
            async with aiohttp.ClientSession(timeout=timeout) as own_session:
                return await self._send(own_session, url, method, timeout)
        return await self._send(session, url, method, timeout)

    @staticmethod
    async def _send(session, url, method, timeout):
        async with session.request(method, url, timeout=timeout) as response:
            body = await response.text(errors="replace")
            return ProbeOutcome(
                reachable=True,
                timed_out=False,
                status_code=response.status,
                body=body,
            )


def read_status_file(path: str) -> ProbeOutcome:
    """Read the node status file; contents are trimmed."""
    logger.debug(f"status file check of {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            contents = f.read().strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"status file read failed for {path}: {e}")
        return ProbeOutcome.unreachable()
    return ProbeOutcome(reachable=True, timed_out=False, status_code=0, body=contents)
