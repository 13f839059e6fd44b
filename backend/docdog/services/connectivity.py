"""Connectivity probes consulted before network work.

A failed probe lets callers answer "no connection" immediately instead of
waiting for a doomed upload to time out.
"""
import asyncio
import logging
from typing import Protocol

import aiohttp

logger = logging.getLogger(__name__)


class ConnectivityProbe(Protocol):
    async def is_available(self) -> bool:
        ...


class AlwaysAvailableProbe:
    """Probe for deployments where the stores are local or always reachable."""

    async def is_available(self) -> bool:
        return True


class HttpConnectivityProbe:
    """Treats any HTTP answer from ``url`` as "online"."""

    def __init__(self, url: str, timeout: float = 3.0):
        self.url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def is_available(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.head(self.url, allow_redirects=True):
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Connectivity check against {self.url} failed: {e}")
            return False


def create_probe(url: str, timeout: float = 3.0) -> ConnectivityProbe:
    if not url:
        return AlwaysAvailableProbe()
    return HttpConnectivityProbe(url, timeout=timeout)
