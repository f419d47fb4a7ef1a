"""Service layer – keep-alive self-pings for idle-suspending hosts.

Some platforms (Render's free tier, for one) put a service to sleep after
~15 minutes without inbound traffic.  When running on such a platform the
scheduler requests the service's own public URL: once shortly after start,
then on a fixed period below the suspend threshold.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse

import httpx

from src.tmserve.config import LOCAL_HOSTS

logger = logging.getLogger(__name__)

INITIAL_DELAY = 60.0
INTERVAL = 14 * 60.0


def is_local_url(url: str | None) -> bool:
    """``True`` when *url* is unusable (missing or malformed) or points at this machine."""
    if not url:
        return True
    try:
        host = urlparse(url if "://" in url else f"http://{url}").hostname
    except ValueError as exc:
        logger.warning("Keep-alive ignoring malformed public URL %r: %s", url, exc)
        return True
    if not host or host.lower() in LOCAL_HOSTS:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.is_loopback or address.is_unspecified


class KeepAliveScheduler:
    def __init__(
        self,
        public_url: str | None,
        enabled: bool,
        initial_delay: float = INITIAL_DELAY,
        interval: float = INTERVAL,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.public_url = public_url
        self.enabled = enabled
        self.initial_delay = initial_delay
        self.interval = interval
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=30.0))
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> KeepAliveScheduler:
        return cls(
            public_url=settings.public_url,
            enabled=settings.keepalive_enabled,
            initial_delay=settings.keepalive_initial_delay,
            interval=settings.keepalive_interval,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Create the ping task if this deployment needs one."""
        if not self.enabled:
            logger.debug("Keep-alive disabled: no hosted platform marker.")
            return False
        if is_local_url(self.public_url):
            logger.info("Keep-alive skipped: public URL %r is local.", self.public_url)
            return False
        if self.running:
            return True

        self._task = asyncio.create_task(self._run(), name="keepalive")
        logger.info(
            "⏰ Keep-alive scheduled for %s (first in %ss, then every %ss).",
            self.public_url, self.initial_delay, self.interval,
        )
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        await self._sleep(self.initial_delay)
        while True:
            await self.ping()
            await self._sleep(self.interval)

    async def ping(self) -> int | None:
        """Request the public URL once; returns the status code, if any."""
        try:
            async with self._client_factory() as client:
                response = await client.get(str(self.public_url))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Keep-alive ping to %s failed: %s", self.public_url, exc)
            return None
        logger.info("Keep-alive ping to %s → %s", self.public_url, response.status_code)
        return response.status_code
