"""Periodic keep-alive pings to the extraction service."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class LivenessProber:
    """Keeps the remote service warm with a fixed-interval GET.

    Uses APScheduler's asyncio scheduler. The outcome of a ping is only
    logged; it never affects acquisition state. Once stopped, a prober
    cannot be started again.
    """

    JOB_ID = "liveness_ping"

    def __init__(
        self,
        health_url: str,
        interval: float = 10.0,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the prober for the given health-check URL.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.interval import IntervalTrigger
        except ImportError:
            raise ImportError(
                "apscheduler is required: pip install 'apscheduler<4'"
            )

        self._health_url = health_url
        self._interval = interval
        self._timeout = timeout
        self._client = client
        self._AsyncIOScheduler = AsyncIOScheduler
        self._scheduler = None
        self._IntervalTrigger = IntervalTrigger
        self._running = False
        self._stopped = False
        self.ping_count = 0
        self.failure_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> None:
        """Start the ping timer. Must be called from a running event loop."""
        if self._stopped:
            raise RuntimeError("LivenessProber cannot be restarted after stop()")
        if self._running:
            return

        self._scheduler = self._AsyncIOScheduler(
            event_loop=asyncio.get_running_loop()
        )
        self._scheduler.add_job(
            self.ping,
            trigger=self._IntervalTrigger(seconds=self._interval),
            id=self.JOB_ID,
            name="Service keep-alive",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Liveness prober started: %s every %ss",
            self._health_url,
            self._interval,
        )

    def stop(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Liveness prober stopped")

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        if self._scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in self._scheduler.get_jobs()
        ]

    async def ping(self) -> bool:
        """Issue one keep-alive request. Returns whether it got a response."""
        self.ping_count += 1
        try:
            if self._client is not None:
                response = await self._client.get(
                    self._health_url, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._health_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.failure_count += 1
            logger.warning("Liveness ping failed: %s", e)
            return False

        logger.debug("pinging: HTTP %d", response.status_code)
        return True
