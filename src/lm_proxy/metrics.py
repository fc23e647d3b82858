"""Best-effort token-count reporting to an external metrics endpoint."""

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)

METRIC_NAME = "token-count"


class MetricsReporter:
    """Posts usage totals without holding up the response that produced them.

    Each report runs as its own task. Nobody awaits it; failures end up in
    the log and nowhere else. Without a URL, report() does nothing.
    """

    def __init__(self, client: httpx.AsyncClient, url: str | None):
        self.client = client
        self.url = url
        # Strong refs so the event loop doesn't drop in-flight posts
        self._tasks: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.url is not None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def report(self, total_tokens: int) -> asyncio.Task | None:
        """Schedule a post of total_tokens and return immediately."""
        if self.url is None:
            return None

        task = asyncio.create_task(self._post(self.url, total_tokens))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _post(self, url: str, total_tokens: int) -> None:
        payload = {"name": METRIC_NAME, "value": total_tokens}
        try:
            response = await self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to post metrics: {e}")
            return

        # Redirects count as delivered, only 4xx/5xx are failures
        if response.is_error:
            logger.warning(f"Failed to post metrics: HTTP {response.status_code} from {url}")
