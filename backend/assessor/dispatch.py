"""Best-effort delivery of finished results to the external collector."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

import httpx

from .errors import DeliveryFailure
from .models import DeliveryStatus, ResultPayload


logger = logging.getLogger(__name__)


class ResultDispatcher:
	"""Posts result payloads to ``url``. Failures are logged, never raised or retried.

	``mode="background"`` detaches delivery from the caller and reports
	``scheduled``; ``mode="await"`` waits (bounded by the timeout) and reports
	``sent`` or ``failed``. Without a URL delivery is ``disabled``.
	"""

	def __init__(
		self,
		url: Optional[str],
		*,
		client: Optional[httpx.AsyncClient] = None,
		timeout_seconds: float = 10.0,
		mode: str = "background",
	) -> None:
		if mode not in ("background", "await"):
			raise ValueError(f"Unknown delivery mode: {mode}")
		self.url = url
		self.mode = mode
		self.timeout_seconds = timeout_seconds
		self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
		self._pending: Set[asyncio.Task] = set()

	@property
	def enabled(self) -> bool:
		return bool(self.url)

	async def dispatch(self, payload: ResultPayload) -> DeliveryStatus:
		if not self.enabled:
			return DeliveryStatus(status="disabled")
		if self.mode == "background":
			task = asyncio.create_task(self._deliver_logged(payload))
			self._pending.add(task)
			task.add_done_callback(self._task_done)
			return DeliveryStatus(status="scheduled")
		return await self._deliver_logged(payload)

	def _task_done(self, task: asyncio.Task) -> None:
		self._pending.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error("background result delivery crashed", exc_info=exc)

	async def _deliver_logged(self, payload: ResultPayload) -> DeliveryStatus:
		try:
			await self._deliver(payload)
		except DeliveryFailure as failure:
			logger.warning("result delivery for attempt %s failed: %s", payload.attempt_id, failure.to_detail())
			return DeliveryStatus(status="failed", detail=failure.message)
		logger.info("result for attempt %s delivered", payload.attempt_id)
		return DeliveryStatus(status="sent")

	async def _deliver(self, payload: ResultPayload) -> None:
		body = payload.model_dump(mode="json")
		try:
			response = await asyncio.wait_for(
				self._client.post(self.url, json=body),
				timeout=self.timeout_seconds,
			)
		except asyncio.TimeoutError as exc:
			raise DeliveryFailure(f"Collector timed out after {self.timeout_seconds:g}s", cause=exc) from exc
		except (httpx.HTTPError, httpx.InvalidURL) as exc:
			raise DeliveryFailure(f"Collector unreachable: {exc}", cause=exc) from exc
		if response.is_error:
			raise DeliveryFailure(f"Collector answered HTTP {response.status_code}")

	async def drain(self) -> None:
		if self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)

	async def aclose(self) -> None:
		await self.drain()
		await self._client.aclose()


__all__ = ["ResultDispatcher"]
