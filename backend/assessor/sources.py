"""Download-URL normalisation and resilient retrieval of source documents."""
from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from .errors import SourceUnreachable


logger = logging.getLogger(__name__)

T = TypeVar("T")

BROWSER_HEADERS = {
	"User-Agent": (
		"Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
		"(KHTML, like Gecko) Chrome/124 Safari/537.36"
	),
	"Accept": "*/*",
	"Accept-Language": "es-ES,es;q=0.9",
}

_DRIVE_FILE_RE = re.compile(r"/file/d/([^/]+)")


def normalize_download_url(url: str) -> str:
	"""Rewrite known share links into direct-download URLs.

	Google Drive ``/file/d/<id>/view`` and ``open?id=<id>`` links become
	``uc?export=download`` links; OneDrive/SharePoint links get ``download=1``
	unless they already carry a ``download`` parameter. Anything else, malformed
	URLs included, is returned unchanged.
	"""
	try:
		parts = urlsplit(url)
		host = (parts.hostname or "").lower()
	except ValueError:
		return url

	if "drive.google.com" in host:
		match = _DRIVE_FILE_RE.search(parts.path)
		if match:
			return f"https://drive.google.com/uc?export=download&id={match.group(1)}"
		file_id = parse_qs(parts.query).get("id")
		if file_id and file_id[0]:
			return f"https://drive.google.com/uc?export=download&id={file_id[0]}"

	if host.endswith("1drv.ms") or "sharepoint.com" in host or "onedrive.live.com" in host:
		query = parse_qs(parts.query, keep_blank_values=True)
		if "download" not in query:
			query_str = parts.query + ("&" if parts.query else "") + urlencode({"download": "1"})
			return urlunsplit((parts.scheme, parts.netloc, parts.path, query_str, parts.fragment))

	return url


class FetchTimeout(Exception):
	"""A single retrieval attempt exceeded its time budget."""


def is_retryable(exc: BaseException) -> bool:
	# 5xx and timeouts may clear up; 4xx and other transport errors will not
	if isinstance(exc, httpx.HTTPStatusError):
		return exc.response.status_code >= 500
	return isinstance(exc, (FetchTimeout, httpx.TimeoutException))


@dataclass
class RetryPolicy:
	"""Bounded retry: ``max_attempts`` tries, ``attempt_index * backoff_seconds`` between them."""

	max_attempts: int = 3
	backoff_seconds: float = 0.5
	retry_on: Callable[[BaseException], bool] = field(default=is_retryable)

	def delay(self, attempt_index: int) -> float:
		return attempt_index * self.backoff_seconds

	async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
		async for attempt in AsyncRetrying(
			stop=stop_after_attempt(self.max_attempts),
			wait=lambda state: self.delay(state.attempt_number),
			retry=retry_if_exception(self.retry_on),
			before_sleep=_log_retry,
			reraise=True,
		):
			with attempt:
				return await fn()


def _log_retry(state) -> None:
	outcome = state.outcome
	exc = outcome.exception() if outcome is not None else None
	logger.warning("fetch attempt %d failed (%s); retrying", state.attempt_number, exc)


class SourceFetcher:
	def __init__(
		self,
		client: Optional[httpx.AsyncClient] = None,
		*,
		policy: Optional[RetryPolicy] = None,
		timeout_seconds: float = 20.0,
	) -> None:
		self._client = client or httpx.AsyncClient(
			headers=BROWSER_HEADERS,
			follow_redirects=True,
			timeout=httpx.Timeout(timeout_seconds),
		)
		self.policy = policy or RetryPolicy()
		self.timeout_seconds = timeout_seconds

	async def fetch(self, url: str) -> httpx.Response:
		target = normalize_download_url(url)
		try:
			return await self.policy.run(functools.partial(self._attempt, target))
		except (httpx.HTTPError, httpx.InvalidURL, FetchTimeout) as exc:
			raise SourceUnreachable(f"Could not download {target}", cause=exc) from exc

	async def _attempt(self, url: str) -> httpx.Response:
		try:
			# wait_for cancels the in-flight request when the budget runs out
			response = await asyncio.wait_for(
				self._client.get(url, headers=BROWSER_HEADERS, follow_redirects=True),
				timeout=self.timeout_seconds,
			)
		except asyncio.TimeoutError:
			raise FetchTimeout(f"timed out after {self.timeout_seconds:g}s") from None
		response.raise_for_status()
		return response

	async def aclose(self) -> None:
		await self._client.aclose()


__all__ = [
	"BROWSER_HEADERS",
	"FetchTimeout",
	"RetryPolicy",
	"SourceFetcher",
	"is_retryable",
	"normalize_download_url",
]
