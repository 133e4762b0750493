from __future__ import annotations
import asyncio
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .deadline import Deadline
from .settings import Settings

logger = logging.getLogger(__name__)

# 429 plus the 5xx family, including the CDN/edge variants
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504, 520, 521, 522, 523, 524, 525, 526})
BUSY_MESSAGE = "Upstream busy (rate limited)."


def parse_retry_after(value: Optional[str], *, now: Optional[datetime] = None) -> Optional[int]:
	"""Retry-After header (delta seconds or HTTP date) in milliseconds."""
	if not value:
		return None
	value = value.strip()
	try:
		seconds = float(value)
	except ValueError:
		try:
			when = parsedate_to_datetime(value)
		except (TypeError, ValueError):
			return None
		if when.tzinfo is None:
			when = when.replace(tzinfo=timezone.utc)
		seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()
	if seconds <= 0:
		return None
	return int(seconds * 1000)


def extract_message_content(response: httpx.Response) -> Optional[str]:
	try:
		data = response.json()
		content = data["choices"][0]["message"]["content"]
	except (ValueError, KeyError, IndexError, TypeError):
		return None
	return content if isinstance(content, str) else None


def busy_response() -> httpx.Response:
	return httpx.Response(503, json={"error": BUSY_MESSAGE})


class CompletionClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		settings: Settings,
		http_client: Optional[httpx.AsyncClient] = None,
		base_url: Optional[str] = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
		jitter: Callable[[], float] = random.random,
	) -> None:
		self.api_key = api_key or settings.openai_api_key
		if not self.api_key:
			raise ValueError("OPENAI_API_KEY is not configured")
		self.settings = settings
		self.base_url = base_url or settings.openai_base_url
		self._owns_client = http_client is None
		self._client = http_client or httpx.AsyncClient()
		self._sleep = sleep
		self._jitter = jitter
		self._headers = {
			"Authorization": f"Bearer {self.api_key}",
			"Content-Type": "application/json",
		}

	async def call(self, payload: Dict[str, Any], deadline: Deadline) -> httpx.Response:
		"""POST the payload, retrying transient failures inside the deadline.

		Returns the first non-retryable response as is. When attempts or budget run
		out, returns a synthesized 503 instead of raising.
		"""
		s = self.settings
		for attempt in range(s.max_attempts):
			if deadline.expired:
				break
			timeout_ms = deadline.clamp_timeout_ms(s.per_call_timeout_ms, s.min_call_ms)
			retry_after_ms: Optional[int] = None
			try:
				r = await self._client.post(
					self.base_url,
					headers=self._headers,
					json=payload,
					timeout=timeout_ms / 1000.0,
				)
			except httpx.TimeoutException:
				logger.warning("Completion attempt %d timed out after %d ms", attempt + 1, timeout_ms)
			except httpx.RequestError as net_err:
				logger.warning("Completion attempt %d failed: %s", attempt + 1, type(net_err).__name__)
			else:
				if r.status_code not in RETRYABLE_STATUSES:
					return r
				retry_after_ms = parse_retry_after(r.headers.get("retry-after"))
				logger.warning("Completion attempt %d got transient status %d", attempt + 1, r.status_code)

			wait_ms = self._backoff_ms(attempt, retry_after_ms, deadline)
			if wait_ms is None:
				break
			await self._sleep(wait_ms / 1000.0)

		logger.warning("Completion API still busy; giving up")
		return busy_response()

	def _backoff_ms(self, attempt: int, retry_after_ms: Optional[int], deadline: Deadline) -> Optional[int]:
		s = self.settings
		available = deadline.remaining_ms() - s.safety_margin_ms
		if available <= 0:
			return None
		if retry_after_ms is not None:
			wanted = retry_after_ms
		else:
			wanted = s.backoff_base_ms * (2 ** attempt) + int(self._jitter() * s.backoff_jitter_ms)
		return min(wanted, available)

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()
