from __future__ import annotations
import time
from typing import Callable


class Deadline:
	"""Absolute expiry instant for one request.

	Every blocking step (URL fetch, completion call, backoff sleep) sizes its
	timeout from `remaining_ms()`, so time already spent is always accounted for.
	The clock is injectable; tests drive it with a fake.
	"""

	def __init__(self, expires_at: float, *, clock: Callable[[], float] = time.monotonic) -> None:
		self.expires_at = expires_at
		self._clock = clock

	@classmethod
	def after_ms(cls, budget_ms: int, *, clock: Callable[[], float] = time.monotonic) -> "Deadline":
		return cls(clock() + budget_ms / 1000.0, clock=clock)

	def remaining_ms(self) -> int:
		return max(0, int((self.expires_at - self._clock()) * 1000))

	@property
	def expired(self) -> bool:
		return self.remaining_ms() <= 0

	def clamp_timeout_ms(self, ceiling_ms: int, floor_ms: int) -> int:
		# min(ceiling, max(floor, remaining))
		return min(ceiling_ms, max(floor_ms, self.remaining_ms()))
