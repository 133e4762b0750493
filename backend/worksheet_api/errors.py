from __future__ import annotations
from typing import Optional


class WorksheetError(Exception):
	"""Base class for errors that reach the HTTP layer."""

	status_code: int = 500

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message

	def to_payload(self) -> dict:
		return {"error": self.message}


class ValidationError(WorksheetError):
	status_code = 400


class UpstreamError(WorksheetError):
	"""Non-retryable error from the completion API (bad key, unknown model...)."""

	def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
		super().__init__(f"Upstream error {status_code}")
		self.status_code = status_code
		self.detail = (detail or "")[:200]

	def to_payload(self) -> dict:
		return {"error": self.message, "detail": self.detail}
