from __future__ import annotations
import logging
import re
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Comment, Doctype

from .deadline import Deadline
from .errors import ValidationError
from .models import PASTED_TEXT, ResolvedSource
from .settings import Settings

logger = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s+")
_HIDDEN_TAGS = ["script", "style", "noscript", "template"]

FETCH_HEADERS = {"Accept": "text/html,*/*;q=0.8"}
# Markup bytes read per character of text budget
MARKUP_BYTES_PER_CHAR = 100


def looks_like_url(value: str) -> bool:
	try:
		parsed = urlparse((value or "").strip())
	except ValueError:
		return False
	return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def parse_markup(markup: str) -> BeautifulSoup:
	return BeautifulSoup(markup or "", "html.parser")


def page_text(soup: BeautifulSoup) -> str:
	"""Visible text of a parsed page. Removes hidden elements from `soup` in place."""
	for tag in soup(_HIDDEN_TAGS):
		tag.decompose()
	for node in soup.find_all(string=lambda s: isinstance(s, (Comment, Doctype))):
		node.extract()
	return _SPACE_RE.sub(" ", soup.get_text(" ", strip=True)).strip()


def strip_html(markup: str) -> str:
	return page_text(parse_markup(markup))


async def _fetch_markup(url: str, timeout_ms: int, max_bytes: int, client: httpx.AsyncClient) -> str | None:
	try:
		async with client.stream(
			"GET", url, headers=FETCH_HEADERS, timeout=timeout_ms / 1000.0, follow_redirects=True
		) as r:
			r.raise_for_status()
			body = bytearray()
			async for chunk in r.aiter_bytes():
				body.extend(chunk)
				if len(body) >= max_bytes:
					logger.info("Page %s exceeds %d bytes; reading stopped", url, max_bytes)
					break
			return bytes(body[:max_bytes]).decode(r.encoding or "utf-8", errors="replace")
	except httpx.HTTPError as err:
		logger.warning("Fetching %s failed (%s); using the URL as text", url, type(err).__name__)
		return None


async def resolve(raw_input: str, deadline: Deadline, *, settings: Settings, client: httpx.AsyncClient) -> ResolvedSource:
	"""Turn the request's `input` into source text, fetching it first when it is a URL."""
	raw = (raw_input or "").strip()
	source = ResolvedSource(text=raw, origin_label=PASTED_TEXT)
	if looks_like_url(raw):
		timeout_ms = deadline.clamp_timeout_ms(settings.fetch_timeout_ms, settings.min_fetch_ms)
		max_bytes = settings.max_chars * MARKUP_BYTES_PER_CHAR
		markup = await _fetch_markup(raw, timeout_ms, max_bytes, client)
		source = ResolvedSource(text=raw, origin_label=raw, fetched_markup=markup)
		if markup is not None:
			source.text = strip_html(markup)
	source.text = source.text[: settings.max_chars].strip()
	if not source.text:
		raise ValidationError("Missing input")
	return source
