from __future__ import annotations
import re
from typing import Optional
from urllib.parse import urlparse

from .heuristics import word_count
from .models import SourceChecks, SourceVerification, Verdict
from .resolver import page_text, parse_markup


OPEN_GRAPH_RE = re.compile(r"^og:", re.I)
DATE_META_RE = re.compile(r"^(?:article:published_time|date|pubdate)$", re.I)
TLD_RE = re.compile(r"\.[a-z]{2,}$")

# Highest threshold first
VERDICT_THRESHOLDS = (
	(75, Verdict.REPUTABLE),
	(55, Verdict.LIKELY_ORIGINAL),
	(35, Verdict.AGGREGATION),
)
LIMITED_CHECKS_NOTE = "Fetched as plain text; limited checks."


def verdict_for(score: int) -> Verdict:
	for threshold, verdict in VERDICT_THRESHOLDS:
		if score >= threshold:
			return verdict
	return Verdict.UNKNOWN


def verify_source(url: str, markup: Optional[str] = None) -> SourceVerification:
	"""Score how trustworthy a URL looks from scheme, domain and page markup alone."""
	parsed = urlparse(url)
	domain = (parsed.hostname or "").lower()
	checks = SourceChecks(
		is_https=parsed.scheme.lower() == "https",
		domain=domain,
		tld_ok=bool(TLD_RE.search(domain)),
	)
	if markup:
		soup = parse_markup(markup)
		checks.has_canonical = soup.find("link", rel="canonical") is not None
		checks.has_og = soup.find("meta", property=OPEN_GRAPH_RE) is not None
		checks.has_date_meta = (
			soup.find("meta", attrs={"property": DATE_META_RE}) is not None
			or soup.find("meta", attrs={"name": DATE_META_RE}) is not None
		)
		checks.link_count = len(soup.find_all("a"))
		# last, page_text strips hidden elements from the tree
		checks.word_count = word_count(page_text(soup))

	score = 0
	if checks.is_https:
		score += 20
	if checks.tld_ok:
		score += 10
	if checks.has_canonical:
		score += 20
	if checks.has_og:
		score += 15
	if checks.has_date_meta:
		score += 15
	if checks.word_count >= 300:
		score += 10
	if checks.link_count >= 3:
		score += 10
	score = max(0, min(100, score))

	return SourceVerification(
		url=url,
		score=score,
		verdict=verdict_for(score),
		checks=checks,
		notes=None if markup else LIMITED_CHECKS_NOTE,
	)
