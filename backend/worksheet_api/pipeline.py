from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional

import httpx

from .deadline import Deadline
from .errors import UpstreamError, ValidationError
from .heuristics import compute_metrics
from .models import GenerationPath, GenerationRequest, GenerationResponse, HeuristicMetrics, ResolvedSource
from .normalizer import heuristic_response, normalize
from .resolver import resolve
from .settings import Settings
from .upstream import CompletionClient, extract_message_content
from .verifier import verify_source

logger = logging.getLogger(__name__)


class GenerationResult(NamedTuple):
	response: GenerationResponse
	path: GenerationPath


def select_model(requested: Optional[str], settings: Settings) -> str:
	if not requested:
		return settings.openai_model
	if requested not in settings.allowed_models:
		raise ValidationError(f"model must be one of {settings.allowed_models}")
	return requested


def build_prompt(source: ResolvedSource, request: GenerationRequest, metrics: HeuristicMetrics) -> str:
	cefr = request.cefr
	return (
		"You are an ESL materials writer. Produce safe, inclusive materials AND a teacher panel.\n\n"
		f"INPUT TEXT:\n<<<{source.text}>>>\n\n"
		"CONTEXT:\n"
		f"- CEFR: {cefr} ; Exam: {request.exam} ; Locale: {request.locale}\n"
		f"- Inclusive profile: {'ON' if request.inclusive else 'OFF'} (people-first language, avoid stereotypes; gender-neutral where sensible)\n"
		f"- Readability of the input: avg_sentence_len={metrics.avg_sentence_length}, "
		f"pct_long_words={metrics.pct_long_words}%, total_words={metrics.total_words}\n"
		f"- Build a {cefr} student_text of ~200–260 words, neutral and factual.\n"
		"- If content is sensitive, summarise respectfully and neutrally; no graphic detail.\n\n"
		"RETURN STRICT JSON (no commentary) with keys:\n"
		"student_text (string), exercises (array of up to 6 strings, e.g. \"Reading: True/False/Not Given (5)\"), "
		"answer_key (array of strings, answers for the listed tasks), "
		f"source (\"{source.origin_label}\"), credit (string), "
		"teacher_panel (object with cefr_rationale (string), sensitive_flags (array), inclusive_notes (array), "
		"differentiation (array of 3 suggestions for this CEFR), preteach_vocab (array of 10 key words), "
		"source_notes (string; if the source is a URL, how to cite/link it))."
	)


def build_payload(prompt: str, model: str) -> Dict[str, Any]:
	return {
		"model": model,
		"response_format": {"type": "json_object"},
		"messages": [{"role": "user", "content": prompt}],
	}


async def generate_worksheet(
	request: GenerationRequest,
	*,
	settings: Settings,
	http_client: httpx.AsyncClient,
	deadline: Deadline,
	sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> GenerationResult:
	"""Resolve, analyse, call the model and normalize, inside one deadline.

	Raises ValidationError for unusable input and UpstreamError for permanent
	upstream failures; every other failure degrades to the heuristic response.
	"""
	model = select_model(request.model, settings)
	source = await resolve(request.input or "", deadline, settings=settings, client=http_client)
	verification = verify_source(source.origin_label, source.fetched_markup) if source.is_url else None
	metrics = compute_metrics(source.text)
	common = dict(source=source.origin_label, credit_line=settings.credit_line, source_verification=verification)

	if not settings.openai_api_key:
		logger.info("No completion credential configured; returning heuristic worksheet")
		path = GenerationPath.NO_CREDENTIAL
		return GenerationResult(heuristic_response(metrics, source.text, request, path=path, **common), path)

	client = CompletionClient(settings.openai_api_key, settings=settings, http_client=http_client, sleep=sleep)
	try:
		r = await client.call(build_payload(build_prompt(source, request, metrics), model), deadline)
	finally:
		await client.aclose()

	if r.is_success:
		path = GenerationPath.DIRECT
		content = extract_message_content(r) or ""
		return GenerationResult(
			normalize(content, metrics, source.text, request, path=path, **common),
			path,
		)
	if 400 <= r.status_code < 500 and r.status_code != 429:
		logger.error("Completion API rejected the request with %d", r.status_code)
		raise UpstreamError(r.status_code, r.text)

	logger.warning("Completion API unavailable (%d); returning degraded worksheet", r.status_code)
	path = GenerationPath.DEGRADED
	return GenerationResult(heuristic_response(metrics, source.text, request, path=path, **common), path)
