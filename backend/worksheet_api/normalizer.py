"""
Projection of the model's JSON reply onto the stable response shape.

The completion is untrusted: it may be missing, not JSON, wrapped in a code
fence, or JSON with some fields absent or of the wrong type. Each field is taken
from the model when it is usable and synthesized from the heuristics otherwise,
so every path returns a complete `GenerationResponse`.
"""

from __future__ import annotations
import json
import re
from typing import Any, Dict, List, Optional

from . import heuristics
from .models import (
    GenerationPath,
    GenerationRequest,
    GenerationResponse,
    HeuristicMetrics,
    SourceVerification,
    TeacherPanel,
)


MAX_ITEMS = 6
STUDENT_TEXT_WORDS = 220
PRETEACH_WORDS = 10
DEFAULT_EXERCISES: List[str] = ["Reading: True/False/Not Given (5)", "Short Answer (3)"]
DEFAULT_ANSWER_KEY: List[str] = [
    "(Create T/F/NG answers using the text.)",
    "(Short answers will vary; accept paraphrases.)",
]
NO_MODEL_NOTE = "AI fallback used; source not verified by the model."
MODEL_SILENT_NOTE = "Model did not supply notes; heuristics used."
DEGRADED_MARK = "degraded"

# One deployment spelled the vocabulary key differently
_VOCAB_KEYS = ("preteach_vocab", "pre_teach_vocab", "preteachVocab", "pretech_vocab")
# Keys tried, in order, when an exercise or answer arrives as an object
_ITEM_TEXT_KEYS = ("task", "question", "prompt", "text", "answer")
_MAX_ITEM_DEPTH = 2


def _extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    if not text:
        return {}
    candidates = [text]
    code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if code_block:
        candidates.append(code_block.group(1))
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (ValueError, RecursionError):
            continue
        if isinstance(data, dict):
            return data
    return {}


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _dumps(item: Any) -> Optional[str]:
    try:
        return json.dumps(item, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return None


def _item_text(item: Any, depth: int = 0) -> Optional[str]:
    if isinstance(item, str):
        return _clean_str(item)
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        return str(item)
    # deeply nested containers carry no usable item text
    if depth > _MAX_ITEM_DEPTH:
        return None
    if isinstance(item, dict):
        for key in _ITEM_TEXT_KEYS:
            text = _item_text(item.get(key), depth + 1)
            if text:
                return text
        return _dumps(item) if item else None
    if isinstance(item, list):
        parts = [t for t in (_item_text(i, depth + 1) for i in item) if t]
        return "; ".join(parts) or None
    return None


def _str_list(value: Any, *, limit: Optional[int] = None) -> Optional[List[str]]:
    """Model list coerced to strings, or None when the value is not a list."""
    if not isinstance(value, list):
        return None
    items = [t for t in (_item_text(v) for v in value) if t]
    return items[:limit] if limit is not None else items


def synthesize_panel(text: str, cefr: str, metrics: HeuristicMetrics, *, source_notes: Optional[str]) -> TeacherPanel:
    return TeacherPanel(
        cefr_rationale=heuristics.heuristic_rationale(metrics),
        sensitive_flags=heuristics.flag_sensitive(text),
        inclusive_notes=heuristics.inclusive_notes(text),
        differentiation=heuristics.differentiation_by_cefr(cefr),
        preteach_vocab=heuristics.preteach_vocab(text, PRETEACH_WORDS),
        source_notes=source_notes,
    )


def _project_panel(raw: Any, fallback: TeacherPanel) -> TeacherPanel:
    if not isinstance(raw, dict):
        return fallback
    sensitive = _str_list(_first(raw, "sensitive_flags", "sensitiveFlags"))
    inclusive = _str_list(_first(raw, "inclusive_notes", "inclusiveNotes"))
    differentiation = _str_list(raw.get("differentiation"))
    vocab = _str_list(_first(raw, *_VOCAB_KEYS))
    return TeacherPanel(
        cefr_rationale=_clean_str(_first(raw, "cefr_rationale", "cefrRationale")) or fallback.cefr_rationale,
        sensitive_flags=sensitive if sensitive is not None else fallback.sensitive_flags,
        inclusive_notes=inclusive if inclusive is not None else fallback.inclusive_notes,
        differentiation=differentiation or fallback.differentiation,
        preteach_vocab=vocab or fallback.preteach_vocab,
        source_notes=_clean_str(_first(raw, "source_notes", "sourceNotes")) or fallback.source_notes,
    )


def fallback_student_text(text: str, request: GenerationRequest) -> str:
    return f"Neutralised summary ({request.cefr} • {request.exam}). {heuristics.trim_to_words(text, STUDENT_TEXT_WORDS)}"


def normalize(
    model_output: Optional[str],
    metrics: HeuristicMetrics,
    text: str,
    request: GenerationRequest,
    *,
    source: str,
    path: GenerationPath,
    credit_line: str,
    source_verification: Optional[SourceVerification] = None,
) -> GenerationResponse:
    """Build the final response from whatever the model returned (possibly nothing).

    Never raises.
    """
    data = _extract_json_object(model_output)
    fallback_panel = synthesize_panel(
        text,
        request.cefr,
        metrics,
        source_notes=NO_MODEL_NOTE if model_output is None else MODEL_SILENT_NOTE,
    )

    exercises = _str_list(data.get("exercises"), limit=MAX_ITEMS)
    answer_key = _str_list(_first(data, "answer_key", "answerKey"), limit=MAX_ITEMS)

    credit_parts = [_clean_str(data.get("credit")) or credit_line, path.value]
    if path is GenerationPath.DEGRADED:
        credit_parts.append(DEGRADED_MARK)

    return GenerationResponse(
        student_text=_clean_str(_first(data, "student_text", "studentText")) or fallback_student_text(text, request),
        exercises=exercises if exercises is not None else list(DEFAULT_EXERCISES),
        answer_key=answer_key if answer_key is not None else list(DEFAULT_ANSWER_KEY),
        source=source,
        credit=" • ".join(credit_parts),
        teacher_panel=_project_panel(_first(data, "teacher_panel", "teacherPanel"), fallback_panel),
        source_verification=source_verification,
    )


def heuristic_response(
    metrics: HeuristicMetrics,
    text: str,
    request: GenerationRequest,
    *,
    source: str,
    path: GenerationPath,
    credit_line: str,
    source_verification: Optional[SourceVerification] = None,
) -> GenerationResponse:
    """Response built without any model output."""
    return normalize(
        None,
        metrics,
        text,
        request,
        source=source,
        path=path,
        credit_line=credit_line,
        source_verification=source_verification,
    )
