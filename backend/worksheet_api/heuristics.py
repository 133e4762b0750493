"""
Model-free text heuristics.

Everything here is a pure function of the source text (or CEFR level). The
results fill the teacher panel when no completion is available and patch any
field the completion left out.
"""

from __future__ import annotations
import math
import re
from collections import Counter
from typing import Dict, List, Tuple

from .models import HeuristicMetrics


# Unicode letters/digits plus inner apostrophes and hyphens
WORD_RE = re.compile(r"\b(?:[^\W_]|['’-])+\b")
SENTENCE_END_RE = re.compile(r"[.!?]+(?:\s|$)")
EDGE_QUOTES_RE = re.compile(r"^['’‘\"“”-]+|['’‘\"“”-]+$")

STOPWORDS = frozenset(
    """
    the a an and or but to of in on at for with by from as that this it is are was were be been
    being which who whom whose than then so such into about over under between after before
    because while if though although however there their they them we our you your i me my
    """.split()
)

# Scan order is the output order
SENSITIVE_TOPICS: List[Tuple[str, re.Pattern]] = [
    ("Violence/Conflict", re.compile(r"\b(?:wars?|attack\w*|bomb\w*|terror\w*|assault\w*|violen\w*|kill\w*|dead|deaths?)\b", re.I)),
    ("Mental health", re.compile(r"\b(?:suicid\w*|self-harm\w*|depress\w*|anxiety|anxious|mental health)\b", re.I)),
    ("Sexual content/harassment", re.compile(r"\b(?:sexual\w*|harass\w*|abuse\w*|assault\w*)\b", re.I)),
    ("Substance use", re.compile(r"\b(?:drugs?|alcohol\w*|addict\w*)\b", re.I)),
    ("Religion (potentially sensitive)", re.compile(r"\b(?:religio\w*|faith\w*|church\w*|mosques?|synagogues?|temples?)\b", re.I)),
    ("Migration/Identity", re.compile(r"\b(?:immigra\w*|refugees?|asylum|migra\w*)\b", re.I)),
    ("Politics", re.compile(r"\b(?:politic\w*|elections?|government\w*|polic(?:y|ies))\b", re.I)),
]

INCLUSIVE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (
        re.compile(r"\b(?:he/she|he or she|she/he|she or he|s/he|him/her|his/her)\b", re.I),
        "Replace 'he/she' with a singular 'they' or rewrite to avoid gendered pronouns.",
    ),
    (
        re.compile(r"\b(?:husbands?|wife|wives|boyfriends?|girlfriends?)\b", re.I),
        "Use neutral alternatives like 'partner' where appropriate.",
    ),
    (
        re.compile(r"\b(?:mankind|man-made)\b", re.I),
        "Prefer 'humankind' / 'human-made'.",
    ),
    (
        re.compile(r"\bthe (?:disabled|poor|elderly)\b", re.I),
        "Use people-first phrasing (e.g., 'people with disabilities').",
    ),
    (
        re.compile(r"\b(?:normal people|able-bodied)\b", re.I),
        "Avoid 'normal'; specify the attribute if needed.",
    ),
]

DIFFERENTIATION_BY_CEFR: Dict[str, Tuple[str, ...]] = {
    "A2": (
        "Pre-teach 8–10 key words with visuals.",
        "Gist read with 2–3 yes/no questions.",
        "Use short, chunked paragraphs; allow L1 glossary.",
    ),
    "B1": (
        "Gist → scanning tasks; underline evidence.",
        "Sentence starters for short answers.",
        "Pair-check before plenary to build confidence.",
    ),
    "B2": (
        "Add inference items; justify with quotes.",
        "Noticing task for cohesive devices.",
        "Optional challenge: paraphrase 5 sentences.",
    ),
    "C1": (
        "Synthesis question across two paragraphs.",
        "Author stance: identify hedging & modality.",
        "Extension: write a 120–150 word response.",
    ),
}
# Levels without their own tips borrow the nearest band
_NEAREST_BAND = {"A1": "A2", "C2": "C1"}


def words(text: str) -> List[str]:
    return WORD_RE.findall(text or "")


def word_count(text: str) -> int:
    return len(words(text))


def sentence_count(text: str) -> int:
    return len(SENTENCE_END_RE.findall(text or "")) or 1


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def avg_sentence_length(text: str) -> int:
    return _round_half_up(word_count(text) / sentence_count(text))


def pct_long_words(text: str) -> int:
    tokens = words(text)
    long_words = sum(1 for w in tokens if len(re.sub(r"['’-]", "", w)) >= 7)
    return _round_half_up(100 * long_words / max(1, len(tokens)))


def compute_metrics(text: str) -> HeuristicMetrics:
    return HeuristicMetrics(
        avg_sentence_length=avg_sentence_length(text),
        pct_long_words=pct_long_words(text),
        total_words=word_count(text),
    )


def heuristic_rationale(metrics: HeuristicMetrics) -> str:
    return (
        f"Heuristic: avg sentence {metrics.avg_sentence_length} words; "
        f"{metrics.pct_long_words}% long words; {metrics.total_words} words total."
    )


def trim_to_words(text: str, n: int = 220) -> str:
    """First `n` words joined by single spaces, closed with a period if needed."""
    picked = words(text)[: max(0, n)]
    if not picked:
        return ""
    out = " ".join(picked)
    return out if out[-1] in ".!?" else out + "."


def preteach_vocab(text: str, n: int = 10) -> List[str]:
    counts: Counter = Counter()
    for token in words((text or "").lower()):
        token = EDGE_QUOTES_RE.sub("", token)
        if len(token) >= 6 and token not in STOPWORDS:
            counts[token] += 1
    # most frequent first, alphabetical among ties
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [w for w, _ in ranked[: max(0, n)]]


def flag_sensitive(text: str) -> List[str]:
    return [label for label, pattern in SENSITIVE_TOPICS if pattern.search(text or "")]


def inclusive_notes(text: str) -> List[str]:
    return [note for pattern, note in INCLUSIVE_PATTERNS if pattern.search(text or "")]


def differentiation_by_cefr(level: str) -> List[str]:
    level = (level or "").upper()
    band = _NEAREST_BAND.get(level, level)
    return list(DIFFERENTIATION_BY_CEFR.get(band, DIFFERENTIATION_BY_CEFR["B1"]))
