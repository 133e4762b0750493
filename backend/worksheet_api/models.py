from __future__ import annotations
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


CEFR_ORDER: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]
PASTED_TEXT = "pasted text"


class GenerationRequest(BaseModel):
	# input stays optional so a missing value surfaces as "Missing input", not a schema error
	input: Optional[str] = None
	cefr: str = Field(default="B1", description="Target CEFR level A1–C2")
	exam: str = "Cambridge B2"
	inclusive: bool = True
	locale: str = "IE"
	model: Optional[str] = None

	@field_validator("cefr", mode="before")
	@classmethod
	def _validate_cefr(cls, level: Optional[str]) -> str:
		if not level:
			return "B1"
		level_u = str(level).strip().upper()
		if level_u not in CEFR_ORDER:
			raise ValueError(f"cefr must be one of {CEFR_ORDER}")
		return level_u


class ResolvedSource(BaseModel):
	text: str
	origin_label: str = PASTED_TEXT
	fetched_markup: Optional[str] = None

	@property
	def is_url(self) -> bool:
		return self.origin_label != PASTED_TEXT


class HeuristicMetrics(BaseModel):
	avg_sentence_length: int
	pct_long_words: int
	total_words: int


class Verdict(str, Enum):
	REPUTABLE = "reputable"
	LIKELY_ORIGINAL = "likely_original"
	AGGREGATION = "aggregation"
	UNKNOWN = "unknown"


class SourceChecks(BaseModel):
	is_https: bool = False
	has_canonical: bool = False
	has_og: bool = False
	has_date_meta: bool = False
	word_count: int = 0
	link_count: int = 0
	domain: str = ""
	tld_ok: bool = False


class SourceVerification(BaseModel):
	url: str
	score: int = Field(ge=0, le=100)
	verdict: Verdict
	checks: SourceChecks
	notes: Optional[str] = None


class TeacherPanel(BaseModel):
	cefr_rationale: str
	sensitive_flags: List[str] = Field(default_factory=list)
	inclusive_notes: List[str] = Field(default_factory=list)
	differentiation: List[str] = Field(default_factory=list)
	preteach_vocab: List[str] = Field(default_factory=list)
	source_notes: Optional[str] = None


class GenerationResponse(BaseModel):
	student_text: str
	exercises: List[str] = Field(default_factory=list)
	answer_key: List[str] = Field(default_factory=list)
	source: str
	credit: str
	teacher_panel: TeacherPanel
	source_verification: Optional[SourceVerification] = None


class GenerationPath(str, Enum):
	"""Which route produced a response; sent back in the x-gen-version header."""

	DIRECT = "real-v1"
	NO_CREDENTIAL = "fallback-no-key"
	DEGRADED = "fallback"
