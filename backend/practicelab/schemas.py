from __future__ import annotations
import math
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictBool, field_validator


LEVEL_NAMES: Dict[int, str] = {0: "easy", 1: "medium", 2: "hard"}

QuestionText = Annotated[str, Field(min_length=5)]


class CaseDraft(BaseModel):
	"""A case study as produced by the model (or a seed file), before persistence."""

	title: str = Field(min_length=5)
	category: str
	level: int = Field(ge=0, le=2)
	case_text: str = Field(min_length=80)
	questions: List[QuestionText] = Field(min_length=3, max_length=5)

	@field_validator("level", mode="before")
	@classmethod
	def _coerce_level(cls, value: Any) -> Any:
		# Models often emit "1" or 1.0; accept any numeric spelling of an integer
		if isinstance(value, bool):
			return value
		if isinstance(value, str):
			try:
				return float(value.strip())
			except ValueError:
				return value
		return value

	def embedding_text(self) -> str:
		return "\n".join([self.title, self.case_text, *self.questions])


class Evaluation(BaseModel):
	# Graded as any JSON number in 0..100, kept as the rounded integer that gets stored
	score: int = Field(ge=0, le=100)
	is_correct: StrictBool
	explanation: str = Field(min_length=1)
	guidance: List[str] = Field(default_factory=list)
	misconceptions: List[str] = Field(default_factory=list)

	@field_validator("score", mode="before")
	@classmethod
	def _round_score(cls, value: Any) -> Any:
		if isinstance(value, bool) or not isinstance(value, (int, float)):
			raise ValueError("score must be a number")
		if not math.isfinite(value) or value < 0 or value > 100:
			raise ValueError("score must be between 0 and 100")
		return int(round(value))


class CaseOut(BaseModel):
	id: str
	title: str
	category: str
	level: int
	case_text: str
	questions: List[str]


class AttemptOut(BaseModel):
	id: str
	created_at: Optional[str] = None
	case_id: str
	question_index: int
	question_text: str
	score: int
	is_correct: bool
	feedback: Dict[str, Any]
	guidance: List[str]
