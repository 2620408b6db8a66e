from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from .errors import NotFoundError, ValidationError
from .llm_client import CompletionClient
from .llm_output import extract_json_object, validate_model_output
from .models import Attempt, CaseStudy
from .prompts import build_evaluation_prompt
from .schemas import Evaluation
from .store import CaseStore

logger = logging.getLogger(__name__)

EVALUATION_TEMPERATURE = 0.2
EVALUATION_MAX_TOKENS = 600


@dataclass
class EvaluationResult:
	evaluation: Evaluation
	attempt: Attempt
	next_question_index: int
	is_complete: bool
	total_questions: int


def progression(question_index: int, is_correct: bool, total_questions: int) -> Tuple[int, bool]:
	"""Next question pointer and completion flag derived from one graded attempt."""
	if not is_correct:
		return question_index, False
	return question_index + 1, question_index >= total_questions - 1


def resolve_question_text(stored: str, supplied: Optional[str]) -> str:
	# Client copies are only trusted when they match what we have on file
	stored_text = (stored or "").strip()
	if isinstance(supplied, str) and supplied.strip() and supplied.strip() == stored_text:
		return supplied.strip()
	return stored


def coerce_question_index(value: Any) -> int:
	if value is None or isinstance(value, bool):
		raise ValidationError("question_index is required")
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		if math.isfinite(value) and value.is_integer():
			return int(value)
		raise ValidationError("question_index must be an integer")
	if isinstance(value, str):
		try:
			number = float(value.strip())
		except ValueError:
			raise ValidationError("question_index must be a number")
		if not math.isfinite(number) or not number.is_integer():
			raise ValidationError("question_index must be an integer")
		return int(number)
	raise ValidationError("question_index must be a number")


class AnswerEvaluator:
	def __init__(self, store: CaseStore, llm: CompletionClient) -> None:
		self.store = store
		self.llm = llm

	async def evaluate(
		self,
		user_id: str,
		case_id: str,
		question_index: Any,
		answer_text: str,
		question_text: Optional[str] = None,
	) -> EvaluationResult:
		answer = answer_text.strip() if isinstance(answer_text, str) else ""
		if not isinstance(user_id, str) or not user_id.strip() or not isinstance(case_id, str) or not case_id.strip() or not answer:
			raise ValidationError("Missing user_id, case_id, or answer_text")
		qi = coerce_question_index(question_index)

		case = await run_in_threadpool(self.store.get_case, case_id)
		if case is None:
			raise NotFoundError(f"Case {case_id!r} not found", extra={"case_id": case_id})
		questions = list(case.questions or [])
		if qi < 0 or qi >= len(questions):
			raise ValidationError(
				f"question_index out of range (0..{max(0, len(questions) - 1)})",
				extra={"question_index": qi, "total_questions": len(questions)},
			)
		resolved_question = resolve_question_text(questions[qi], question_text)

		evaluation = await self._grade(case, qi, resolved_question, answer)

		attempt = await run_in_threadpool(
			self.store.insert_attempt,
			user_id=user_id,
			case_id=case.id,
			question_index=qi,
			question_text=resolved_question,
			answer_text=answer,
			score=evaluation.score,
			is_correct=evaluation.is_correct,
			feedback={"explanation": evaluation.explanation, "misconceptions": evaluation.misconceptions},
			guidance=evaluation.guidance,
		)
		logger.info("Stored attempt %s for case %s q%d (score %d)", attempt.id, case.id, qi, attempt.score)

		next_index, complete = progression(qi, evaluation.is_correct, len(questions))
		return EvaluationResult(
			evaluation=evaluation,
			attempt=attempt,
			next_question_index=next_index,
			is_complete=complete,
			total_questions=len(questions),
		)

	async def _grade(self, case: CaseStudy, question_index: int, question_text: str, answer: str) -> Evaluation:
		prompt = build_evaluation_prompt(case, question_index, question_text, answer)
		raw = await self.llm.complete(prompt, temperature=EVALUATION_TEMPERATURE, max_tokens=EVALUATION_MAX_TOKENS)
		return validate_model_output(Evaluation, extract_json_object(raw))
