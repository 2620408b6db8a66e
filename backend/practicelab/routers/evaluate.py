from __future__ import annotations
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..evaluator import AnswerEvaluator
from ..providers import get_evaluator
from ..schemas import AttemptOut, Evaluation
from .auth import User, ensure_same_user, get_current_user


router = APIRouter(tags=["evaluation"])


class EvaluateRequest(BaseModel):
	# Loosely typed so missing/odd values surface as our 400s, not FastAPI 422s
	user_id: Optional[str] = None
	case_id: Optional[str] = None
	answer_text: Optional[str] = None
	question_index: Optional[Any] = None
	question_text: Optional[str] = None


class EvaluateResponse(BaseModel):
	evaluation: Evaluation
	attempt: AttemptOut
	next_question_index: int
	is_complete: bool
	total_questions: int


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(
	req: EvaluateRequest,
	evaluator: AnswerEvaluator = Depends(get_evaluator),
	user: Optional[User] = Depends(get_current_user),
):
	ensure_same_user(user, req.user_id)
	result = await evaluator.evaluate(
		req.user_id,
		req.case_id,
		req.question_index,
		req.answer_text,
		question_text=req.question_text,
	)
	return {
		"evaluation": result.evaluation,
		"attempt": result.attempt.to_dict(),
		"next_question_index": result.next_question_index,
		"is_complete": result.is_complete,
		"total_questions": result.total_questions,
	}
