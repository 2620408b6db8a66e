from __future__ import annotations
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import NotFoundError, ValidationError
from ..evaluator import progression
from ..generator import CaseGenerator
from ..providers import get_generator, get_selector, get_store
from ..schemas import AttemptOut, CaseOut
from ..selector import CaseSelector
from ..store import CaseStore
from .auth import User, ensure_same_user, get_current_user


router = APIRouter(prefix="/cases", tags=["cases"])


class GenerateRequest(BaseModel):
	category: Optional[str] = None
	level: Optional[Any] = None


class SelectedCaseResponse(BaseModel):
	source: str
	case: CaseOut


class CaseResponse(BaseModel):
	case: CaseOut


class GeneratedCaseResponse(BaseModel):
	case: CaseOut
	best_similarity: float


class ProgressResponse(BaseModel):
	case_id: str
	next_question_index: int
	is_complete: bool
	total_questions: int
	attempts: List[AttemptOut]


def _parse_level(value: Any) -> int:
	if value is None or isinstance(value, bool):
		raise ValidationError("level must be 0, 1, or 2")
	try:
		number = float(str(value).strip())
	except ValueError:
		raise ValidationError("level must be 0, 1, or 2")
	if number not in (0, 1, 2):
		raise ValidationError("level must be 0, 1, or 2")
	return int(number)


@router.get("/unseen", response_model=SelectedCaseResponse)
async def unseen_case(
	user_id: Optional[str] = None,
	category: Optional[str] = None,
	level: Optional[str] = None,
	selector: CaseSelector = Depends(get_selector),
	user: Optional[User] = Depends(get_current_user),
):
	if not (user_id or "").strip():
		raise ValidationError("Missing user ID")
	ensure_same_user(user, user_id)
	selected = await selector.select_case(user_id.strip(), category or "", _parse_level(level))
	return {"source": selected.source, "case": selected.case.to_dict()}


@router.post("/generate", response_model=GeneratedCaseResponse)
async def generate_case(req: GenerateRequest, generator: CaseGenerator = Depends(get_generator)):
	if not (req.category or "").strip() or req.level is None:
		raise ValidationError("Missing category or level")
	generated = await generator.generate_case(req.category, _parse_level(req.level))
	return {"case": generated.case.to_dict(), "best_similarity": generated.best_similarity}


@router.get("/categories")
def categories(store: CaseStore = Depends(get_store)):
	return {"categories": store.categories()}


@router.get("/{case_id}", response_model=CaseResponse)
def get_case(case_id: str, store: CaseStore = Depends(get_store)):
	case = store.get_case(case_id)
	if case is None:
		raise NotFoundError(f"Case {case_id!r} not found")
	return {"case": case.to_dict()}


@router.get("/{case_id}/progress", response_model=ProgressResponse)
def case_progress(
	case_id: str,
	user_id: Optional[str] = None,
	store: CaseStore = Depends(get_store),
	user: Optional[User] = Depends(get_current_user),
):
	if not (user_id or "").strip():
		raise ValidationError("Missing user ID")
	ensure_same_user(user, user_id)
	case = store.get_case(case_id)
	if case is None:
		raise NotFoundError(f"Case {case_id!r} not found")
	total = len(case.questions or [])
	attempts = store.attempts_for(user_id.strip(), case_id)
	next_index, complete = 0, False
	if attempts:
		last = attempts[-1]
		next_index, complete = progression(last.question_index, last.is_correct, total)
	return {
		"case_id": case_id,
		"next_question_index": next_index,
		"is_complete": complete,
		"total_questions": total,
		"attempts": [a.to_dict() for a in attempts],
	}
