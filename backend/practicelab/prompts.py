from __future__ import annotations
from typing import Iterable, List, Sequence

from .models import CaseStudy
from .schemas import LEVEL_NAMES

NEIGHBOR_BODY_CHARS = 220


def _neighbor_summary(index: int, case: CaseStudy) -> str:
	questions = list(case.questions or [])[:3]
	body = str(case.case_text or "")[:NEIGHBOR_BODY_CHARS]
	return (
		f"# Existing case {index}\n"
		f"Title: {case.title}\n"
		f"Summary: {body}...\n"
		f"Questions: {' | '.join(questions)}\n"
	)


def build_case_prompt(
	category: str,
	level: int,
	neighbors: Sequence[CaseStudy],
	rejected_titles: Iterable[str] = (),
) -> str:
	neighbor_block = "\n".join(_neighbor_summary(i, c) for i, c in enumerate(neighbors, start=1)) or "(none yet)"
	rejected: List[str] = [t for t in rejected_titles if t]
	retry_block = ""
	if rejected:
		retry_block = (
			"Your previous drafts were rejected as near-duplicates of existing cases:\n"
			+ "\n".join(f"- {t}" for t in rejected)
			+ "\nChoose a clearly different setting, cast and surface story this time.\n\n"
		)
	return (
		"You are generating educational case studies for a university learning platform.\n"
		"Goal: create ONE NEW case study that is clearly different from the existing cases below.\n\n"
		"Constraints:\n"
		f"- Must be in category: \"{category}\"\n"
		f"- Difficulty level: {level} ({LEVEL_NAMES.get(level, level)}; 0=easy, 1=medium, 2=hard)\n"
		"- Must be fictional and student-friendly\n"
		"- Must test reasoning, not memorization\n"
		"- Must NOT be a near-duplicate of the existing cases (different setting, different surface story, different distractors)\n\n"
		f"Existing similar cases (DO NOT copy these):\n{neighbor_block}\n\n"
		f"{retry_block}"
		"Return ONLY valid JSON. No markdown. No extra text.\n"
		"JSON schema:\n"
		"{\n"
		"  \"title\": string,\n"
		f"  \"category\": \"{category}\",\n"
		f"  \"level\": {level},\n"
		"  \"case_text\": string,\n"
		"  \"questions\": string[]\n"
		"}\n\n"
		"Rules:\n"
		"- case_text: 140-220 words, 1-2 short paragraphs\n"
		"- questions: exactly 3\n"
		"- do NOT include answers"
	)


def build_evaluation_prompt(case: CaseStudy, question_index: int, question_text: str, answer_text: str) -> str:
	return (
		"You are an AI tutor evaluating a student's reasoning for an educational practice app.\n"
		"This is NOT medical advice.\n\n"
		"CRITICAL RULES:\n"
		"- Return ONLY valid JSON. No markdown. No extra words.\n"
		"- Evaluate ONLY the single question given below (ignore other questions).\n"
		"- If the student is wrong, DO NOT reveal the correct answer directly.\n"
		"- Do not name specific \"final answers\" explicitly. Use hints and guidance instead.\n"
		"- Keep explanation short (1-2 sentences).\n\n"
		f"Case Title: {case.title}\n"
		f"Category: {case.category}\n"
		f"Difficulty Level: {case.level} ({LEVEL_NAMES.get(case.level, case.level)})\n\n"
		f"Case:\n{case.case_text}\n\n"
		f"Current Question ({question_index + 1}):\n{question_text}\n\n"
		f"Student Answer:\n{answer_text}\n\n"
		"Return JSON schema exactly:\n"
		"{\n"
		"  \"score\": number,\n"
		"  \"is_correct\": boolean,\n"
		"  \"explanation\": string,\n"
		"  \"guidance\": string[],\n"
		"  \"misconceptions\": string[]\n"
		"}\n\n"
		"Scoring guidance:\n"
		"- 90-100: correct and well-explained\n"
		"- 60-89: mostly correct but missing reasoning\n"
		"- 30-59: partially correct with major gaps\n"
		"- 0-29: incorrect reasoning\n\n"
		"Remember: if wrong, guide without giving away the answer."
	)
