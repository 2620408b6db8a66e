"""Novelty-gated case generation.

Neighbors from the same category/level are fed to the model as "do not copy"
context, then every draft is re-embedded and compared against the bucket
again. Drafts at or above the similarity threshold are discarded; malformed
drafts use up a try the same way. Nothing is written until a draft passes.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Tuple

from fastapi.concurrency import run_in_threadpool

from .embeddings import Embedder
from .errors import (
	GenerationInProgressError,
	MalformedModelOutputError,
	NoveltyExhaustedError,
	ValidationError,
)
from .llm_client import CompletionClient
from .llm_output import extract_json_object, validate_model_output
from .models import CaseStudy
from .prompts import build_case_prompt
from .schemas import LEVEL_NAMES, CaseDraft
from .settings import settings
from .store import CaseStore

logger = logging.getLogger(__name__)

GENERATION_TEMPERATURE = 0.3
GENERATION_MAX_TOKENS = 650


@dataclass
class GeneratedCase:
	case: CaseStudy
	best_similarity: float


class GenerationGuard:
	"""Per-process Idle -> Generating -> Idle state for each (category, level)."""

	def __init__(self) -> None:
		self._active: Set[Tuple[str, int]] = set()

	@contextmanager
	def hold(self, category: str, level: int) -> Iterator[None]:
		key = (category, level)
		# No await between the check and the add, so this is atomic on one event loop
		if key in self._active:
			raise GenerationInProgressError(
				f"A case for {category!r} level {level} is already being generated",
				extra={"category": category, "level": level},
			)
		self._active.add(key)
		try:
			yield
		finally:
			self._active.discard(key)

	def is_generating(self, category: str, level: int) -> bool:
		return (category, level) in self._active


def validate_case_request(category: object, level: object) -> Tuple[str, int]:
	name = str(category).strip() if isinstance(category, str) else ""
	if not name:
		raise ValidationError("category is required")
	if isinstance(level, bool) or level not in (0, 1, 2):
		raise ValidationError("level must be 0, 1, or 2")
	return name, int(level)


def intent_text(category: str, level: int) -> str:
	return f"Generate a {LEVEL_NAMES[level]} (level {level}) difficulty educational case study in {category}."


class CaseGenerator:
	def __init__(
		self,
		store: CaseStore,
		embedder: Embedder,
		llm: CompletionClient,
		*,
		max_tries: Optional[int] = None,
		threshold: Optional[float] = None,
		match_count: Optional[int] = None,
		guard: Optional[GenerationGuard] = None,
	) -> None:
		self.store = store
		self.embedder = embedder
		self.llm = llm
		self.max_tries = max_tries if max_tries is not None else settings.generation_max_tries
		self.threshold = threshold if threshold is not None else settings.novelty_threshold
		self.match_count = match_count if match_count is not None else settings.match_count
		self.guard = guard

	async def generate_case(self, category: str, level: int) -> GeneratedCase:
		category, level = validate_case_request(category, level)
		if self.guard is None:
			return await self._generate(category, level)
		with self.guard.hold(category, level):
			return await self._generate(category, level)

	async def _generate(self, category: str, level: int) -> GeneratedCase:
		query_embedding = await self.embedder.embed(intent_text(category, level))
		neighbors = [m.case for m in await self._match(query_embedding, category, level)]

		rejected_titles: List[str] = []
		last_malformed: Optional[MalformedModelOutputError] = None
		best_rejected = 0.0
		for attempt in range(1, self.max_tries + 1):
			prompt = build_case_prompt(category, level, neighbors, rejected_titles)
			raw = await self.llm.complete(
				prompt,
				temperature=GENERATION_TEMPERATURE,
				max_tokens=GENERATION_MAX_TOKENS,
			)
			try:
				draft = self._parse_draft(raw, category, level)
			except MalformedModelOutputError as exc:
				logger.warning("Discarding malformed draft %d/%d for %s/%d: %s", attempt, self.max_tries, category, level, exc.detail)
				last_malformed = exc
				continue

			candidate_embedding = await self.embedder.embed(draft.embedding_text())
			closest = await self._match(candidate_embedding, category, level)
			best_similarity = closest[0].similarity if closest else 0.0
			if best_similarity >= self.threshold:
				logger.info(
					"Draft %d/%d for %s/%d too similar to %r (%.3f >= %.2f)",
					attempt, self.max_tries, category, level, closest[0].case.title, best_similarity, self.threshold,
				)
				rejected_titles.append(draft.title)
				best_rejected = max(best_rejected, best_similarity)
				continue

			case = await run_in_threadpool(self.store.insert_case, draft, candidate_embedding)
			logger.info("Stored generated case %s for %s/%d (best similarity %.3f)", case.id, category, level, best_similarity)
			return GeneratedCase(case=case, best_similarity=best_similarity)

		if not rejected_titles and last_malformed is not None:
			raise last_malformed
		raise NoveltyExhaustedError(
			f"Could not generate an original case for {category!r} level {level} in {self.max_tries} tries",
			extra={"category": category, "level": level, "best_similarity": best_rejected},
		)

	async def _match(self, embedding: List[float], category: str, level: int):
		return await run_in_threadpool(self.store.match_cases, embedding, category, level, self.match_count)

	def _parse_draft(self, raw: str, category: str, level: int) -> CaseDraft:
		draft = validate_model_output(CaseDraft, extract_json_object(raw))
		if draft.category != category or draft.level != level:
			logger.warning(
				"Model labelled draft %s/%d; storing under requested %s/%d",
				draft.category, draft.level, category, level,
			)
		return draft.model_copy(update={"category": category, "level": level})
