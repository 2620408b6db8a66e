from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from .errors import MalformedModelOutputError, NoCaseAvailableError, NoveltyExhaustedError, ValidationError
from .generator import CaseGenerator, validate_case_request
from .models import CaseStudy
from .store import CaseStore

logger = logging.getLogger(__name__)


@dataclass
class SelectedCase:
	source: str  # "existing" | "generated"
	case: CaseStudy


class CaseSelector:
	def __init__(self, store: CaseStore, generator: CaseGenerator, rng: Optional[random.Random] = None) -> None:
		self.store = store
		self.generator = generator
		self.rng = rng or random.Random()

	async def select_case(self, user_id: str, category: str, level: int) -> SelectedCase:
		if not isinstance(user_id, str) or not user_id.strip():
			raise ValidationError("user_id is required")
		category, level = validate_case_request(category, level)

		seen = await run_in_threadpool(self.store.seen_case_ids, user_id)
		unseen = await run_in_threadpool(self.store.find_cases, category, level, exclude_ids=seen)
		if unseen:
			return SelectedCase(source="existing", case=self.rng.choice(unseen))

		logger.info("User %s has no unseen %s/%d cases (%d seen); generating", user_id, category, level, len(seen))
		try:
			generated = await self.generator.generate_case(category, level)
		except (NoveltyExhaustedError, MalformedModelOutputError) as exc:
			raise NoCaseAvailableError(
				f"No unseen case for {category!r} level {level} and generation failed: {exc.detail}",
				extra={"category": category, "level": level, "cause": exc.error_code},
			) from exc
		return SelectedCase(source="generated", case=generated.case)
