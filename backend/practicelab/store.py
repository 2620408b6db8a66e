from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .case_index import CaseIndex
from .errors import UpstreamError
from .models import Attempt, CaseStudy
from .schemas import CaseDraft

logger = logging.getLogger(__name__)


@dataclass
class CaseMatch:
	case: CaseStudy
	similarity: float


class CaseStore:
	"""Case studies and attempts in one SQLAlchemy session, case vectors in a CaseIndex."""

	def __init__(self, db: Session, index: CaseIndex) -> None:
		self.db = db
		self.index = index

	def seen_case_ids(self, user_id: str) -> Set[str]:
		stmt = select(Attempt.case_id).where(Attempt.user_id == user_id).distinct()
		return set(self._run(lambda: self.db.execute(stmt).scalars().all(), "load attempted cases"))

	def find_cases(self, category: str, level: int, exclude_ids: Iterable[str] = ()) -> List[CaseStudy]:
		stmt = select(CaseStudy).where(CaseStudy.category == category, CaseStudy.level == level)
		exclude = list(exclude_ids)
		if exclude:
			stmt = stmt.where(CaseStudy.id.not_in(exclude))
		return list(self._run(lambda: self.db.execute(stmt).scalars().all(), "query cases"))

	def match_cases(self, embedding: Sequence[float], category: str, level: int, count: int) -> List[CaseMatch]:
		hits = self.index.nearest(embedding, category, level, count)
		if not hits:
			return []
		stmt = select(CaseStudy).where(CaseStudy.id.in_([case_id for case_id, _ in hits]))
		rows = {row.id: row for row in self._run(lambda: self.db.execute(stmt).scalars().all(), "load matches")}
		# Index entries without a row (insert rolled back after indexing) are skipped
		return [CaseMatch(case=rows[case_id], similarity=similarity) for case_id, similarity in hits if case_id in rows]

	def get_case(self, case_id: str) -> Optional[CaseStudy]:
		return self._run(lambda: self.db.get(CaseStudy, case_id), "load case")

	def categories(self) -> List[str]:
		stmt = select(CaseStudy.category).distinct()
		values = self._run(lambda: self.db.execute(stmt).scalars().all(), "list categories")
		return sorted({str(v).strip() for v in values if v and str(v).strip()})

	def insert_case(self, draft: CaseDraft, embedding: Sequence[float]) -> CaseStudy:
		row = CaseStudy(
			category=draft.category,
			level=draft.level,
			title=draft.title,
			case_text=draft.case_text,
			questions=list(draft.questions),
			embedding=list(embedding),
		)
		return self._insert(row, "insert case", before_commit=self._index_row)

	def sync_index(self) -> int:
		"""Index every stored case the vector index does not know about yet."""
		known = set(self.index.ids())
		stmt = select(CaseStudy)
		if known:
			stmt = stmt.where(CaseStudy.id.not_in(known))
		rows = self._run(lambda: self.db.execute(stmt).scalars().all(), "load unindexed cases")
		added = self.index.add_many((row.id, row.embedding, row.category, row.level) for row in rows if row.embedding)
		if added:
			logger.info("Indexed %d stored cases", added)
		return added

	def _index_row(self, row: CaseStudy) -> None:
		self.index.add(row.id, row.embedding, row.category, row.level)

	def insert_attempt(self, **fields: Any) -> Attempt:
		return self._insert(Attempt(**fields), "insert attempt")

	def attempts_for(self, user_id: str, case_id: str) -> List[Attempt]:
		stmt = (
			select(Attempt)
			.where(Attempt.user_id == user_id, Attempt.case_id == case_id)
			.order_by(Attempt.created_at, Attempt.question_index)
		)
		return list(self._run(lambda: self.db.execute(stmt).scalars().all(), "load attempts"))

	def ping(self) -> Dict[str, Any]:
		self._run(lambda: self.db.execute(text("SELECT 1")), "ping")
		sample = self._run(lambda: self.db.execute(select(CaseStudy.id).limit(1)).first(), "ping")
		return {"ok": True, "has_cases": sample is not None}

	def _insert(self, row, operation: str, before_commit=None):
		try:
			self.db.add(row)
			self.db.flush()
			if before_commit is not None:
				before_commit(row)
			self.db.commit()
			self.db.refresh(row)
		except UpstreamError:
			self.db.rollback()
			raise
		except SQLAlchemyError as exc:
			self.db.rollback()
			logger.error("Database %s failed: %s", operation, exc)
			raise UpstreamError(f"Database operation failed: {operation}") from exc
		return row

	def _run(self, fn, operation: str):
		try:
			return fn()
		except SQLAlchemyError as exc:
			self.db.rollback()
			logger.error("Database %s failed: %s", operation, exc)
			raise UpstreamError(f"Database operation failed: {operation}") from exc
