from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, JSON, ForeignKey, Index
from .db import Base


def _new_id() -> str:
	return uuid.uuid4().hex


class CaseStudy(Base):
	__tablename__ = "case_studies"
	id = Column(String(36), primary_key=True, default=_new_id)
	category = Column(String(128), nullable=False, index=True)
	# 0 = easy, 1 = medium, 2 = hard
	level = Column(Integer, nullable=False)
	title = Column(String(256), nullable=False)
	case_text = Column(Text, nullable=False)
	questions = Column(JSON, nullable=False)
	# Embedding of title + case_text + questions; written together with them, never alone
	embedding = Column(JSON, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (Index("ix_case_studies_category_level", "category", "level"),)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"title": self.title,
			"category": self.category,
			"level": self.level,
			"case_text": self.case_text,
			"questions": list(self.questions or []),
		}


class Attempt(Base):
	__tablename__ = "attempts"
	id = Column(String(36), primary_key=True, default=_new_id)
	# Owned by the external auth provider
	user_id = Column(String(128), nullable=False, index=True)
	case_id = Column(String(36), ForeignKey("case_studies.id"), nullable=False, index=True)
	question_index = Column(Integer, nullable=False)
	question_text = Column(Text, nullable=False)
	answer_text = Column(Text, nullable=False)
	score = Column(Integer, nullable=False)
	is_correct = Column(Boolean, nullable=False)
	feedback = Column(JSON, nullable=False)  # {explanation, misconceptions}
	guidance = Column(JSON, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"case_id": self.case_id,
			"question_index": self.question_index,
			"question_text": self.question_text,
			"score": self.score,
			"is_correct": self.is_correct,
			"feedback": self.feedback,
			"guidance": list(self.guidance or []),
		}
