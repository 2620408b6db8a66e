"""Nearest-neighbour index over case embeddings.

Vectors live in a Chroma collection using cosine space, so a query distance
is ``1 - cosine similarity``. Each entry carries its case's category and
level as metadata and every query is filtered to one (category, level)
bucket. The relational row stays the source of truth; the index can be
rebuilt from it with ``CaseStore.sync_index``.
"""
from __future__ import annotations
import logging
from typing import Iterable, List, Sequence, Tuple

import chromadb
from chromadb.errors import ChromaError

from .errors import UpstreamError
from .settings import settings

logger = logging.getLogger(__name__)

COLLECTION_METADATA = {"hnsw:space": "cosine"}


def open_collection(name: str | None = None, path: str | None = None):
	client = chromadb.PersistentClient(path=path) if path else chromadb.EphemeralClient()
	return client.get_or_create_collection(name or settings.vector_collection, metadata=COLLECTION_METADATA)


def _bucket_filter(category: str, level: int) -> dict:
	return {"$and": [{"category": category}, {"level": int(level)}]}


class CaseIndex:
	def __init__(self, collection) -> None:
		self.collection = collection

	@classmethod
	def from_settings(cls) -> "CaseIndex":
		logger.info("Opening case index %r (%s)", settings.vector_collection, settings.vector_dir or "in-memory")
		return cls(open_collection(settings.vector_collection, settings.vector_dir))

	def add(self, case_id: str, embedding: Sequence[float], category: str, level: int) -> None:
		self._call(
			lambda: self.collection.upsert(
				ids=[case_id],
				embeddings=[[float(v) for v in embedding]],
				metadatas=[{"category": category, "level": int(level)}],
			),
			"index case",
		)

	def add_many(self, entries: Iterable[Tuple[str, Sequence[float], str, int]]) -> int:
		entries = list(entries)
		if not entries:
			return 0
		self._call(
			lambda: self.collection.upsert(
				ids=[e[0] for e in entries],
				embeddings=[[float(v) for v in e[1]] for e in entries],
				metadatas=[{"category": e[2], "level": int(e[3])} for e in entries],
			),
			"index cases",
		)
		return len(entries)

	def ids(self) -> List[str]:
		return list(self._call(lambda: self.collection.get(include=[])["ids"], "list index"))

	def nearest(self, embedding: Sequence[float], category: str, level: int, count: int) -> List[Tuple[str, float]]:
		"""(case_id, similarity) pairs from one bucket, most similar first."""
		where = _bucket_filter(category, level)
		size = len(self._call(lambda: self.collection.get(where=where, include=[])["ids"], "count bucket"))
		# Chroma rejects n_results larger than the filtered set
		n_results = min(max(0, count), size)
		if n_results == 0:
			return []
		result = self._call(
			lambda: self.collection.query(
				query_embeddings=[[float(v) for v in embedding]],
				n_results=n_results,
				where=where,
				include=["distances"],
			),
			"similarity search",
		)
		return [(case_id, 1.0 - float(distance)) for case_id, distance in zip(result["ids"][0], result["distances"][0])]

	def _call(self, fn, operation: str):
		try:
			return fn()
		except (ChromaError, ValueError) as exc:
			logger.error("Case index %s failed: %s", operation, exc)
			raise UpstreamError(f"Vector index operation failed: {operation}") from exc
