"""Embedding provider.

The sentence-transformers model is loaded on first use and shared for the
life of the process; encoding runs in a worker thread so request handlers
keep the event loop free.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, List, Optional, Protocol

from .errors import UpstreamError
from .settings import settings

logger = logging.getLogger(__name__)


class Embedder(Protocol):
	async def embed(self, text: str) -> List[float]:
		...


def _load_sentence_transformer(model_name: str):
	from sentence_transformers import SentenceTransformer

	return SentenceTransformer(model_name)


class SentenceTransformerEmbedder:
	"""Mean-pooled, L2-normalized sentence embeddings."""

	def __init__(self, model_name: Optional[str] = None, model_factory: Optional[Callable] = None) -> None:
		self.model_name = model_name or settings.embed_model
		self._model_factory = model_factory or _load_sentence_transformer
		self._model = None
		self._lock = threading.Lock()

	def _load(self):
		if self._model is None:
			with self._lock:
				if self._model is None:
					logger.info("Loading embedding model %s", self.model_name)
					self._model = self._model_factory(self.model_name)
		return self._model

	def _encode(self, text: str) -> List[float]:
		vector = self._load().encode([text], convert_to_numpy=True, normalize_embeddings=True)[0]
		return vector.astype(float).tolist()

	async def embed(self, text: str) -> List[float]:
		try:
			return await asyncio.to_thread(self._encode, text)
		except (OSError, RuntimeError, ValueError) as exc:
			raise UpstreamError(f"Embedding failed: {exc}") from exc
