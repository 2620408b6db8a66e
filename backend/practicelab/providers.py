from __future__ import annotations
import threading
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from .case_index import CaseIndex
from .db import SessionLocal, get_db
from .embeddings import Embedder, SentenceTransformerEmbedder
from .evaluator import AnswerEvaluator
from .generator import CaseGenerator, GenerationGuard
from .llm_client import CompletionClient
from .selector import CaseSelector
from .settings import settings
from .store import CaseStore

# Sync dependencies run in the threadpool; construction of each handle must happen once
_provider_lock = threading.Lock()


@lru_cache(maxsize=1)
def _embedder() -> Embedder:
	return SentenceTransformerEmbedder()


@lru_cache(maxsize=1)
def _completion_client() -> CompletionClient:
	return CompletionClient()


@lru_cache(maxsize=1)
def _case_index() -> CaseIndex:
	return CaseIndex.from_settings()


@lru_cache(maxsize=1)
def _generation_guard() -> GenerationGuard:
	return GenerationGuard()


# Process-wide provider handles, created on first use
def get_embedder() -> Embedder:
	with _provider_lock:
		return _embedder()


def get_completion_client() -> CompletionClient:
	with _provider_lock:
		return _completion_client()


def get_case_index() -> CaseIndex:
	with _provider_lock:
		return _case_index()


def get_generation_guard() -> Optional[GenerationGuard]:
	if not settings.generation_lock_enabled:
		return None
	with _provider_lock:
		return _generation_guard()


def sync_case_index() -> int:
	db = SessionLocal()
	try:
		return CaseStore(db, get_case_index()).sync_index()
	finally:
		db.close()


async def close_providers() -> None:
	with _provider_lock:
		client = _completion_client() if _completion_client.cache_info().currsize else None
		_completion_client.cache_clear()
	if client is not None:
		await client.aclose()


def get_store(db: Session = Depends(get_db), index: CaseIndex = Depends(get_case_index)) -> CaseStore:
	return CaseStore(db, index)


def get_generator(
	store: CaseStore = Depends(get_store),
	embedder: Embedder = Depends(get_embedder),
	llm: CompletionClient = Depends(get_completion_client),
	guard: Optional[GenerationGuard] = Depends(get_generation_guard),
) -> CaseGenerator:
	return CaseGenerator(store, embedder, llm, guard=guard)


def get_selector(
	store: CaseStore = Depends(get_store),
	generator: CaseGenerator = Depends(get_generator),
) -> CaseSelector:
	return CaseSelector(store, generator)


def get_evaluator(
	store: CaseStore = Depends(get_store),
	llm: CompletionClient = Depends(get_completion_client),
) -> AnswerEvaluator:
	return AnswerEvaluator(store, llm)
