"""Load case studies from a JSON file into the store.

	python -m practicelab.seed data/seed_cases.json

Each entry is validated like a generated draft and embedded before insert, so
seeded rows obey the same embedding invariant as generated ones.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List

from .db import SessionLocal, init_db
from .embeddings import Embedder
from .errors import MalformedModelOutputError
from .llm_output import validate_model_output
from .providers import get_case_index, get_embedder
from .schemas import CaseDraft
from .store import CaseStore

logger = logging.getLogger(__name__)


def load_drafts(path: Path) -> List[CaseDraft]:
	payload: Any = json.loads(path.read_text(encoding="utf-8"))
	if isinstance(payload, dict):
		payload = payload.get("cases", [])
	if not isinstance(payload, list):
		raise ValueError(f"{path} must contain a JSON array of cases")
	drafts: List[CaseDraft] = []
	for i, entry in enumerate(payload):
		try:
			drafts.append(validate_model_output(CaseDraft, entry if isinstance(entry, dict) else {}))
		except MalformedModelOutputError as exc:
			raise ValueError(f"{path} entry {i}: {exc.detail}") from exc
	return drafts


async def seed_cases(store: CaseStore, embedder: Embedder, drafts: List[CaseDraft], *, skip_existing: bool = True) -> int:
	inserted = 0
	for draft in drafts:
		if skip_existing and any(c.title == draft.title for c in store.find_cases(draft.category, draft.level)):
			logger.info("Skipping existing case %r", draft.title)
			continue
		embedding = await embedder.embed(draft.embedding_text())
		store.insert_case(draft, embedding)
		inserted += 1
	return inserted


def main(argv=None) -> int:
	parser = argparse.ArgumentParser(description="Seed case studies into the practice lab database")
	parser.add_argument("path", type=Path, help="JSON file with an array of case objects")
	parser.add_argument("--allow-duplicates", action="store_true", help="insert even if a case with the same title exists")
	args = parser.parse_args(argv)

	logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
	drafts = load_drafts(args.path)
	init_db()
	db = SessionLocal()
	try:
		count = asyncio.run(seed_cases(CaseStore(db, get_case_index()), get_embedder(), drafts, skip_existing=not args.allow_duplicates))
	finally:
		db.close()
	logger.info("Inserted %d of %d cases", count, len(drafts))
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
