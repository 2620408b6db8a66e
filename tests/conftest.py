import json
import math
import uuid
from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from practicelab.case_index import CaseIndex, open_collection
from practicelab.db import Base
from practicelab import models  # noqa: F401  (registers tables)
from practicelab.models import CaseStudy
from practicelab.store import CaseStore


VOCAB = ["river", "bakery", "election", "robot", "garden", "coffee", "ethics", "lab"]


class KeywordEmbedder:
    """Counts a few topic words; texts sharing no topic word are orthogonal."""

    def __init__(self, vocab=VOCAB):
        self.vocab = list(vocab)
        self.calls: List[str] = []

    def vector(self, text: str) -> List[float]:
        lower = text.lower()
        raw = [float(lower.count(word)) for word in self.vocab]
        norm = math.sqrt(sum(v * v for v in raw))
        return [v / norm for v in raw] if norm else raw

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return self.vector(text)


class ScriptedLLM:
    """Returns queued completions in order; exceptions in the queue are raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.prompts: List[str] = []
        self.kwargs: List[dict] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def complete(self, prompt, **kwargs):
        self.prompts.append(prompt)
        self.kwargs.append(kwargs)
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def case_payload(title, topic, *, category="Ethics", level=1, questions=3):
    body = (
        f"This scenario follows a small team dealing with a {topic} problem. "
        f"Everyone involved has a different view of what the {topic} situation demands, "
        "and the facts are incomplete."
    )
    return {
        "title": title,
        "category": category,
        "level": level,
        "case_text": body,
        "questions": [f"Question {i + 1} about the {topic} dilemma?" for i in range(questions)],
    }


def case_json(title, topic, **kwargs):
    return "Sure! Here is the case:\n" + json.dumps(case_payload(title, topic, **kwargs)) + "\nHope this helps."


def evaluation_json(score=85, is_correct=True, explanation="Good reasoning about confounders.", guidance=None, misconceptions=None):
    return json.dumps(
        {
            "score": score,
            "is_correct": is_correct,
            "explanation": explanation,
            "guidance": guidance if guidance is not None else ["Consider other variables."],
            "misconceptions": misconceptions if misconceptions is not None else [],
        }
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def case_index():
    # In-memory Chroma clients share state within a process, so each test gets its own collection
    return CaseIndex(open_collection(f"cases-{uuid.uuid4().hex}"))


@pytest.fixture
def store(db_session, case_index):
    return CaseStore(db_session, case_index)


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def add_case(db_session, embedder, case_index):
    def _add(title="Existing river case", topic="river", *, category="Ethics", level=1, questions=3, embedding=None):
        payload = case_payload(title, topic, category=category, level=level, questions=questions)
        text = "\n".join([payload["title"], payload["case_text"], *payload["questions"]])
        row = CaseStudy(
            category=category,
            level=level,
            title=payload["title"],
            case_text=payload["case_text"],
            questions=payload["questions"],
            embedding=embedding if embedding is not None else embedder.vector(text),
        )
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        case_index.add(row.id, row.embedding, row.category, row.level)
        return row

    return _add
