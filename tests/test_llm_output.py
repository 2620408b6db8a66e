import pytest

from practicelab.errors import MalformedModelOutputError
from practicelab.llm_output import extract_json_object, validate_model_output
from practicelab.schemas import CaseDraft, Evaluation

from conftest import case_payload


def test_extracts_object_surrounded_by_prose():
    raw = 'Here you go: {"score": 50, "is_correct": false} -- end'
    assert extract_json_object(raw) == {"score": 50, "is_correct": False}


@pytest.mark.parametrize("raw", ["", "no json here", "} backwards {", '{"score": 50,', "[1, 2, 3]"])
def test_rejects_missing_or_broken_objects(raw):
    with pytest.raises(MalformedModelOutputError):
        extract_json_object(raw)


def test_stray_brace_in_trailing_prose_is_malformed():
    raw = '{"score": 50} and a stray } brace'
    with pytest.raises(MalformedModelOutputError):
        extract_json_object(raw)


def test_case_draft_coerces_string_level():
    payload = case_payload("A fresh bakery story", "bakery", level="2")
    draft = validate_model_output(CaseDraft, payload)
    assert draft.level == 2


@pytest.mark.parametrize(
    "change",
    [
        {"title": "Hi"},
        {"case_text": "Too short to be a case."},
        {"questions": ["Why is this?", "What now?"]},
        {"questions": ["Short", "ok?", "Third question here?"]},
        {"questions": [f"Question number {i}?" for i in range(6)]},
        {"level": 3},
        {"level": "hard"},
        {"level": 1.5},
    ],
)
def test_case_draft_schema_failures_are_malformed_output(change):
    payload = {**case_payload("A fresh bakery story", "bakery"), **change}
    with pytest.raises(MalformedModelOutputError):
        validate_model_output(CaseDraft, payload)


def test_evaluation_defaults_lists_and_requires_boolean():
    evaluation = validate_model_output(Evaluation, {"score": 70, "is_correct": True, "explanation": "Mostly right."})
    assert evaluation.guidance == []
    assert evaluation.misconceptions == []

    with pytest.raises(MalformedModelOutputError):
        validate_model_output(Evaluation, {"score": 70, "is_correct": "yes", "explanation": "Mostly right."})
    with pytest.raises(MalformedModelOutputError):
        validate_model_output(Evaluation, {"score": 140, "is_correct": True, "explanation": "Too generous."})


@pytest.mark.parametrize("score", [True, False, "85", None, float("nan")])
def test_evaluation_score_must_be_a_json_number(score):
    with pytest.raises(MalformedModelOutputError):
        validate_model_output(Evaluation, {"score": score, "is_correct": True, "explanation": "ok"})


def test_evaluation_score_is_rounded():
    evaluation = validate_model_output(Evaluation, {"score": 82.6, "is_correct": True, "explanation": "ok"})
    assert evaluation.score == 83
    assert isinstance(evaluation.score, int)
