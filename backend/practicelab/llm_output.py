from __future__ import annotations
import json
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError as SchemaError

from .errors import MalformedModelOutputError

T = TypeVar("T", bound=BaseModel)


def extract_json_object(text: str) -> Dict[str, Any]:
	# First "{" to last "}"; a stray brace inside prose will break this, so callers
	# always re-validate the result against a schema.
	raw = text or ""
	first = raw.find("{")
	last = raw.rfind("}")
	if first == -1 or last == -1 or last <= first:
		raise MalformedModelOutputError("Model did not return a JSON object")
	try:
		data = json.loads(raw[first : last + 1])
	except json.JSONDecodeError as exc:
		raise MalformedModelOutputError(f"Model returned invalid JSON: {exc.msg}") from exc
	if not isinstance(data, dict):
		raise MalformedModelOutputError("Model JSON was not an object")
	return data


def validate_model_output(schema: Type[T], data: Dict[str, Any]) -> T:
	try:
		return schema.model_validate(data)
	except SchemaError as exc:
		fields = ", ".join(".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors())
		raise MalformedModelOutputError(
			f"Model output failed {schema.__name__} validation ({fields})",
			extra={"errors": exc.errors(include_url=False)},
		) from exc
