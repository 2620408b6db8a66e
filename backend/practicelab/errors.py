"""Error taxonomy shared by the pipeline components and the HTTP layer.

Components raise these; ``main`` installs a single handler that renders any
``PracticeLabError`` as ``{"detail": ..., "error_code": ...}`` with the
class's status code.
"""
from __future__ import annotations
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class PracticeLabError(Exception):
	status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
	error_code: str = "INTERNAL_ERROR"

	def __init__(self, detail: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
		super().__init__(detail)
		self.detail = detail
		self.extra = extra or {}


class ValidationError(PracticeLabError):
	"""Malformed or missing caller input."""

	status_code = status.HTTP_400_BAD_REQUEST
	error_code = "VALIDATION_ERROR"


class AuthenticationError(PracticeLabError):
	status_code = status.HTTP_401_UNAUTHORIZED
	error_code = "AUTHENTICATION_FAILED"


class AuthorizationError(PracticeLabError):
	status_code = status.HTTP_403_FORBIDDEN
	error_code = "AUTHORIZATION_FAILED"


class NotFoundError(PracticeLabError):
	status_code = status.HTTP_404_NOT_FOUND
	error_code = "NOT_FOUND"


class GenerationInProgressError(PracticeLabError):
	status_code = status.HTTP_409_CONFLICT
	error_code = "GENERATION_IN_PROGRESS"


class MalformedModelOutputError(PracticeLabError):
	"""Completion text was not a JSON object or failed schema validation."""

	status_code = status.HTTP_502_BAD_GATEWAY
	error_code = "MALFORMED_MODEL_OUTPUT"


class UpstreamError(PracticeLabError):
	"""A store or provider call itself failed (network, auth, bad response)."""

	status_code = status.HTTP_502_BAD_GATEWAY
	error_code = "UPSTREAM_ERROR"


class NoveltyExhaustedError(PracticeLabError):
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	error_code = "NOVELTY_EXHAUSTED"


class NoCaseAvailableError(PracticeLabError):
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	error_code = "NO_CASE_AVAILABLE"


async def _handle_practicelab_error(request: Request, exc: PracticeLabError) -> JSONResponse:
	headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
	return JSONResponse(
		status_code=exc.status_code,
		content={"detail": exc.detail, "error_code": exc.error_code},
		headers=headers,
	)


def register_error_handlers(app: FastAPI) -> None:
	app.add_exception_handler(PracticeLabError, _handle_practicelab_error)
