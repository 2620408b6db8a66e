from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional, Sequence
from .errors import UpstreamError
from .settings import settings

logger = logging.getLogger(__name__)

# Chat-template terminators emitted by local models, plus code fences
DEFAULT_STOP: List[str] = ["<|im_end|>", "</s>", "```"]


class CompletionClient:
	def __init__(
		self,
		*,
		provider: Optional[str] = None,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		api_key: Optional[str] = None,
		json_mode: Optional[bool] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.provider = provider or settings.llm_provider
		self.json_mode = settings.llm_json_mode if json_mode is None else json_mode
		if self.provider == "gemini":
			self.api_key = api_key or settings.gemini_api_key
			if not self.api_key:
				raise ValueError("GEMINI_API_KEY is not configured")
			self.model = model or settings.gemini_model
			# Google AI Studio (Generative Language API)
			self.url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
		elif self.provider == "openai":
			self.api_key = api_key or settings.llm_api_key
			self.model = model or settings.llm_model
			self.url = f"{(base_url or settings.llm_base_url).rstrip('/')}/chat/completions"
		else:
			raise ValueError(f"Unknown LLM_PROVIDER: {self.provider}")
		self._client = http_client or httpx.AsyncClient(timeout=settings.llm_timeout_seconds)
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {settings.openrouter_api_key}" if settings.openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}

	async def complete(
		self,
		prompt: str,
		*,
		temperature: float = 0.2,
		max_tokens: int = 600,
		stop: Optional[Sequence[str]] = None,
	) -> str:
		stop_sequences = list(DEFAULT_STOP if stop is None else stop)
		try:
			if self.provider == "gemini":
				return await self._complete_gemini(prompt, temperature, max_tokens, stop_sequences)
			return await self._complete_chat(prompt, temperature, max_tokens, stop_sequences)
		except UpstreamError as primary_error:
			if not self._fallback_enabled:
				raise
			logger.warning("Primary completion failed (%s); trying OpenRouter fallback", primary_error)
			return await self._fallback_complete(prompt, temperature, max_tokens, stop_sequences, primary_error)

	async def _complete_chat(self, prompt: str, temperature: float, max_tokens: int, stop: List[str]) -> str:
		headers: Dict[str, str] = {"Content-Type": "application/json"}
		if self.api_key:
			headers["Authorization"] = f"Bearer {self.api_key}"
		payload: Dict[str, Any] = {
			"model": self.model,
			"messages": [{"role": "user", "content": prompt}],
			"temperature": temperature,
			"max_tokens": max_tokens,
			"stop": stop,
		}
		if self.json_mode:
			payload["response_format"] = {"type": "json_object"}
		data = await self._post_json(self.url, payload, headers=headers, optional_key="response_format")
		try:
			return data["choices"][0]["message"]["content"] or ""
		except (KeyError, IndexError, TypeError) as exc:
			raise UpstreamError(f"Unexpected completion response: {data!r}"[:500]) from exc

	async def _complete_gemini(self, prompt: str, temperature: float, max_tokens: int, stop: List[str]) -> str:
		generation_config: Dict[str, Any] = {
			"temperature": temperature,
			"maxOutputTokens": max_tokens,
			# Gemini caps stop sequences at 5
			"stopSequences": stop[:5],
		}
		if self.json_mode:
			generation_config["responseMimeType"] = "application/json"
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"generationConfig": generation_config,
		}
		data = await self._post_json(
			self.url,
			payload,
			headers={"x-goog-api-key": self.api_key},
			optional_key="generationConfig.responseMimeType",
		)
		try:
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (KeyError, IndexError, TypeError) as exc:
			raise UpstreamError(f"Unexpected Gemini response: {data!r}"[:500]) from exc

	async def _post_json(
		self,
		url: str,
		payload: Dict[str, Any],
		*,
		headers: Dict[str, str],
		optional_key: Optional[str] = None,
	) -> Dict[str, Any]:
		try:
			r = await self._client.post(url, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			# Some servers reject structured-output options; retry once without them
			stripped = _without_key(payload, optional_key) if self.json_mode and optional_key else None
			if stripped is None or http_err.response.status_code != 400:
				raise UpstreamError(f"Completion request failed with HTTP {http_err.response.status_code}") from http_err
			logger.info("Provider rejected JSON output mode; retrying without it")
			try:
				r = await self._client.post(url, headers=headers, json=stripped)
				r.raise_for_status()
			except httpx.HTTPError as err:
				raise UpstreamError(f"Completion request failed: {err}") from err
		except httpx.RequestError as net_err:
			raise UpstreamError(f"Completion request failed: {net_err}") from net_err
		try:
			return r.json()
		except ValueError as exc:
			raise UpstreamError(f"Completion response was not JSON: {r.text[:200]}") from exc

	async def _fallback_complete(
		self,
		prompt: str,
		temperature: float,
		max_tokens: int,
		stop: List[str],
		primary_error: UpstreamError,
	) -> str:
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
			"temperature": temperature,
			"max_tokens": max_tokens,
			"stop": stop,
		}
		try:
			r = await self._client.post(self._openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"] or ""
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise UpstreamError(
				f"Primary completion failed ({primary_error.detail}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()


def _without_key(payload: Dict[str, Any], dotted: str) -> Optional[Dict[str, Any]]:
	head, _, rest = dotted.partition(".")
	if head not in payload:
		return None
	copy = dict(payload)
	if not rest:
		copy.pop(head)
		return copy
	if not isinstance(copy[head], dict):
		return None
	inner = _without_key(copy[head], rest)
	if inner is None:
		return None
	copy[head] = inner
	return copy
