from __future__ import annotations
import httpx
from typing import Any, Dict, Optional
from .errors import GenerationUnavailable
from .settings import settings


def to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
	# Gemini's responseSchema is an OpenAPI subset: upper-case types, no additionalProperties
	out: Dict[str, Any] = {}
	for key, value in schema.items():
		if key == "additionalProperties":
			continue
		if key == "type" and isinstance(value, str):
			out[key] = value.upper()
		elif key == "properties":
			out[key] = {name: to_gemini_schema(sub) for name, sub in value.items()}
		elif key == "items":
			out[key] = to_gemini_schema(value)
		else:
			out[key] = value
	return out


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		timeout = settings.generation_timeout_seconds
		self._client = http_client or httpx.AsyncClient(timeout=timeout)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=timeout)

	async def generate_json(self, system: str, prompt: str, schema: Dict[str, Any]) -> str:
		"""Run one structured-output generation call and return the raw JSON text."""
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system}]},
			"contents": [{"role": "user", "parts": [{"text": prompt}]}],
			"generationConfig": {
				"responseMimeType": "application/json",
				"responseSchema": to_gemini_schema(schema),
			},
		}
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except httpx.HTTPError as err:
			primary_error: Exception = err
		except (KeyError, IndexError, TypeError, ValueError):
			primary_error = RuntimeError(f"Unexpected Gemini response: {r.text[:500]}")
		if self._fallback_client is None:
			raise GenerationUnavailable("Question generation call failed", cause=primary_error) from primary_error
		return await self._fallback_generate(system, prompt, schema, primary_error)

	async def _fallback_generate(
		self, system: str, prompt: str, schema: Dict[str, Any], primary_error: Exception
	) -> str:
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [
				{"role": "system", "content": system},
				{"role": "user", "content": prompt},
			],
			"response_format": {
				"type": "json_schema",
				"json_schema": {"name": "Questions", "schema": schema},
			},
		}
		try:
			r = await self._fallback_client.post(self._openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as fallback_err:
			raise GenerationUnavailable(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed",
				cause=fallback_err,
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
