from __future__ import annotations
import json
import logging
import httpx
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError, TransportError, UnsupportedProviderError, ValidationError
from .schemas import LLMConfig, LLMProvider, LLMRequest, LLMResponse, TokenUsage
from .settings import settings

logger = logging.getLogger(__name__)

ConfigOverride = Union[LLMConfig, Mapping[str, Any], None]

# camelCase keys coming from the JS side of the classroom app
_CONFIG_KEY_ALIASES = {
	"baseUrl": "base_url",
	"apiKey": "api_key",
	"maxTokens": "max_tokens",
	"timeoutSeconds": "timeout_seconds",
}


def merge_config(base: LLMConfig, override: ConfigOverride = None) -> LLMConfig:
	"""Return base with the non-None values of override applied. base is left untouched."""
	if override is None:
		return base
	if isinstance(override, LLMConfig):
		override = override.model_dump(exclude_unset=True)
	values: Dict[str, Any] = base.model_dump()
	for key, value in override.items():
		if value is not None:
			values[_CONFIG_KEY_ALIASES.get(key, key)] = value
	try:
		values["provider"] = LLMProvider.parse(values.get("provider"))
	except ValueError:
		raise UnsupportedProviderError(values.get("provider")) from None
	try:
		return LLMConfig(**values)
	except PydanticValidationError as exc:
		raise ValidationError(f"Invalid LLM configuration: {exc}") from exc


class NDJSONStreamDecoder:
	"""Turns arbitrarily split chunks of newline-delimited JSON into events.

	Holds at most one partial line between feeds. Lines that are not a JSON object
	are skipped.
	"""

	def __init__(self) -> None:
		self._pending = ""

	def feed(self, chunk: str) -> List[Dict[str, Any]]:
		self._pending += chunk
		*lines, self._pending = self._pending.split("\n")
		return [event for event in map(self._decode, lines) if event is not None]

	def flush(self) -> List[Dict[str, Any]]:
		rest, self._pending = self._pending, ""
		event = self._decode(rest)
		return [event] if event is not None else []

	@staticmethod
	def _decode(line: str) -> Optional[Dict[str, Any]]:
		line = line.strip()
		if not line:
			return None
		try:
			event = json.loads(line)
		except json.JSONDecodeError:
			logger.debug("Skipping malformed stream line (%d chars)", len(line))
			return None
		return event if isinstance(event, dict) else None


async def _post_json(
	client: httpx.AsyncClient,
	url: str,
	payload: Dict[str, Any],
	*,
	headers: Dict[str, str],
	timeout: float,
	label: str,
) -> Dict[str, Any]:
	try:
		r = await client.post(url, json=payload, headers=headers, timeout=timeout)
	except httpx.TimeoutException as exc:
		raise TransportError(f"{label} request timed out after {timeout}s") from exc
	except httpx.RequestError as exc:
		raise TransportError(f"{label} request failed: {exc}") from exc
	if not r.is_success:
		raise TransportError(f"{label} error: {r.status_code} - {r.text}", status_code=r.status_code, body=r.text)
	try:
		data = r.json()
	except ValueError as exc:
		raise TransportError(f"Unexpected {label} response: {r.text}", status_code=r.status_code, body=r.text) from exc
	if not isinstance(data, dict):
		raise TransportError(f"Unexpected {label} response: {r.text}", status_code=r.status_code, body=r.text)
	return data


def _unexpected(label: str, data: Dict[str, Any]) -> TransportError:
	body = json.dumps(data, ensure_ascii=False, default=str)
	return TransportError(f"Unexpected {label} response: {body}", body=body)


class LocalBackend:
	"""Ollama-style /api/generate endpoint (local or self-hosted)."""

	label = "Local model"
	default_base_url = "http://localhost:11434"

	def check(self, config: LLMConfig) -> None:
		return None

	def _url(self, config: LLMConfig) -> str:
		return f"{(config.base_url or self.default_base_url).rstrip('/')}/api/generate"

	def _payload(self, request: LLMRequest, config: LLMConfig, *, stream: bool) -> Dict[str, Any]:
		prompt = f"{request.system_prompt}\n\n{request.prompt}" if request.system_prompt else request.prompt
		return {
			"model": config.model,
			"prompt": prompt,
			"stream": stream,
			"options": {"temperature": config.temperature, "num_predict": config.max_tokens},
		}

	async def generate(self, client: httpx.AsyncClient, request: LLMRequest, config: LLMConfig) -> LLMResponse:
		data = await _post_json(
			client,
			self._url(config),
			self._payload(request, config, stream=False),
			headers={"Content-Type": "application/json"},
			timeout=config.timeout_seconds,
			label=self.label,
		)
		try:
			prompt_tokens = data.get("prompt_eval_count")
			completion_tokens = data.get("eval_count")
			return LLMResponse(
				content=data.get("response") or "",
				model=data.get("model") or config.model,
				usage=TokenUsage(
					prompt_tokens=prompt_tokens,
					completion_tokens=completion_tokens,
					total_tokens=(prompt_tokens or 0) + (completion_tokens or 0),
				),
			)
		except (TypeError, PydanticValidationError) as exc:
			raise _unexpected(self.label, data) from exc

	async def stream(self, client: httpx.AsyncClient, request: LLMRequest, config: LLMConfig) -> AsyncIterator[str]:
		decoder = NDJSONStreamDecoder()
		try:
			async with client.stream(
				"POST",
				self._url(config),
				json=self._payload(request, config, stream=True),
				timeout=config.timeout_seconds,
			) as response:
				if not response.is_success:
					body = (await response.aread()).decode("utf-8", errors="replace")
					raise TransportError(
						f"{self.label} streaming error: {response.status_code} - {body}",
						status_code=response.status_code,
						body=body,
					)
				async for chunk in response.aiter_text():
					for event in decoder.feed(chunk):
						text = event.get("response")
						if isinstance(text, str) and text:
							yield text
				for event in decoder.flush():
					text = event.get("response")
					if isinstance(text, str) and text:
						yield text
		except httpx.TimeoutException as exc:
			raise TransportError(f"{self.label} stream timed out after {config.timeout_seconds}s") from exc
		except httpx.RequestError as exc:
			raise TransportError(f"{self.label} stream failed: {exc}") from exc


class HostedApiBackend:
	"""OpenAI-compatible /chat/completions endpoint."""

	label = "Hosted API"
	default_base_url = "https://api.openai.com/v1"

	def check(self, config: LLMConfig) -> None:
		if not config.api_key:
			raise ConfigurationError("LLM_API_KEY is required for the hosted API provider")

	async def generate(self, client: httpx.AsyncClient, request: LLMRequest, config: LLMConfig) -> LLMResponse:
		messages: List[Dict[str, str]] = []
		if request.system_prompt:
			messages.append({"role": "system", "content": request.system_prompt})
		messages.append({"role": "user", "content": request.prompt})
		payload: Dict[str, Any] = {
			"model": config.model,
			"messages": messages,
			"temperature": config.temperature,
			"max_tokens": config.max_tokens,
		}
		headers = {
			"Authorization": f"Bearer {config.api_key}",
			"Content-Type": "application/json",
		}
		data = await _post_json(
			client,
			f"{(config.base_url or self.default_base_url).rstrip('/')}/chat/completions",
			payload,
			headers=headers,
			timeout=config.timeout_seconds,
			label=self.label,
		)
		try:
			choices = data.get("choices") or []
			first = choices[0] if isinstance(choices, list) and choices and isinstance(choices[0], dict) else {}
			content = (first.get("message") or {}).get("content") or ""
			usage = data.get("usage")
			return LLMResponse(
				content=content,
				model=data.get("model") or config.model,
				usage=TokenUsage(
					prompt_tokens=usage.get("prompt_tokens"),
					completion_tokens=usage.get("completion_tokens"),
					total_tokens=usage.get("total_tokens"),
				) if isinstance(usage, dict) else None,
			)
		except (AttributeError, TypeError, PydanticValidationError) as exc:
			raise _unexpected(self.label, data) from exc

	async def stream(self, client: httpx.AsyncClient, request: LLMRequest, config: LLMConfig) -> AsyncIterator[str]:
		# No native streaming here: one chunk with the whole completion
		response = await self.generate(client, request, config)
		yield response.content


Backend = Union[LocalBackend, HostedApiBackend]

_BACKENDS: Dict[LLMProvider, Backend] = {
	LLMProvider.LOCAL: LocalBackend(),
	LLMProvider.HOSTED_API: HostedApiBackend(),
}


class LLMClient:
	"""Uniform entry point to whichever model backend is configured.

	Config precedence, lowest first: LLMConfig defaults, environment (read once here),
	the ``config`` passed to the constructor, the per-request override.
	"""

	def __init__(self, config: ConfigOverride = None, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
		if isinstance(config, LLMConfig):
			self._config = config
		else:
			self._config = merge_config(merge_config(LLMConfig(), settings.llm_config_values()), config)
		self._client = http_client
		self._owns_client = http_client is None

	def _http(self) -> httpx.AsyncClient:
		if self._client is None:
			self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds)
		return self._client

	def get_config(self) -> LLMConfig:
		return self._config

	def update_config(self, **changes: Any) -> LLMConfig:
		# Not safe to call while requests on this client are in flight
		self._config = merge_config(self._config, changes)
		return self._config

	def resolve_config(self, override: ConfigOverride = None) -> LLMConfig:
		return merge_config(self._config, override)

	@staticmethod
	def _backend(config: LLMConfig) -> Backend:
		try:
			return _BACKENDS[config.provider]
		except KeyError:
			raise UnsupportedProviderError(config.provider) from None

	async def generate_completion(self, request: Union[LLMRequest, str]) -> LLMResponse:
		if isinstance(request, str):
			request = LLMRequest(prompt=request)
		config = self.resolve_config(request.config)
		backend = self._backend(config)
		backend.check(config)
		logger.debug("LLM completion via %s (model=%s)", config.provider.value, config.model)
		return await backend.generate(self._http(), request, config)

	async def stream_completion(self, request: Union[LLMRequest, str]) -> AsyncIterator[str]:
		"""Yield text chunks as the model produces them. Single pass; stop iterating to cancel."""
		if isinstance(request, str):
			request = LLMRequest(prompt=request)
		config = self.resolve_config(request.config)
		backend = self._backend(config)
		backend.check(config)
		logger.debug("LLM stream via %s (model=%s)", config.provider.value, config.model)
		async for chunk in backend.stream(self._http(), request, config):
			yield chunk

	async def aclose(self) -> None:
		if self._client is not None and self._owns_client:
			await self._client.aclose()
			self._client = None

	async def __aenter__(self) -> "LLMClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()


async def get_llm_client():
	client = LLMClient()
	try:
		yield client
	finally:
		await client.aclose()
