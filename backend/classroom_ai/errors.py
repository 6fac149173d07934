from __future__ import annotations
from typing import Optional


class PipelineError(Exception):
	"""Base class for errors raised by the quiz/grading pipeline."""


class ValidationError(PipelineError):
	"""Bad input shape or values, including model output that could not be recovered."""


class ConfigurationError(PipelineError):
	"""The selected provider is missing something it needs (e.g. a credential)."""


class UnsupportedProviderError(ConfigurationError):
	def __init__(self, provider: object) -> None:
		super().__init__(f"Unsupported LLM provider: {provider}")
		self.provider = provider


class TransportError(PipelineError):
	"""Non-success response, timeout or network failure talking to a model backend."""

	def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
		super().__init__(message)
		self.status_code = status_code
		self.body = body


class ParseRecoveryWarning(UserWarning):
	"""Model output was recovered through a fallback path instead of the structured one."""
