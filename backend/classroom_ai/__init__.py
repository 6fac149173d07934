"""Content-safety and language-model pipeline for the K-5 classroom app."""
from .errors import (
	ConfigurationError,
	ParseRecoveryWarning,
	PipelineError,
	TransportError,
	UnsupportedProviderError,
	ValidationError,
)
from .grading_engine import GradingEngine
from .llm_client import LLMClient
from .privacy_guard import privacy_guard, sanitize_pii, validate_no_pii
from .quiz_engine import GRADE_LEVEL_AGE_MAPPING, QuizGenEngine
from .schemas import (
	GradingResult,
	LLMConfig,
	LLMProvider,
	LLMRequest,
	LLMResponse,
	MultipleChoiceQuestion,
	QuizGenResult,
	Rubric,
	RubricCriterion,
	SanitizedContent,
	StudentAnswer,
)
