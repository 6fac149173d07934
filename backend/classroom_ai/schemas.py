from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
	# snake_case in Python, camelCase on the wire (the classroom UI speaks camelCase)
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Language model gateway ----

class LLMProvider(str, Enum):
	LOCAL = "local"
	HOSTED_API = "hosted_api"

	@classmethod
	def parse(cls, value: Any) -> "LLMProvider":
		if isinstance(value, cls):
			return value
		name = str(value or "").strip().lower().replace("-", "_")
		name = _PROVIDER_ALIASES.get(name, name)
		return cls(name)


_PROVIDER_ALIASES = {"ollama": "local", "api": "hosted_api", "hosted": "hosted_api", "openai": "hosted_api"}


class LLMConfig(BaseModel):
	model_config = ConfigDict(frozen=True)

	provider: LLMProvider = LLMProvider.LOCAL
	model: str = "phi3:mini"
	base_url: Optional[str] = None
	api_key: Optional[str] = Field(default=None, repr=False)
	temperature: float = Field(default=0.7, ge=0, le=2)
	max_tokens: int = Field(default=2000, gt=0)
	timeout_seconds: float = Field(default=60.0, gt=0)

	@field_validator("provider", mode="before")
	@classmethod
	def _parse_provider(cls, value: Any) -> LLMProvider:
		return LLMProvider.parse(value)


class TokenUsage(CamelModel):
	prompt_tokens: Optional[int] = None
	completion_tokens: Optional[int] = None
	total_tokens: Optional[int] = None


class LLMRequest(BaseModel):
	prompt: str
	system_prompt: Optional[str] = None
	# Partial override merged over the gateway's stored config for this call only
	config: Optional[Dict[str, Any]] = None


class LLMResponse(CamelModel):
	content: str
	model: str
	usage: Optional[TokenUsage] = None


# ---- Privacy guard ----

class SanitizedContent(CamelModel):
	sanitized: str
	removed_fields: List[str] = Field(default_factory=list)


class PIIValidation(CamelModel):
	safe: bool
	warnings: List[str] = Field(default_factory=list)


# ---- Quiz generation ----

class MultipleChoiceQuestion(CamelModel):
	question: str
	options: List[str] = Field(max_length=4)
	correct_answer: int
	explanation: Optional[str] = None
	# True when the answer key was guessed by the plain-text fallback parser
	low_confidence: bool = False

	@model_validator(mode="after")
	def _answer_in_range(self) -> "MultipleChoiceQuestion":
		if not 0 <= self.correct_answer < len(self.options):
			raise ValueError(f"correct_answer {self.correct_answer} is outside 0..{len(self.options) - 1}")
		return self


class QuizMetadata(CamelModel):
	grade_level: str
	subject: str
	curriculum_standard: Optional[str] = None
	generated_at: str
	difficulty: str = "medium"
	parse_recovered: bool = False
	redacted_categories: List[str] = Field(default_factory=list)


class QuizGenResult(CamelModel):
	questions: List[MultipleChoiceQuestion]
	metadata: QuizMetadata


# ---- Grading ----

class RubricCriterion(CamelModel):
	name: str = Field(min_length=1)
	description: str = ""
	max_points: float = Field(gt=0)
	weight: Optional[float] = Field(default=None, ge=0)
	evaluation_criteria: Optional[List[str]] = None


class Rubric(CamelModel):
	total_points: float = Field(gt=0)
	criteria: List[RubricCriterion] = Field(default_factory=list)

	@model_validator(mode="after")
	def _unique_names(self) -> "Rubric":
		seen = set()
		for c in self.criteria:
			if c.name in seen:
				raise ValueError(f"duplicate criterion name: {c.name}")
			seen.add(c.name)
		return self


class StudentAnswer(CamelModel):
	content: Union[str, Dict[str, Any]]
	assignment_id: Optional[str] = None
	question_id: Optional[str] = None


class CriterionScore(CamelModel):
	criterion: str
	score: float
	max_score: float
	notes: str


class GradingResult(CamelModel):
	score: float
	max_score: float
	grade_percentage: float
	encouraging_feedback: str
	instructional_insight: str
	strengths: List[str] = Field(default_factory=list)
	areas_for_improvement: List[str] = Field(default_factory=list)
	rubric_alignment: List[CriterionScore] = Field(default_factory=list)
	feedback_source: Literal["ai", "rule_based"] = "rule_based"
