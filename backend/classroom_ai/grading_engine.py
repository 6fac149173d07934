"""Rubric grading: keyword-coverage scoring plus AI or rule-based feedback."""
from __future__ import annotations
import json
import logging
import string
import warnings
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ParseRecoveryWarning, PipelineError, ValidationError
from .llm_client import ConfigOverride, LLMClient
from .parsing import Parsed, extract_json
from .privacy_guard import privacy_guard
from .schemas import CriterionScore, GradingResult, LLMRequest, Rubric, RubricCriterion, StudentAnswer

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
ANSWER_PROMPT_LIMIT = 2000
STOP_WORDS = frozenset({
	"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
	"that", "this", "these", "those", "from", "into", "about", "have", "will", "would",
	"should", "could", "their", "there", "they", "them", "what", "when", "which", "while",
	"your", "also", "each", "does", "been", "were",
})

ENCOURAGING_MESSAGES = (
	(90, "Outstanding work! You demonstrated excellent understanding of the concepts."),
	(80, "Great job! You showed strong comprehension of the material."),
	(70, "Good effort! You understand most of the concepts, with some areas to strengthen."),
	(60, "Nice try! Keep practicing and reviewing the material."),
)
DEFAULT_ENCOURAGEMENT = "Keep working hard! Review the material and try again."

AnswerContent = Union[str, Mapping[str, Any], StudentAnswer]


def round2(value: float) -> float:
	return round(value, 2)


def extract_keywords(text: str) -> List[str]:
	"""Lower-cased words longer than three letters, stop words dropped, first ten kept."""
	words = (w.strip(string.punctuation) for w in (text or "").lower().split())
	return [w for w in words if len(w) > 3 and w not in STOP_WORDS][:MAX_KEYWORDS]


def _criterion_note(score: float, max_points: float) -> str:
	note = f"Scored {round(score / max_points * 100)}%: "
	if score >= max_points * 0.8:
		return note + "Excellent work addressing this criterion."
	if score >= max_points * 0.6:
		return note + "Good effort, but some aspects could be improved."
	if score >= max_points * 0.4:
		return note + "Partial understanding demonstrated."
	return note + "Needs significant improvement in this area."


def evaluate_criterion(answer: str, criterion: RubricCriterion) -> CriterionScore:
	keywords = extract_keywords(criterion.description)
	answer_lower = answer.lower()
	if keywords:
		coverage = sum(1 for k in keywords if k in answer_lower) / len(keywords)
	else:
		coverage = 0.5
	score = max(0.0, min(criterion.max_points, coverage * criterion.max_points))
	return CriterionScore(
		criterion=criterion.name,
		score=round2(score),
		max_score=criterion.max_points,
		notes=_criterion_note(score, criterion.max_points),
	)


def evaluate_rubric(answer: str, rubric: Rubric) -> List[CriterionScore]:
	return [evaluate_criterion(answer, c) for c in rubric.criteria]


def calculate_total_score(scores: List[CriterionScore], rubric: Rubric) -> float:
	if not scores:
		return 0.0
	weights = {c.name: c.weight for c in rubric.criteria}
	if any(w is not None for w in weights.values()):
		total_weight = 0.0
		weighted = 0.0
		for s in scores:
			w = weights.get(s.criterion)
			w = 1.0 if w is None else w
			total_weight += w
			weighted += (s.score / s.max_score) * w * rubric.total_points
		if total_weight > 0:
			return weighted / total_weight
		logger.debug("Rubric weights sum to zero, using unweighted total")
	earned = sum(s.score for s in scores)
	possible = sum(c.max_points for c in rubric.criteria)
	if possible > 0 and possible != rubric.total_points:
		return earned / possible * rubric.total_points
	return earned


def rule_based_feedback(scores: List[CriterionScore], percentage: float) -> Dict[str, Any]:
	strengths: List[str] = []
	areas: List[str] = []
	for s in scores:
		pct = s.score / s.max_score * 100
		if pct >= 80:
			strengths.append(s.criterion)
		elif pct < 60:
			areas.append(s.criterion)

	encouraging = next((msg for floor, msg in ENCOURAGING_MESSAGES if percentage >= floor), DEFAULT_ENCOURAGEMENT)

	if len(strengths) > len(areas):
		insight = (
			f"Student demonstrates strength in {', '.join(strengths)}. "
			f"Focus support on {', '.join(areas) or 'general reinforcement'}."
		)
	else:
		insight = (
			f"Student needs additional support in {', '.join(areas) or 'multiple areas'}. "
			"Consider reviewing key concepts and providing targeted practice."
		)
		if strengths:
			insight += f" Build on existing strength in {', '.join(strengths)}."

	return {
		"encouraging_feedback": encouraging,
		"instructional_insight": insight,
		"strengths": strengths,
		"areas_for_improvement": areas,
	}


def build_feedback_system_prompt(grade_level: str, subject: str) -> str:
	return (
		"You are an expert K-5 educator providing constructive feedback to students "
		"and instructional insights to teachers.\n\n"
		f"Grade Level: {grade_level}\n"
		f"Subject: {subject}\n\n"
		"Your feedback should be:\n"
		"- Age-appropriate and encouraging for students\n"
		"- Specific and actionable for teachers\n"
		"- Focused on growth and learning\n"
		"- Aligned with rubric criteria"
	)


def build_feedback_prompt(answer: str, scores: List[CriterionScore], grade_level: str, total: float, max_score: float, percentage: float) -> str:
	excerpt = answer[:ANSWER_PROMPT_LIMIT] + ("..." if len(answer) > ANSWER_PROMPT_LIMIT else "")
	summary = "\n".join(f"- {s.criterion}: {s.score}/{s.max_score} points - {s.notes}" for s in scores)
	return (
		f"Student answer (grade level: {grade_level}):\n{excerpt}\n\n"
		f"Rubric evaluation:\n{summary}\n\n"
		f"Overall score: {round2(total)}/{max_score} ({round(percentage)}%)\n\n"
		"Generate feedback in the following JSON format:\n"
		"{\n"
		'  "encouragingFeedback": "Encouraging, age-appropriate feedback for the student (2-3 sentences)",\n'
		'  "instructionalInsight": "Instructional insight for the teacher about student performance and next steps (2-3 sentences)",\n'
		'  "strengths": ["Strength 1", "Strength 2"],\n'
		'  "areasForImprovement": ["Area 1", "Area 2"]\n'
		"}\n\n"
		"Focus on being constructive and specific."
	)


def _string_list(value: Any) -> List[str]:
	if not isinstance(value, list):
		return []
	return [str(v).strip() for v in value if str(v).strip()]


def parse_ai_feedback(content: str) -> Optional[Dict[str, Any]]:
	"""Fenced block then strict JSON. None when the reply is not a JSON object."""
	outcome = extract_json(content, locate_object=False)
	if not isinstance(outcome, Parsed) or not isinstance(outcome.payload, Mapping):
		return None
	data = outcome.payload
	return {
		"encouraging_feedback": str(data.get("encouragingFeedback") or "").strip() or "Great effort on this assignment!",
		"instructional_insight": str(data.get("instructionalInsight") or "").strip() or "Review rubric alignment and provide targeted support.",
		"strengths": _string_list(data.get("strengths")),
		"areas_for_improvement": _string_list(data.get("areasForImprovement")),
	}


def _coerce_rubric(rubric: Union[Rubric, Mapping[str, Any], None]) -> Rubric:
	if rubric is None:
		raise ValidationError("A rubric is required for grading")
	if not isinstance(rubric, Rubric):
		try:
			rubric = Rubric.model_validate(rubric)
		except PydanticValidationError as exc:
			raise ValidationError(f"Invalid rubric: {exc}") from exc
	if not rubric.criteria:
		raise ValidationError("Rubric must contain at least one criterion")
	return rubric


def _answer_text(student_answer: AnswerContent) -> str:
	content = student_answer.content if isinstance(student_answer, StudentAnswer) else student_answer
	if isinstance(content, str):
		return content
	if content is None:
		return ""
	return json.dumps(content)


class GradingEngine:
	def __init__(self, llm_client: Optional[LLMClient] = None) -> None:
		self.llm_client = llm_client or LLMClient()
		self.privacy_guard = privacy_guard()

	async def grade(
		self,
		student_answer: AnswerContent,
		*,
		rubric: Union[Rubric, Mapping[str, Any]],
		grade_level: str = "grade_3",
		subject: str = "general",
		max_score: Optional[float] = None,
		use_ai_for_feedback: bool = True,
		llm_config: ConfigOverride = None,
	) -> GradingResult:
		rubric = _coerce_rubric(rubric)

		sanitized = self.privacy_guard(_answer_text(student_answer))
		if sanitized.removed_fields:
			logger.warning("PII removed from student answer: %s", ", ".join(sanitized.removed_fields))
		answer = sanitized.sanitized

		scores = evaluate_rubric(answer, rubric)
		total = calculate_total_score(scores, rubric)
		effective_max = max_score or rubric.total_points
		percentage = round2(total / effective_max * 100) if effective_max > 0 else 0.0

		feedback: Optional[Dict[str, Any]] = None
		if use_ai_for_feedback:
			feedback = await self._ai_feedback(answer, scores, grade_level, subject, total, effective_max, percentage, llm_config)
		source = "ai" if feedback is not None else "rule_based"
		if feedback is None:
			feedback = rule_based_feedback(scores, percentage)

		return GradingResult(
			score=round2(total),
			max_score=effective_max,
			grade_percentage=percentage,
			rubric_alignment=scores,
			feedback_source=source,
			**feedback,
		)

	async def _ai_feedback(
		self,
		answer: str,
		scores: List[CriterionScore],
		grade_level: str,
		subject: str,
		total: float,
		max_score: float,
		percentage: float,
		llm_config: ConfigOverride,
	) -> Optional[Dict[str, Any]]:
		if llm_config is not None and not isinstance(llm_config, Mapping):
			llm_config = llm_config.model_dump(exclude_unset=True)
		request = LLMRequest(
			prompt=build_feedback_prompt(answer, scores, grade_level, total, max_score, percentage),
			system_prompt=build_feedback_system_prompt(grade_level, subject),
			config=dict(llm_config) if llm_config is not None else None,
		)
		try:
			response = await self.llm_client.generate_completion(request)
		except PipelineError as exc:
			logger.warning("AI feedback unavailable (%s), using rule-based feedback", exc)
			warnings.warn("AI feedback request failed; rule-based feedback substituted", ParseRecoveryWarning, stacklevel=3)
			return None
		parsed = parse_ai_feedback(response.content)
		if parsed is None:
			logger.warning("Failed to parse AI feedback, using rule-based feedback")
			warnings.warn("AI feedback was not valid JSON; rule-based feedback substituted", ParseRecoveryWarning, stacklevel=3)
		return parsed
