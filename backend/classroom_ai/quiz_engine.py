"""Quiz generation: grade-calibrated prompts in, validated multiple-choice questions out."""
from __future__ import annotations
import logging
import re
import warnings
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ParseRecoveryWarning, ValidationError
from .llm_client import ConfigOverride, LLMClient
from .parsing import Parsed, extract_json
from .privacy_guard import privacy_guard
from .schemas import LLMRequest, MultipleChoiceQuestion, QuizGenResult, QuizMetadata

logger = logging.getLogger(__name__)


GRADE_LEVEL_AGE_MAPPING: Dict[str, Dict[str, Any]] = {
	"kindergarten": {"min_age": 4, "max_age": 6, "description": "Ages 4-6, Pre-reading to early reading"},
	"grade_1": {"min_age": 6, "max_age": 7, "description": "Ages 6-7, Early reading, basic math concepts"},
	"grade_2": {"min_age": 7, "max_age": 8, "description": "Ages 7-8, Developing reading fluency, simple problem-solving"},
	"grade_3": {"min_age": 8, "max_age": 9, "description": "Ages 8-9, Reading comprehension, multiplication basics"},
	"grade_4": {"min_age": 9, "max_age": 10, "description": "Ages 9-10, Multi-step problems, critical thinking"},
	"grade_5": {"min_age": 10, "max_age": 11, "description": "Ages 10-11, Complex reasoning, abstract concepts"},
}

GRADE_LABELS: Dict[str, str] = {
	"kindergarten": "Kindergarten",
	"grade_1": "Grade 1",
	"grade_2": "Grade 2",
	"grade_3": "Grade 3",
	"grade_4": "Grade 4",
	"grade_5": "Grade 5",
}

SUBJECT_LABELS: Dict[str, str] = {
	"math": "Math",
	"reading": "Reading",
	"science": "Science",
	"social_studies": "Social Studies",
	"language_arts": "Language Arts",
	"art": "Art",
	"music": "Music",
	"physical_education": "Physical Education",
}

DIFFICULTIES = ("easy", "medium", "hard")
OPTION_LETTERS = "ABCD"
MAX_OPTIONS = 4

_QUESTION_LINE_RE = re.compile(r"^\s*\d+[.)]\s*(.+?)(?=\n\s*\**\s*[A-D][.)])", re.DOTALL)
_OPTION_LINE_RE = re.compile(r"^\s*(\*+\s*)?([A-D])[.)]\s*(.+?)\s*$", re.MULTILINE)
_CORRECT_MARKER_RE = re.compile(r"\(correct\)|\[correct\]|[\u2713\u2714]|^\*+|\*+$", re.IGNORECASE)
_EMPHASIS_RE = re.compile(r"(\*{1,2}|__)(?=\S)(.+?)(?<=\S)\1")
_ANSWER_LINE_RE = re.compile(r"^\s*(?:correct\s+)?answer\s*[:\-]\s*\(?([A-D])\b", re.IGNORECASE | re.MULTILINE)


def build_system_prompt(grade_level: str, age_description: str, subject: str, difficulty: str) -> str:
	return (
		"You are an expert K-5 educator specializing in creating age-appropriate educational content.\n\n"
		f"Grade Level: {grade_level} ({age_description})\n"
		f"Subject: {subject}\n"
		f"Difficulty: {difficulty}\n\n"
		"Guidelines:\n"
		"1. Create clear, age-appropriate multiple-choice questions\n"
		"2. Use vocabulary and concepts suitable for this grade level\n"
		"3. Ensure questions assess understanding, not just recall\n"
		"4. Provide exactly 4 options (A, B, C, D) with one correct answer\n"
		"5. Make incorrect options plausible but clearly distinguishable\n"
		"6. Include brief explanations for the correct answer\n"
		"7. Avoid ambiguous wording\n"
		"8. Questions should be engaging and educational\n\n"
		"Output format (JSON):\n"
		"{\n"
		'  "questions": [\n'
		"    {\n"
		'      "question": "Question text here?",\n'
		'      "options": ["Option A", "Option B", "Option C", "Option D"],\n'
		'      "correctAnswer": 0,\n'
		'      "explanation": "Brief explanation of why the answer is correct"\n'
		"    }\n"
		"  ]\n"
		"}"
	)


def build_quiz_prompt(curriculum_text: str, number_of_questions: int, curriculum_standard: Optional[str] = None) -> str:
	prompt = (
		f"Based on the following curriculum text, generate exactly {number_of_questions} "
		"age-appropriate multiple-choice questions.\n\n"
		f"Curriculum Text:\n{curriculum_text}\n"
	)
	if curriculum_standard:
		prompt += f"\nCurriculum Standard: {curriculum_standard}"
	prompt += (
		"\n\nGenerate the questions in the specified JSON format. "
		"Ensure variety in question types and difficulty within the specified range."
	)
	return prompt


def _resolve_correct_answer(value: Any, index: int) -> int:
	if isinstance(value, bool) or value is None:
		raise ValidationError(f"Invalid correctAnswer at index {index}: {value!r}")
	if isinstance(value, int):
		return value
	if isinstance(value, float) and value.is_integer():
		return int(value)
	if isinstance(value, str):
		v = value.strip().upper()
		if len(v) == 1 and v in OPTION_LETTERS:
			return OPTION_LETTERS.index(v)
		if v.lstrip("-").isdigit():
			return int(v)
	raise ValidationError(f"Invalid correctAnswer at index {index}: {value!r}")


def normalize_questions(payload: Any, expected_count: int) -> List[MultipleChoiceQuestion]:
	"""Validate the strict JSON shape and turn it into questions."""
	if not isinstance(payload, Mapping) or not isinstance(payload.get("questions"), list):
		raise ValidationError("Invalid response format: missing questions array")
	questions: List[MultipleChoiceQuestion] = []
	for i, q in enumerate(payload["questions"][:expected_count]):
		if not isinstance(q, Mapping):
			raise ValidationError(f"Invalid question format at index {i}")
		text = q.get("question")
		options = q.get("options")
		if not isinstance(text, str) or not text.strip() or not isinstance(options, list):
			raise ValidationError(f"Invalid question format at index {i}")
		options = [str(opt).strip() for opt in options[:MAX_OPTIONS]]
		raw_answer = q.get("correctAnswer", q.get("correct_answer"))
		correct = _resolve_correct_answer(raw_answer, i)
		if not 0 <= correct < len(options):
			raise ValidationError(f"Invalid correctAnswer index {correct} at index {i}")
		explanation = q.get("explanation")
		questions.append(MultipleChoiceQuestion(
			question=text.strip(),
			options=options,
			correct_answer=correct,
			explanation=explanation.strip() if isinstance(explanation, str) else None,
		))
	return questions


def _parse_block(block: str) -> Optional[MultipleChoiceQuestion]:
	m = _QUESTION_LINE_RE.match(block)
	if not m:
		return None
	question = " ".join(m.group(1).split())
	options: List[str] = []
	marked: List[int] = []
	for option_match in _OPTION_LINE_RE.finditer(block):
		if len(options) >= MAX_OPTIONS:
			break
		prefix = (option_match.group(1) or "").strip()
		text = option_match.group(3).strip()
		# "**A) Wind**" is a bold line, not a starred answer
		if prefix and prefix in text:
			text, prefix = text.replace(prefix, "", 1).strip(), ""
		text = _EMPHASIS_RE.sub(r"\2", text)
		if prefix or _CORRECT_MARKER_RE.search(text):
			marked.append(len(options))
		options.append(" ".join(_CORRECT_MARKER_RE.sub(" ", text).split()))
	correct: Optional[int] = marked[0] if len(marked) == 1 else None
	if len(marked) > 1:
		logger.debug("%d options marked correct for %r, ignoring markers", len(marked), question)
	if correct is None:
		answer = _ANSWER_LINE_RE.search(block)
		if answer and OPTION_LETTERS.index(answer.group(1).upper()) < len(options):
			correct = OPTION_LETTERS.index(answer.group(1).upper())
	low_confidence = False
	if correct is None and len(options) >= 2:
		correct = 0
		low_confidence = True
	if not question or len(options) < 2 or correct is None:
		return None
	return MultipleChoiceQuestion(
		question=question,
		options=options,
		correct_answer=correct,
		low_confidence=low_confidence,
	)


def extract_questions_manually(response: str, expected_count: int) -> List[MultipleChoiceQuestion]:
	"""Plain-text fallback: numbered questions followed by A./A) style options."""
	questions: List[MultipleChoiceQuestion] = []
	for block in re.split(r"\n\s*\n", response or ""):
		if len(questions) >= expected_count:
			break
		q = _parse_block(block.strip("\n"))
		if q is None:
			continue
		if q.low_confidence:
			logger.warning("Could not determine correct answer for recovered question %d, defaulting to first option", len(questions) + 1)
		questions.append(q)
	return questions


def parse_questions(llm_response: str, expected_count: int) -> Tuple[List[MultipleChoiceQuestion], bool]:
	"""Return (questions, recovered). recovered is True when the plain-text fallback was used."""
	outcome = extract_json(llm_response)
	if isinstance(outcome, Parsed):
		return normalize_questions(outcome.payload, expected_count), False
	logger.warning("Failed to parse JSON quiz response (%s), attempting manual extraction", outcome.reason)
	questions = extract_questions_manually(outcome.raw_text, expected_count)
	if not questions:
		raise ValidationError(f"Could not parse questions from model output: {outcome.reason}")
	message = f"Recovered {len(questions)} question(s) from non-JSON model output"
	if any(q.low_confidence for q in questions):
		message += "; some answer keys defaulted to the first option and need teacher review"
	warnings.warn(message, ParseRecoveryWarning, stacklevel=2)
	return questions, True


class QuizGenEngine:
	def __init__(self, llm_client: Optional[LLMClient] = None) -> None:
		self.llm_client = llm_client or LLMClient()
		self.privacy_guard = privacy_guard()

	async def generate_quiz(
		self,
		curriculum_text: str,
		*,
		grade_level: str,
		subject: str = "general",
		curriculum_standard: Optional[str] = None,
		number_of_questions: int = 5,
		difficulty: str = "medium",
		llm_config: ConfigOverride = None,
	) -> QuizGenResult:
		age_info = GRADE_LEVEL_AGE_MAPPING.get(grade_level)
		if age_info is None:
			raise ValidationError(f"Invalid grade level: {grade_level}")
		if difficulty not in DIFFICULTIES:
			raise ValidationError(f"Invalid difficulty: {difficulty} (expected one of {', '.join(DIFFICULTIES)})")
		if not isinstance(number_of_questions, int) or number_of_questions < 1:
			raise ValidationError(f"numberOfQuestions must be a positive integer, got {number_of_questions!r}")
		if not curriculum_text or not curriculum_text.strip():
			raise ValidationError("curriculumText is required")

		sanitized = self.privacy_guard(curriculum_text)
		if sanitized.removed_fields:
			logger.warning("PII removed from curriculum text: %s", ", ".join(sanitized.removed_fields))

		system_prompt = build_system_prompt(grade_level, age_info["description"], subject, difficulty)
		user_prompt = build_quiz_prompt(sanitized.sanitized, number_of_questions, curriculum_standard)
		if isinstance(llm_config, Mapping):
			llm_config = dict(llm_config)
		elif llm_config is not None:
			llm_config = llm_config.model_dump(exclude_unset=True)

		response = await self.llm_client.generate_completion(
			LLMRequest(prompt=user_prompt, system_prompt=system_prompt, config=llm_config)
		)
		questions, recovered = parse_questions(response.content, number_of_questions)
		if len(questions) < number_of_questions:
			logger.warning("Generated %d questions, expected %d", len(questions), number_of_questions)

		return QuizGenResult(
			questions=questions,
			metadata=QuizMetadata(
				grade_level=grade_level,
				subject=subject,
				curriculum_standard=curriculum_standard,
				generated_at=datetime.now(timezone.utc).isoformat(),
				difficulty=difficulty,
				parse_recovered=recovered,
				redacted_categories=sanitized.removed_fields,
			),
		)
