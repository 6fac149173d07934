from __future__ import annotations
import json
import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import GeneratedQuiz
from .quiz_engine import GRADE_LABELS, SUBJECT_LABELS
from .schemas import QuizGenResult

logger = logging.getLogger(__name__)


def default_quiz_title(subject: str, grade_level: str) -> str:
	return f"Quiz: {SUBJECT_LABELS.get(subject, subject)} - {GRADE_LABELS.get(grade_level, grade_level)}"


def save_generated_quiz(
	db: Session,
	quiz: QuizGenResult,
	*,
	teacher_id: str,
	title: Optional[str] = None,
	difficulty: str = "medium",
) -> Optional[GeneratedQuiz]:
	"""Store a generated quiz. Best effort: failures are logged and None is returned."""
	meta = quiz.metadata
	row = GeneratedQuiz(
		teacher_id=teacher_id,
		title=title or default_quiz_title(meta.subject, meta.grade_level),
		description=f"AI-generated quiz from curriculum text. Standard: {meta.curriculum_standard or 'N/A'}",
		subject_area=meta.subject,
		grade_level=meta.grade_level,
		curriculum_standard=meta.curriculum_standard,
		total_points=100,
		settings_json=json.dumps({
			"questions": [q.model_dump(by_alias=True) for q in quiz.questions],
			"difficulty": difficulty,
			"numberOfQuestions": len(quiz.questions),
		}),
	)
	try:
		db.add(row)
		db.commit()
		db.refresh(row)
	except SQLAlchemyError as exc:
		db.rollback()
		logger.error("Error saving quiz to database: %s", exc)
		return None
	logger.info("Quiz saved to database: %s", row.id)
	return row
