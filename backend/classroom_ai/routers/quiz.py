from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..llm_client import LLMClient, get_llm_client
from ..quiz_engine import QuizGenEngine
from ..schemas import CamelModel
from ..storage import save_generated_quiz


router = APIRouter(prefix="/api", tags=["quiz"])

REQUIRED_FIELDS = ["curriculumText", "gradeLevel", "subject"]


class GenerateQuizRequest(CamelModel):
	# Required fields are checked in the handler so the caller gets the
	# {error, message, required} body instead of a generic 422.
	curriculum_text: Optional[str] = None
	grade_level: Optional[str] = None
	subject: Optional[str] = None
	curriculum_standard: Optional[str] = None
	number_of_questions: int = Field(default=5, ge=1, le=50)
	difficulty: Literal["easy", "medium", "hard"] = "medium"
	# Optional: associate the stored quiz with a teacher
	teacher_id: Optional[str] = None
	title: Optional[str] = None


@router.post("/generate-quiz")
async def generate_quiz(
	req: GenerateQuizRequest,
	client: LLMClient = Depends(get_llm_client),
	db: Session = Depends(get_db),
):
	values = {
		"curriculumText": req.curriculum_text,
		"gradeLevel": req.grade_level,
		"subject": req.subject,
	}
	missing = [name for name, value in values.items() if not (value or "").strip()]
	if missing:
		return JSONResponse(
			status_code=400,
			content={
				"error": "Missing required fields",
				"message": f"Missing required fields: {', '.join(missing)}",
				"required": REQUIRED_FIELDS,
			},
		)

	engine = QuizGenEngine(client)
	quiz = await engine.generate_quiz(
		req.curriculum_text,
		grade_level=req.grade_level,
		subject=req.subject,
		curriculum_standard=req.curriculum_standard,
		number_of_questions=req.number_of_questions,
		difficulty=req.difficulty,
	)

	# Storing is best effort; the generated quiz is returned either way
	saved = None
	if req.teacher_id:
		saved = save_generated_quiz(db, quiz, teacher_id=req.teacher_id, title=req.title, difficulty=req.difficulty)

	payload: Dict[str, Any] = {
		"success": True,
		"quiz": quiz.model_dump(by_alias=True),
		"assignment": saved.to_dict() if saved is not None else None,
		"metadata": {
			"generatedAt": datetime.now(timezone.utc).isoformat(),
			"curriculumLength": len(req.curriculum_text),
			"questionsGenerated": len(quiz.questions),
		},
	}
	return payload
