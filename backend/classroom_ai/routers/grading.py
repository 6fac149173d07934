from __future__ import annotations
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, Field

from ..grading_engine import GradingEngine
from ..llm_client import LLMClient, get_llm_client
from ..schemas import CamelModel, GradingResult

router = APIRouter(prefix="/api", tags=["grading"])


class GradeRequest(CamelModel):
	student_answer: Union[str, Dict[str, Any]]
	# Validated by the engine so a bad rubric comes back as {error, message}
	rubric: Dict[str, Any]
	grade_level: str = "grade_3"
	subject: str = "general"
	max_score: Optional[float] = Field(default=None, gt=0)
	use_ai_for_feedback: bool = Field(
		default=True,
		validation_alias=AliasChoices("useAIForFeedback", "useAiForFeedback", "use_ai_for_feedback"),
	)


@router.post("/grade", response_model=GradingResult)
async def grade(req: GradeRequest, client: LLMClient = Depends(get_llm_client)):
	engine = GradingEngine(client)
	return await engine.grade(
		req.student_answer,
		rubric=req.rubric,
		grade_level=req.grade_level,
		subject=req.subject,
		max_score=req.max_score,
		use_ai_for_feedback=req.use_ai_for_feedback,
	)
