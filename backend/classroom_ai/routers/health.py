from datetime import datetime, timezone

from fastapi import APIRouter

from ..settings import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
	return {
		"status": "ok",
		"timestamp": datetime.now(timezone.utc).isoformat(),
		"llmProvider": settings.llm_provider,
	}
