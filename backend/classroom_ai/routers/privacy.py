from __future__ import annotations
import re
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter

from ..errors import ValidationError
from ..privacy_guard import sanitize_pii, validate_no_pii
from ..schemas import CamelModel, PIIValidation, SanitizedContent

router = APIRouter(prefix="/api/privacy", tags=["privacy"])


class SanitizeRequest(CamelModel):
	content: Union[str, Dict[str, Any]]
	mask: bool = True
	preserve_context: bool = True
	custom_patterns: Optional[Dict[str, str]] = None


class ValidateRequest(CamelModel):
	text: str


@router.post("/sanitize", response_model=SanitizedContent)
def sanitize(req: SanitizeRequest):
	try:
		return sanitize_pii(
			req.content,
			mask=req.mask,
			preserve_context=req.preserve_context,
			custom_patterns=req.custom_patterns,
		)
	except re.error as e:
		raise ValidationError(f"Invalid custom pattern: {e}") from e


@router.post("/validate", response_model=PIIValidation)
def validate(req: ValidateRequest):
	return validate_no_pii(req.text)
