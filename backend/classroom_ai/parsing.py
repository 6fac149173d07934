from __future__ import annotations
import json
import re
from dataclasses import dataclass
from typing import Any, Union

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Parsed:
	payload: Any


@dataclass(frozen=True)
class Unparsed:
	raw_text: str
	reason: str


ParseOutcome = Union[Parsed, Unparsed]


def strip_code_fence(text: str) -> str:
	m = CODE_FENCE_RE.search(text or "")
	return m.group(1) if m else (text or "")


def extract_json(text: str, *, locate_object: bool = True) -> ParseOutcome:
	"""Pull a JSON value out of raw model output.

	Strips a fenced code block if there is one, then (with locate_object) narrows to
	the span from the first "{" to the last "}". Nothing found or not valid JSON
	gives Unparsed carrying the untouched text.
	"""
	raw = text or ""
	candidate = strip_code_fence(raw.strip())
	if locate_object:
		m = JSON_OBJECT_RE.search(candidate)
		if m:
			candidate = m.group(0)
	candidate = candidate.strip()
	if not candidate:
		return Unparsed(raw_text=raw, reason="empty model output")
	try:
		return Parsed(payload=json.loads(candidate))
	except json.JSONDecodeError as exc:
		return Unparsed(raw_text=raw, reason=f"invalid JSON: {exc.msg} at position {exc.pos}")
