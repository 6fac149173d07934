"""Pattern-based PII detection and redaction.

Runs on curriculum text and student answers before anything is sent to a
language model. The detectors are regex heuristics: they miss things and they
over-match things (a five digit number is a ZIP code as far as they know).
Treat this as a best-effort filter, not a COPPA/FERPA compliance guarantee.
"""
from __future__ import annotations
import json
import re
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Tuple, Union

from .schemas import PIIValidation, SanitizedContent


# Checked in this order; a substring already claimed by an earlier detector keeps its label.
BUILTIN_PATTERNS: Mapping[str, Pattern[str]] = MappingProxyType({
	"school_identifier": re.compile(r"\b(?:student|teacher|school|district)\s+ID[:\s]+[\w-]+\b", re.IGNORECASE),
	# Titles and the "Student First Last" form are case-insensitive, the name itself must be capitalised
	"name": re.compile(
		r"\b(?i:student|pupil|child)\s+[A-Z][a-z]+\s+[A-Z][a-z]+\b"
		r"|\b(?i:mrs|mr|ms|dr)\.?\s+[A-Z][a-z]+\b"
	),
	"email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
	"ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b|\b\d{9}\b"),
	"credit_card": re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{1,4}\b"),
	"phone": re.compile(r"(?:\+?1[-.\s]?)?(?:\(\d{3}\)|\b\d{3})[-.\s]?\d{3}[-.\s]?\d{4}\b"),
	"date_of_birth": re.compile(r"\b(?:0?[1-9]|1[0-2])[/\-.](?:0?[1-9]|[12]\d|3[01])[/\-.](?:19|20)\d{2}\b"),
	"street_address": re.compile(
		r"\b\d+\s+(?:[A-Za-z]+\s+){1,4}"
		r"(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Court|Ct)\b\.?",
		re.IGNORECASE,
	),
	"zip_code": re.compile(r"\b\d{5}(?:-\d{4})?\b"),
})

# Record keys whose (lower-cased) name contains one of these are redacted whatever the value.
# Plain substring containment, so "teamEmailList" counts as an email field.
PII_FIELD_NAMES: Tuple[str, ...] = (
	"parentemail",
	"email",
	"phone",
	"ssn",
	"dateofbirth",
	"address",
	"zipcode",
	"studentid",
	"teacherid",
	"firstname",
	"lastname",
)

PatternLike = Union[str, Pattern[str]]


def build_detectors(custom_patterns: Optional[Mapping[str, PatternLike]] = None) -> Mapping[str, Pattern[str]]:
	"""Return a fresh read-only detector table: built-ins plus caller-supplied patterns."""
	table: Dict[str, Pattern[str]] = dict(BUILTIN_PATTERNS)
	for label, pattern in (custom_patterns or {}).items():
		table[label] = re.compile(pattern) if isinstance(pattern, str) else pattern
	return MappingProxyType(table)


def _placeholder(label: str, mask: bool, preserve_context: bool) -> str:
	if not mask:
		return ""
	if preserve_context:
		return f"[{label.upper()}_REDACTED]"
	return "[REDACTED]"


def _sanitize_text(
	text: str,
	detectors: Mapping[str, Pattern[str]],
	mask: bool,
	preserve_context: bool,
	removed: List[str],
) -> str:
	replacements: Dict[str, str] = {}
	for label, pattern in detectors.items():
		for match in pattern.finditer(text):
			found = match.group(0)
			if not found or found in replacements:
				continue
			replacements[found] = _placeholder(label, mask, preserve_context)
			if label not in removed:
				removed.append(label)
	if not replacements:
		return text
	sanitized = text
	# Longest first so "Student ID: 48213" goes before the bare "48213" inside it
	for original in sorted(replacements, key=len, reverse=True):
		sanitized = sanitized.replace(original, replacements[original])
	return sanitized


def _pii_field(key: str) -> Optional[str]:
	lowered = key.lower()
	for field in PII_FIELD_NAMES:
		if field in lowered:
			return field
	return None


def _sanitize_value(value: Any, detectors, mask: bool, preserve_context: bool, removed: List[str]) -> Any:
	if isinstance(value, Mapping):
		return _sanitize_record(value, detectors, mask, preserve_context, removed)
	if isinstance(value, list):
		return [_sanitize_value(v, detectors, mask, preserve_context, removed) for v in value]
	if isinstance(value, str):
		return _sanitize_text(value, detectors, mask, preserve_context, removed)
	return value


def _sanitize_record(
	record: Mapping[str, Any],
	detectors: Mapping[str, Pattern[str]],
	mask: bool,
	preserve_context: bool,
	removed: List[str],
) -> Dict[str, Any]:
	out: Dict[str, Any] = {}
	for key, value in record.items():
		field = _pii_field(str(key))
		if field is not None:
			if field not in removed:
				removed.append(field)
			if mask:
				out[key] = f"[{str(key).upper()}_REDACTED]" if preserve_context else "[REDACTED]"
			# unmasked: the field is dropped
			continue
		out[key] = _sanitize_value(value, detectors, mask, preserve_context, removed)
	return out


def sanitize_pii(
	content: Union[str, Mapping[str, Any]],
	*,
	mask: bool = True,
	preserve_context: bool = True,
	custom_patterns: Optional[Mapping[str, PatternLike]] = None,
) -> SanitizedContent:
	"""Redact PII from text or from a (nested) record.

	mask=False deletes matches instead of replacing them; preserve_context keeps the
	category in the placeholder (``[EMAIL_REDACTED]``) rather than a bare ``[REDACTED]``.
	Records come back JSON-serialised. ``removed_fields`` lists category labels only,
	never the matched values.
	"""
	detectors = build_detectors(custom_patterns)
	removed: List[str] = []
	if isinstance(content, Mapping):
		cleaned = _sanitize_record(content, detectors, mask, preserve_context, removed)
		sanitized = json.dumps(cleaned, separators=(",", ":"), ensure_ascii=False)
	else:
		sanitized = _sanitize_text(content or "", detectors, mask, preserve_context, removed)
	return SanitizedContent(sanitized=sanitized, removed_fields=removed)


def validate_no_pii(
	text: str,
	custom_patterns: Optional[Mapping[str, PatternLike]] = None,
) -> PIIValidation:
	"""Read-only pre-flight check using the same detector table as sanitize_pii."""
	warnings = [
		f"Potential {label} detected"
		for label, pattern in build_detectors(custom_patterns).items()
		if pattern.search(text or "")
	]
	return PIIValidation(safe=not warnings, warnings=warnings)


def privacy_guard() -> Callable[[Union[str, Mapping[str, Any]]], SanitizedContent]:
	"""Sanitizer with the settings the engines use before every model call."""
	def guard(content: Union[str, Mapping[str, Any]]) -> SanitizedContent:
		return sanitize_pii(content, mask=True, preserve_context=True)
	return guard
