"""Redaction of provider output and prompts before they reach the audit store."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

INLINE_MAX_CHARS = 800
LONG_BLOCK_MIN_CHARS = 1200

# A sensitive block runs until the next uppercase section header or the end of the prompt.
_SECTION_END = r"(\n\n[A-Z][A-Z _-]+:|\Z)"
_CONTEXT_DOCUMENT_RE = re.compile(r"((?i:COURSE CONTEXT DOCUMENT:)\n)([\s\S]*?)" + _SECTION_END)
_WEAK_AREAS_RE = re.compile(r"((?i:IMPORTANT - WEAK AREAS FEEDBACK:)\n)([\s\S]*?)" + _SECTION_END)


@dataclass(frozen=True)
class SanitizedText:
  sanitized: str | None
  redacted: bool
  hash: str | None


def sha256_hex(value: str) -> str:
  return hashlib.sha256(value.encode("utf-8")).hexdigest()


def redaction_marker(label: str, value: str) -> str:
  """Describe removed text by label, content hash and character count."""
  return f"[REDACTED:{label}:sha256={sha256_hex(value)}:chars={len(value)}]"


def sanitize_text_for_persistence(value: str | None, label: str, *, inline_max_chars: int = INLINE_MAX_CHARS) -> SanitizedText:
  """Keep short text verbatim; replace text at or above the threshold with a marker."""
  if not value:
    return SanitizedText(sanitized=None, redacted=False, hash=None)

  digest = sha256_hex(value)

  if len(value) < inline_max_chars:
    return SanitizedText(sanitized=value, redacted=False, hash=digest)

  return SanitizedText(sanitized=redaction_marker(label, value), redacted=True, hash=digest)


def sanitize_prompt_for_persistence(prompt: str | None, *, long_block_chars: int = LONG_BLOCK_MIN_CHARS) -> SanitizedText:
  """Redact known sensitive prompt blocks, then the whole prompt if it is still long.

  The hash always covers the original prompt.
  """
  if not prompt:
    return SanitizedText(sanitized=None, redacted=False, hash=None)

  redacted = False

  def _replace_context(match: re.Match[str]) -> str:
    nonlocal redacted
    redacted = True
    return f"{match.group(1)}{redaction_marker('contextDoc', match.group(2))}{match.group(3)}"

  def _replace_feedback(match: re.Match[str]) -> str:
    nonlocal redacted
    redacted = True
    return f"{match.group(1)}{redaction_marker('userFeedback', match.group(2))}{match.group(3)}"

  output = _CONTEXT_DOCUMENT_RE.sub(_replace_context, prompt)
  output = _WEAK_AREAS_RE.sub(_replace_feedback, output)

  if len(output) >= long_block_chars:
    redacted = True
    output = redaction_marker("prompt", output)

  return SanitizedText(sanitized=output, redacted=redacted, hash=sha256_hex(prompt))


def prompt_hash(prompt: str | None) -> str | None:
  if not prompt:
    return None
  return sha256_hex(prompt)
