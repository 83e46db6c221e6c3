import hashlib
from datetime import UTC, datetime, timedelta

from structgen.telemetry.retention import sensitive_text_expiry
from structgen.telemetry.sanitizer import prompt_hash, redaction_marker, sanitize_prompt_for_persistence, sanitize_text_for_persistence


def _sha(value):
  return hashlib.sha256(value.encode("utf-8")).hexdigest()


def test_text_under_threshold_is_kept_verbatim():
  text = "x" * 799

  result = sanitize_text_for_persistence(text, "rawOutput")

  assert result.sanitized == text
  assert result.redacted is False
  assert result.hash == _sha(text)


def test_text_at_threshold_is_replaced_by_marker():
  text = "y" * 800

  result = sanitize_text_for_persistence(text, "rawOutput")

  assert result.sanitized == f"[REDACTED:rawOutput:sha256={_sha(text)}:chars=800]"
  assert result.redacted is True
  # Same input, same marker.
  assert sanitize_text_for_persistence(text, "rawOutput").sanitized == result.sanitized


def test_empty_text_is_not_persisted():
  assert sanitize_text_for_persistence(None, "rawOutput").sanitized is None
  assert sanitize_text_for_persistence("", "rawOutput").hash is None


def test_context_document_block_is_redacted_and_next_section_kept():
  prompt = "Write a lesson.\n\nCOURSE CONTEXT DOCUMENT:\nsecret notes here\n\nTASK:\nDo it"

  result = sanitize_prompt_for_persistence(prompt)

  assert result.sanitized == f"Write a lesson.\n\nCOURSE CONTEXT DOCUMENT:\n{redaction_marker('contextDoc', 'secret notes here')}\n\nTASK:\nDo it"
  assert result.redacted is True
  assert result.hash == _sha(prompt)
  assert "secret notes here" not in result.sanitized


def test_weak_areas_block_at_end_of_prompt_is_redacted():
  prompt = "Quiz me.\n\nIMPORTANT - WEAK AREAS FEEDBACK:\nstruggles with fractions"

  result = sanitize_prompt_for_persistence(prompt)

  assert result.sanitized == f"Quiz me.\n\nIMPORTANT - WEAK AREAS FEEDBACK:\n{redaction_marker('userFeedback', 'struggles with fractions')}"
  assert result.redacted is True


def test_long_prompt_is_replaced_entirely():
  prompt = "Explain photosynthesis. " * 60

  result = sanitize_prompt_for_persistence(prompt)

  assert result.sanitized == redaction_marker("prompt", prompt)
  assert result.redacted is True


def test_plain_short_prompt_is_kept():
  result = sanitize_prompt_for_persistence("Explain photosynthesis.")

  assert result.sanitized == "Explain photosynthesis."
  assert result.redacted is False
  assert prompt_hash("Explain photosynthesis.") == result.hash


def test_sensitive_text_expiry_uses_ttl():
  now = datetime(2026, 1, 1, tzinfo=UTC)

  assert sensitive_text_expiry(24, now=now) == now + timedelta(hours=24)
  assert sensitive_text_expiry(0, now=now) == now + timedelta(hours=24)
  assert sensitive_text_expiry(1.5, now=now) == now + timedelta(minutes=90)
