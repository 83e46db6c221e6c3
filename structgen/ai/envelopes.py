"""Detect and strip wrapper envelopes that providers put around tool output."""

from __future__ import annotations

import json
from typing import Any

ENVELOPE_KEYS = ("parameter", "input", "arguments")


def unwrap_envelope(value: Any) -> tuple[Any, bool, str | None]:
  """Return (payload, was_wrapped, wrapper_kind) for a possibly wrapped value.

  Only single-key dicts keyed by a known envelope name are unwrapped. A string
  payload is unwrapped only when it parses to a JSON object or array.
  """
  if not isinstance(value, dict) or len(value) != 1:
    return value, False, None

  key, inner = next(iter(value.items()))

  if key not in ENVELOPE_KEYS:
    return value, False, None

  if isinstance(inner, dict):
    return inner, True, f"{key}_object"

  if isinstance(inner, str):
    # Stringified payloads need to decode into a container to count as envelopes.
    try:
      decoded = json.loads(inner)
    except (ValueError, RecursionError):
      return value, False, None

    if isinstance(decoded, (dict, list)):
      return decoded, True, f"{key}_string"

  return value, False, None
