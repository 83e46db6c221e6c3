"""Text-level repair and lenient parsing for provider JSON output."""

from __future__ import annotations

import json
from typing import Any

_JSON_WHITESPACE = " \t\r\n"


def is_value_start(char: str) -> bool:
  """Return True when a JSON value can begin with this character."""
  if char in '"{[-':
    return True

  if char.isdigit():
    return True

  # true / false / null
  return char in "tfn"


def _skip_whitespace(text: str, index: int) -> int:
  while index < len(text) and text[index] in _JSON_WHITESPACE:
    index += 1
  return index


def _is_structural_close(text: str, index: int) -> bool:
  """Decide whether a quote ending just before `index` closes the string literal."""
  cursor = _skip_whitespace(text, index)

  if cursor >= len(text):
    return True

  char = text[cursor]

  if char in "}]":
    return True

  # A key closes only when a value can follow the colon.
  if char == ":":
    after = _skip_whitespace(text, cursor + 1)
    return after < len(text) and is_value_start(text[after])

  # A value closes when another value, or a container end, follows the comma.
  if char == ",":
    after = _skip_whitespace(text, cursor + 1)
    return after < len(text) and (is_value_start(text[after]) or text[after] in "}]")

  return False


def repair_unescaped_quotes(text: str) -> str:
  """Escape raw double quotes that sit inside JSON string literals.

  Structural quotes are left alone, so valid JSON comes back unchanged.
  """
  if not isinstance(text, str):
    return text

  output: list[str] = []
  in_string = False
  index = 0
  length = len(text)

  while index < length:
    char = text[index]

    if not in_string:
      output.append(char)
      if char == '"':
        in_string = True
      index += 1
      continue

    # Escapes consume the next character verbatim.
    if char == "\\":
      output.append(text[index : index + 2])
      index += 2
      continue

    if char == '"':
      if _is_structural_close(text, index + 1):
        output.append(char)
        in_string = False
      else:
        output.append('\\"')
      index += 1
      continue

    output.append(char)
    index += 1

  return "".join(output)


def extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array, ignoring surrounding prose."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None


def strip_trailing_commas(text: str) -> str:
  """Drop commas that directly precede a closing brace or bracket, outside string literals."""
  output: list[str] = []
  in_string = False
  escape = False

  for index, char in enumerate(text):
    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      output.append(char)
      continue

    if char == '"':
      in_string = True
    elif char == ",":
      following = _skip_whitespace(text, index + 1)
      if following < len(text) and text[following] in "}]":
        continue

    output.append(char)

  return "".join(output)


def parse_json_lenient(raw: str) -> Any:
  """Parse provider JSON, escalating through text repairs only when strict parsing fails.

  Raises json.JSONDecodeError with the last failure when nothing parses.
  """
  try:
    return json.loads(raw)
  except json.JSONDecodeError as exc:
    last_error = exc

  repaired = repair_unescaped_quotes(raw)

  if repaired != raw:
    try:
      return json.loads(repaired)
    except json.JSONDecodeError as exc:
      last_error = exc

  # Ignore leading or trailing prose around the payload.
  candidate = extract_json_block(repaired)

  if candidate is None:
    raise last_error

  if candidate != repaired:
    try:
      return json.loads(candidate)
    except json.JSONDecodeError as exc:
      last_error = exc

  cleaned = strip_trailing_commas(candidate)

  if cleaned == candidate:
    raise last_error

  return json.loads(cleaned)
