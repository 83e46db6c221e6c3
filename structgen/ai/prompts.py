"""Prompt templates used by the recovery layers."""

from __future__ import annotations

from structgen.schema.target import TargetSchema, describe

REPACK_PROMPT_TEMPLATE = (
  "The following JSON was generated by an AI but doesn't match the required schema. "
  "Fix it to conform exactly to the schema. Preserve ALL content - only fix structural issues "
  "(wrong types, extra fields, missing fields, wrong enum values). Do not invent new content.\n\n"
  "Schema shape:\n{shape}\n\n"
  "JSON to fix:\n{raw_text}"
)


def render_repack_prompt(raw_text: str, schema: TargetSchema) -> str:
  """Build the repack instruction for a cheap model."""
  return REPACK_PROMPT_TEMPLATE.format(shape=describe(schema), raw_text=raw_text)
