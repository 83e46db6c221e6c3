"""Local .env support so credentials and DSNs need not be exported by hand."""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILE_VARIABLE = "STRUCTGEN_ENV_FILE"


def default_env_path() -> Path:
  """Return STRUCTGEN_ENV_FILE when set, else the .env next to the package."""
  explicit = os.getenv(ENV_FILE_VARIABLE)
  if explicit:
    return Path(explicit).expanduser()

  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_text(text: str) -> dict[str, str]:
  """Parse KEY=VALUE lines, tolerating comments, blank lines and `export` prefixes."""
  values: dict[str, str] = {}

  for raw_line in text.splitlines():
    line = raw_line.strip()
    if line.startswith("export "):
      line = line.removeprefix("export ").lstrip()

    key, sep, value = line.partition("=")
    key = key.strip()
    if line.startswith("#") or not sep or not key:
      continue

    value = value.strip()
    # One level of matching quotes only.
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
      value = value[1:-1]
    values[key] = value

  return values


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Apply a .env file to os.environ and return the keys actually set."""
  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for key, value in parse_env_text(path.read_text(encoding="utf-8")).items():
    if key in os.environ and not override:
      continue
    os.environ[key] = value
    applied[key] = value

  return applied
