"""Checkpoint persistence for resumable batch runs."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import re
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_ID_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class UnitCheckpoint(BaseModel):
  """Completion flags and produced identifiers for one batch unit."""

  done: dict[str, bool] = Field(default_factory=dict)
  artifacts: dict[str, Any] = Field(default_factory=dict)
  last_error: str | None = None


class BatchCheckpointState(BaseModel):
  """Whole-batch checkpoint blob, keyed by unit id."""

  batch_id: str
  units: dict[str, UnitCheckpoint] = Field(default_factory=dict)
  updated_at: datetime | None = None

  def unit(self, unit_id: str) -> UnitCheckpoint:
    """Return the unit's checkpoint, creating an empty one on first use."""
    if unit_id not in self.units:
      self.units[unit_id] = UnitCheckpoint()
    return self.units[unit_id]


class CheckpointStore(Protocol):
  """Load and save batch checkpoint state; last write wins."""

  async def load(self, batch_id: str) -> BatchCheckpointState | None:
    """Return the stored state, or None when the batch has never been saved."""

  async def save(self, batch_id: str, state: BatchCheckpointState) -> None:
    """Persist the whole state blob."""


class InMemoryCheckpointStore:
  """Keep checkpoint snapshots in memory for tests and single-process runs."""

  def __init__(self) -> None:
    self._states: dict[str, dict[str, Any]] = {}
    self.save_count = 0

  async def load(self, batch_id: str) -> BatchCheckpointState | None:
    payload = self._states.get(batch_id)
    if payload is None:
      return None
    return BatchCheckpointState.model_validate(payload)

  async def save(self, batch_id: str, state: BatchCheckpointState) -> None:
    # Snapshot so later in-memory mutations are not persisted implicitly.
    self._states[batch_id] = state.model_dump(mode="json")
    self.save_count += 1


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
  """Write JSON atomically to avoid partial checkpoint files."""
  path.parent.mkdir(parents=True, exist_ok=True)
  tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
  with open(tmp, "w", encoding="utf-8") as handle:
    json.dump(payload, handle, ensure_ascii=False, indent=2, sort_keys=True)
    handle.write("\n")
  os.replace(tmp, path)


def _read_json(path: Path) -> dict[str, Any] | None:
  if not path.exists():
    return None
  with open(path, encoding="utf-8") as handle:
    return json.load(handle)


class FileCheckpointStore:
  """Persist one JSON file per batch under a directory."""

  def __init__(self, directory: str | Path) -> None:
    self._directory = Path(directory)
    self._lock = asyncio.Lock()

  def path_for(self, batch_id: str) -> Path:
    """Readable stem plus a digest of the raw id, so ids that sanitize alike never share a file."""
    safe_id = _UNSAFE_ID_RE.sub("_", batch_id) or "batch"
    digest = hashlib.sha256(batch_id.encode("utf-8")).hexdigest()[:12]
    return self._directory / f"{safe_id}-{digest}.checkpoint.json"

  async def load(self, batch_id: str) -> BatchCheckpointState | None:
    path = self.path_for(batch_id)

    try:
      payload = await asyncio.to_thread(_read_json, path)
    except json.JSONDecodeError as exc:
      logger.warning("Ignoring unreadable checkpoint %s: %s", path, exc)
      return None

    if payload is None:
      return None

    try:
      state = BatchCheckpointState.model_validate(payload)
    except ValidationError as exc:
      logger.warning("Ignoring invalid checkpoint %s: %s", path, exc)
      return None

    if state.batch_id != batch_id:
      logger.warning("Ignoring checkpoint %s; it belongs to batch %s, not %s", path, state.batch_id, batch_id)
      return None

    return state

  async def save(self, batch_id: str, state: BatchCheckpointState) -> None:
    path = self.path_for(batch_id)

    # Serialize under the lock so the newest snapshot is always the last one written.
    async with self._lock:
      state.updated_at = datetime.now(UTC)
      payload = state.model_dump(mode="json")
      await asyncio.to_thread(_atomic_write_json, path, payload)

    logger.debug("Saved checkpoint for batch %s to %s", batch_id, path)
