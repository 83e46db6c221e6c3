"""Bounded-concurrency batch runs with per-unit checkpoints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from structgen.config import Settings, get_settings
from structgen.core.logging import initialize_logging
from structgen.storage.checkpoint_repo import BatchCheckpointState, CheckpointStore, FileCheckpointStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitContext:
  """What a step sees: the unit payload plus identifiers produced by earlier steps."""

  batch_id: str
  unit_id: str
  payload: Any
  artifacts: dict[str, Any]


StepFunction = Callable[[UnitContext], Awaitable[dict[str, Any] | None]]


@dataclass(frozen=True)
class BatchStep:
  """A named sub-step. The returned dict is merged into the unit's checkpoint artifacts."""

  name: str
  run: StepFunction


@dataclass(frozen=True)
class BatchUnit:
  """An independent unit of work whose steps run strictly in order."""

  unit_id: str
  steps: Sequence[BatchStep]
  payload: Any = None


@dataclass(frozen=True)
class UnitOutcome:
  unit_id: str
  status: Literal["succeeded", "failed"]
  steps_run: list[str] = field(default_factory=list)
  steps_skipped: list[str] = field(default_factory=list)
  error: str | None = None


@dataclass(frozen=True)
class BatchSummary:
  """Per-unit outcomes; a non-zero exit code means the batch should be resumed."""

  batch_id: str
  outcomes: list[UnitOutcome]

  @property
  def succeeded(self) -> int:
    return sum(1 for outcome in self.outcomes if outcome.status == "succeeded")

  @property
  def failed(self) -> int:
    return sum(1 for outcome in self.outcomes if outcome.status == "failed")

  @property
  def exit_code(self) -> int:
    return 1 if self.failed else 0

  def failed_unit_ids(self) -> list[str]:
    return [outcome.unit_id for outcome in self.outcomes if outcome.status == "failed"]


class _BatchRun:
  """Shared state for one batch run."""

  def __init__(self, batch_id: str, state: BatchCheckpointState, store: CheckpointStore, semaphore: asyncio.Semaphore) -> None:
    self.batch_id = batch_id
    self.state = state
    self.store = store
    self.semaphore = semaphore

  async def run_unit(self, unit: BatchUnit) -> UnitOutcome:
    async with self.semaphore:
      return await self._run_steps(unit)

  async def _run_steps(self, unit: BatchUnit) -> UnitOutcome:
    checkpoint = self.state.unit(unit.unit_id)
    steps_run: list[str] = []
    steps_skipped: list[str] = []

    try:
      for step in unit.steps:
        if checkpoint.done.get(step.name):
          steps_skipped.append(step.name)
          continue

        context = UnitContext(batch_id=self.batch_id, unit_id=unit.unit_id, payload=unit.payload, artifacts=dict(checkpoint.artifacts))
        produced = await step.run(context)

        if produced:
          checkpoint.artifacts.update(produced)
        checkpoint.done[step.name] = True
        checkpoint.last_error = None

        # Persist before the next step so a crash never loses a completed step.
        await self.store.save(self.batch_id, self.state)
        steps_run.append(step.name)

    except Exception as exc:
      logger.error("Batch %s unit %s failed: %s", self.batch_id, unit.unit_id, exc, exc_info=True)
      checkpoint.last_error = str(exc)
      await self._save_quietly()
      return UnitOutcome(unit_id=unit.unit_id, status="failed", steps_run=steps_run, steps_skipped=steps_skipped, error=str(exc))

    logger.info("Batch %s unit %s completed (ran=%d skipped=%d)", self.batch_id, unit.unit_id, len(steps_run), len(steps_skipped))
    return UnitOutcome(unit_id=unit.unit_id, status="succeeded", steps_run=steps_run, steps_skipped=steps_skipped)

  async def _save_quietly(self) -> None:
    try:
      await self.store.save(self.batch_id, self.state)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to record checkpoint error for batch %s: %s", self.batch_id, exc)


async def run_batch(batch_id: str, units: Sequence[BatchUnit], *, store: CheckpointStore, concurrency: int | None = None, resume: bool = True) -> BatchSummary:
  """Run units concurrently, at most `concurrency` in flight, skipping steps already checkpointed.

  With resume=False the stored checkpoint is ignored and overwritten.
  """
  limit = concurrency if concurrency is not None else get_settings().batch_concurrency
  if limit < 1:
    raise ValueError("concurrency must be at least 1.")

  unit_ids = [unit.unit_id for unit in units]
  if len(set(unit_ids)) != len(unit_ids):
    raise ValueError("Batch unit ids must be unique.")

  state: BatchCheckpointState | None = None
  if resume:
    state = await store.load(batch_id)
    if state is not None:
      logger.info("Resuming batch %s with %d checkpointed units", batch_id, len(state.units))
  else:
    logger.info("Starting batch %s fresh; stored checkpoint ignored", batch_id)

  if state is None:
    state = BatchCheckpointState(batch_id=batch_id)

  run = _BatchRun(batch_id, state, store, asyncio.Semaphore(limit))
  outcomes = await asyncio.gather(*(run.run_unit(unit) for unit in units))
  summary = BatchSummary(batch_id=batch_id, outcomes=list(outcomes))

  if summary.exit_code:
    logger.warning("Batch %s finished with %d failed units: %s", batch_id, summary.failed, summary.failed_unit_ids())
  else:
    logger.info("Batch %s finished; %d units succeeded", batch_id, summary.succeeded)

  return summary


async def run_batch_job(
  batch_id: str,
  units: Sequence[BatchUnit],
  *,
  settings: Settings | None = None,
  store: CheckpointStore | None = None,
  concurrency: int | None = None,
  resume: bool = True,
) -> BatchSummary:
  """Process entry point: configure logging, then run the batch against file checkpoints.

  Checkpoints default to settings.checkpoint_dir and concurrency to
  settings.batch_concurrency. The summary's exit_code is meant for sys.exit.
  """
  active = settings or get_settings()
  log_path = initialize_logging(active)
  logger.info("Batch %s logging to %s", batch_id, log_path)

  active_store = store if store is not None else FileCheckpointStore(active.checkpoint_dir)
  limit = concurrency if concurrency is not None else active.batch_concurrency
  return await run_batch(batch_id, units, store=active_store, concurrency=limit, resume=resume)
