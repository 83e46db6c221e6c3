import dataclasses
import json
from datetime import UTC, datetime, timedelta

import pytest

from structgen.ai.errors import FailureKind
from structgen.ai.recovery import Layer0Report, Layer1Report, Layer2Report
from structgen.schema.validation import SchemaIssue
from structgen.storage.generation_log_repo import InMemoryGenerationLogSink
from structgen.telemetry.generation_log import GenerationLogContext, GenerationLogger, OutcomeState, resolve_outcome

START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
  def __init__(self, *times):
    self.times = list(times)

  def __call__(self):
    if len(self.times) > 1:
      return self.times.pop(0)
    return self.times[0]


class ExplodingSink:
  def __init__(self):
    self.calls = 0

  async def append(self, record):
    self.calls += 1
    raise ConnectionError("database is down")


def _context(**overrides):
  values = {"generation_type": "lesson", "schema_name": "Lesson", "model_id": "claude-opus-4-6", "prompt_text": "Teach fractions."}
  values.update(overrides)
  return GenerationLogContext(**values)


def _logger(settings, sink=None, **overrides):
  return GenerationLogger(_context(**overrides), sink=sink, settings=settings, clock=FakeClock(START, START + timedelta(milliseconds=1500)))


@pytest.mark.parametrize(
  ("state", "expected"),
  [
    (OutcomeState(), "success"),
    (OutcomeState(invocation_succeeded=True), "success"),
    (OutcomeState(layer2_called=True, layer2_success=True, layer1_called=True), "repaired_layer2"),
    (OutcomeState(layer1_called=True, layer1_success=True, layer0_called=True, layer0_result="returned-null"), "repaired_layer1"),
    (OutcomeState(layer0_called=True, layer0_result="coercion-success", invocation_succeeded=True), "repaired_layer0"),
    (OutcomeState(layer0_called=True, layer0_result="unwrapped-only"), "repaired_layer0"),
    (OutcomeState(layer0_called=True, layer0_result="unwrapped-only", invocation_succeeded=False), "failed"),
    (OutcomeState(layer0_called=True, layer0_result="coercion-success", layer1_called=True), "failed"),
    (OutcomeState(layer2_called=True), "failed"),
    (OutcomeState(layer0_called=True, layer0_result="json-parse-failed"), "failed"),
    (OutcomeState(layer0_called=True, layer0_result="returned-null"), "failed"),
    (OutcomeState(error_message="boom"), "failed"),
    (OutcomeState(invocation_succeeded=False), "failed"),
  ],
)
def test_resolve_outcome(state, expected):
  assert resolve_outcome(state) == expected


def test_layer_records_can_arrive_in_any_order(settings):
  generation_logger = _logger(settings)

  generation_logger.record_layer2(Layer2Report(invoked=True, result="success", model_id="gpt-5-mini"))
  generation_logger.record_failure("No object generated")
  generation_logger.record_layer1(Layer1Report(invoked=True, result="validation_failed", raw_text="{}"))
  generation_logger.record_layer0(Layer0Report())

  assert generation_logger.resolve_outcome() == "repaired_layer2"


@pytest.mark.anyio
async def test_finalize_writes_exactly_once(settings):
  sink = InMemoryGenerationLogSink()
  generation_logger = _logger(settings, sink)

  first = await generation_logger.finalize()
  second = await generation_logger.finalize()

  assert len(sink.records) == 1
  assert first is sink.records[0]
  assert second is None
  assert first.outcome == "success"
  assert first.duration_ms == 1500
  assert first.provider == "anthropic"


@pytest.mark.anyio
async def test_sink_failures_are_swallowed(settings):
  sink = ExplodingSink()
  generation_logger = _logger(settings, sink)

  record = await generation_logger.finalize()

  assert sink.calls == 1
  assert record is not None
  assert generation_logger.persistence_failure == FailureKind.PERSISTENCE_FAILURE


@pytest.mark.anyio
async def test_success_keeps_only_prompt_hash(settings):
  sink = InMemoryGenerationLogSink()

  record = await _logger(settings, sink).finalize()

  assert record.prompt_text is None
  assert record.prompt_hash is not None
  assert record.raw_output_text is None
  assert record.sensitive_text_expires_at is None


@pytest.mark.anyio
async def test_failed_outcome_persists_sanitized_payloads(settings):
  sink = InMemoryGenerationLogSink()
  generation_logger = _logger(settings, sink)
  issue = SchemaIssue(path=("sections", 0, "type"), code="literal_error", message="Input should be 'text' or 'math'")
  generation_logger.record_layer0(Layer0Report(invoked=True, result="returned-null", raw_text="short layer0 text", raw_text_length=17, wrapper_type="parameter_object", invocation_succeeded=False))
  generation_logger.record_layer1(Layer1Report(invoked=True, result="validation_failed", raw_text="x" * 900, issues=[issue]))
  generation_logger.record_failure("No object generated")

  record = await generation_logger.finalize()

  assert record.outcome == "failed"
  assert record.prompt_text == "Teach fractions."
  assert record.raw_output_redacted is True
  assert record.raw_output_text.startswith("[REDACTED:rawOutput:sha256=")
  assert record.raw_output_len == 900
  assert record.wrapper_type == "parameter_object"
  assert record.error_message == "No object generated"
  assert json.loads(record.schema_issues) == [{"layer": 1, "path": ["sections", 0, "type"], "code": "literal_error", "message": "Input should be 'text' or 'math'"}]
  assert record.sensitive_text_expires_at == START + timedelta(milliseconds=1500) + timedelta(hours=24)


@pytest.mark.anyio
async def test_layer1_wrapper_kind_wins_over_layer0(settings):
  generation_logger = _logger(settings)
  generation_logger.record_layer0(Layer0Report(invoked=True, result="returned-null", wrapper_type="parameter_object"))
  generation_logger.record_layer1(Layer1Report(invoked=True, result="success", raw_text="{}", had_wrapper=True, wrapper_type="input_string"))

  record = await generation_logger.finalize()

  assert record.outcome == "repaired_layer1"
  assert record.wrapper_type == "input_string"
  assert record.layer1_had_wrapper is True


@pytest.mark.anyio
async def test_raw_text_is_truncated(settings):
  roomy = dataclasses.replace(settings, inline_redaction_chars=10_000, raw_text_max_chars=10)
  generation_logger = _logger(roomy)
  generation_logger.record_layer1(Layer1Report(invoked=True, result="parse_failed", raw_text="a" * 30))

  record = await generation_logger.finalize()

  assert record.raw_output_text == "a" * 10 + "\n[TRUNCATED: 20 chars omitted]"
  assert record.raw_output_len == 30
  assert record.raw_output_redacted is False


@pytest.mark.anyio
async def test_unknown_model_provider(settings):
  record = await _logger(settings, model_id="mystery-model").finalize()

  assert record.provider == "unknown"
