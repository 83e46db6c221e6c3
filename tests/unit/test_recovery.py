import json

import pytest

from structgen.ai.errors import FailureKind, GenerationFailedError, ModelOutputError
from structgen.ai.providers.base import failure_from_exception
from structgen.ai.providers.registry import ProviderCredentials
from structgen.ai.recovery import Layer0Report, RecoveryOrchestrator, make_repair_hook
from structgen.schema.target import enum, record, sequence, string
from structgen.telemetry.diagnostics import CollectingDiagnosticSink
from structgen.telemetry.generation_log import GenerationLogContext, GenerationLogger

SECTION = record({"type": enum("text", "math"), "content": string()}, name="Section")
LESSON = record({"title": string(), "sections": sequence(SECTION)}, name="Lesson")
VALID = {"title": "Fractions", "sections": [{"type": "text", "content": "hi"}]}
ANTHROPIC = ProviderCredentials(anthropic="sk-test")


class ScriptedInvoker:
  """Replays scripted responses; callables receive the repair hook."""

  def __init__(self, *responses):
    self.responses = list(responses)
    self.calls = []

  async def invoke(self, *, model_id, prompt, schema, credentials, provider_options=None, repair_hook=None):
    self.calls.append({"model_id": model_id, "prompt": prompt, "provider_options": provider_options, "repair_hook": repair_hook})
    response = self.responses.pop(0)
    if callable(response):
      return await response(repair_hook)
    if isinstance(response, BaseException):
      raise response
    return response


def _outcome(record):
  generation_logger = GenerationLogger(GenerationLogContext(generation_type="lesson", schema_name="Lesson", model_id="claude-opus-4-6"))
  generation_logger.record_attempt(record)
  if record.failure is not None:
    generation_logger.record_failure(record.failure.message)
  return generation_logger.resolve_outcome()


@pytest.mark.anyio
async def test_plain_success_never_touches_repair_layers():
  invoker = ScriptedInvoker(VALID)

  result = await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ANTHROPIC)

  assert result.value == VALID
  assert not result.record.layer0.invoked
  assert result.record.layer0.invocation_succeeded is True
  assert _outcome(result.record) == "success"


@pytest.mark.anyio
async def test_layer0_hook_coerces_wrapped_output():
  async def respond(hook):
    fixed = await hook('{"parameter": {"title": "Fractions", "sections": [{"type": "Text", "content": "hi"}]}}', "Type validation failed")
    return json.loads(fixed)

  invoker = ScriptedInvoker(respond)

  result = await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ANTHROPIC)

  layer0 = result.record.layer0
  assert result.value == VALID
  assert layer0.result == "coercion-success"
  assert layer0.wrapper_type == "parameter_object"
  assert layer0.error == "Type validation failed"
  assert _outcome(result.record) == "repaired_layer0"


@pytest.mark.anyio
async def test_repair_hook_reports_parse_failures_and_unwrapped_only():
  report = Layer0Report()
  hook = make_repair_hook(LESSON, report)

  assert await hook("<<not json>>", "bad") is None
  assert report.result == "json-parse-failed"

  report = Layer0Report()
  hook = make_repair_hook(LESSON, report)
  returned = await hook('{"input": {"sections": [{"type": "video"}]}}', "bad")
  assert json.loads(returned) == {"sections": [{"type": "video"}]}
  assert report.result == "unwrapped-only"
  assert report.issues

  report = Layer0Report()
  hook = make_repair_hook(LESSON, report)
  assert await hook('{"sections": [{"type": "video"}]}', "bad") is None
  assert report.result == "returned-null"


@pytest.mark.anyio
async def test_layer1_coerces_raw_text_from_failed_invocation():
  raw_text = '{"title": "Fractions", "sections": "[{\\"type\\": \\"text\\", \\"content\\": \\"hi\\"}]", "extra": true}'
  invoker = ScriptedInvoker(ModelOutputError("No object generated", raw_text=raw_text))

  result = await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ANTHROPIC)

  assert result.value == VALID
  assert result.record.layer1.result == "success"
  assert not result.record.layer2.invoked
  assert len(invoker.calls) == 1
  assert _outcome(result.record) == "repaired_layer1"


@pytest.mark.anyio
async def test_layer2_repacks_with_cheapest_credentialed_model():
  invoker = ScriptedInvoker(ModelOutputError("No object generated", raw_text="title: Fractions, sections: hi"), VALID)
  sink = CollectingDiagnosticSink()

  result = await RecoveryOrchestrator(invoker, sink=sink).run(model_id="gemini-2.5-pro", prompt="p", schema=LESSON, credentials=ProviderCredentials(openai="sk-o", google="g"))

  assert result.value == VALID
  assert result.record.layer1.result == "parse_failed"
  assert result.record.layer2.model_id == "gpt-5-mini"
  repack_call = invoker.calls[1]
  assert repack_call["model_id"] == "gpt-5-mini"
  assert "title: Fractions, sections: hi" in repack_call["prompt"]
  assert repack_call["repair_hook"] is None
  assert _outcome(result.record) == "repaired_layer2"


@pytest.mark.anyio
async def test_failed_repack_raises_with_diagnostics():
  invoker = ScriptedInvoker(ModelOutputError("No object generated", raw_text='{"sections": [{"type": "video"}]}'), RuntimeError("repack exploded"))

  with pytest.raises(GenerationFailedError) as excinfo:
    await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ANTHROPIC)

  error = excinfo.value
  assert str(error) == "No object generated"
  assert error.kind == FailureKind.ALL_LAYERS_EXHAUSTED
  assert error.record.layer1.result == "validation_failed"
  assert error.record.layer2.result == "failed"
  assert error.record.layer2.error == "repack exploded"
  assert {issue["layer"] for issue in error.issues} == {1}
  assert _outcome(error.record) == "failed"


@pytest.mark.anyio
async def test_layer2_is_skipped_without_credentials():
  invoker = ScriptedInvoker(ModelOutputError("No object generated", raw_text='{"sections": [{"type": "video"}]}'))

  with pytest.raises(GenerationFailedError) as excinfo:
    await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ProviderCredentials())

  assert not excinfo.value.record.layer2.invoked
  assert len(invoker.calls) == 1


@pytest.mark.anyio
async def test_no_raw_text_skips_repair_layers():
  invoker = ScriptedInvoker(ConnectionError("connection reset by peer"))

  with pytest.raises(GenerationFailedError) as excinfo:
    await RecoveryOrchestrator(invoker).run(model_id="claude-opus-4-6", prompt="p", schema=LESSON, credentials=ANTHROPIC)

  error = excinfo.value
  assert error.kind == FailureKind.NO_RAW_TEXT
  assert isinstance(error.cause, ConnectionError)
  assert not error.record.layer1.invoked
  assert not error.record.layer2.invoked
  assert _outcome(error.record) == "failed"


def test_invocation_failures_are_classified_by_raw_text():
  malformed = failure_from_exception(ModelOutputError("No object generated", raw_text='{"sections": ['))
  hard = failure_from_exception(ConnectionError("connection reset by peer"))
  empty = failure_from_exception(ModelOutputError("No object generated", raw_text=""))

  assert malformed.kind == FailureKind.MALFORMED_OUTPUT
  assert hard.kind == FailureKind.NO_RAW_TEXT
  assert empty.kind == FailureKind.NO_RAW_TEXT
