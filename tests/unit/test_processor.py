from __future__ import annotations

import asyncio
import json
from typing import List

import pytest

from actionflow import telemetry
from actionflow.config import ProcessorConfig
from actionflow.executors import ExecutorRegistry
from actionflow.executors.stub import CALL_HISTORY
from actionflow.parser import ParseError
from actionflow.processor import ActionProcessor, ProcessorBusyError
from actionflow.schemas import AssetResult, ProcessorStatus
from actionflow.scheduler import DependencyCycleError
from tests.unit.utils import RecordingExecutor, cutscene, image, subtitle


class _SlowExecutor(RecordingExecutor):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def execute(self, action) -> AssetResult:
        await asyncio.sleep(self.delay)
        return await super().execute(action)


def _recording_processor(config: ProcessorConfig, **kwargs) -> tuple[ActionProcessor, RecordingExecutor]:
    executor = RecordingExecutor(**kwargs)
    registry = ExecutorRegistry(
        {"asset_image": executor, "asset_subtitle": executor, "asset_cutscene": executor}
    )
    return ActionProcessor(registry, config=config), executor


def _planet_batch() -> dict:
    return {
        "actions": [
            image("image_1"),
            subtitle("subtitle_1"),
            cutscene("cutscene_1", ("image_1", "subtitle_1")),
            {"type": "play_cutscene", "cutscene_id": "cutscene_1"},
            {
                "type": "when_then",
                "condition": "game.planet_created",
                "action": {"type": "play_cutscene", "cutscene_id": "cutscene_1"},
            },
            {"type": "reason", "ephemeral_reasoning": "Show the planet before handing over control."},
        ]
    }


def test_status_before_first_batch() -> None:
    processor = ActionProcessor()
    assert processor.get_status() == ProcessorStatus(is_processing=False, progress=0.0, current_action=None, queue_length=0)
    assert processor.get_cost_breakdown().total == 0.0


def test_invalid_json_returns_failed_report_without_raising(fast_config) -> None:
    processor, executor = _recording_processor(fast_config)

    report = asyncio.run(processor.process_actions("{ invalid json }"))

    assert report.success is False
    assert len(report.errors) == 1
    assert report.errors[0].action_id is None
    assert report.errors[0].message.startswith("Parse error:")
    assert report.errors[0].error_type == "ParseError"
    assert report.assets_generated == []
    assert report.actions_executed == []
    assert report.total_cost == 0.0
    assert executor.calls == []
    assert telemetry.get_events("actions.parse_failed")


def test_end_to_end_with_stub_backends(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)

    report = asyncio.run(processor.process_actions(json.dumps(_planet_batch())))

    assert report.success is True
    assert report.errors == []
    assert report.actions_executed == [
        "image_1",
        "subtitle_1",
        "cutscene_1",
        "play_cutscene_4",
        "when_then_5",
        "reason_6",
    ]
    assert "reason_6" not in {a.id for a in report.assets_generated}
    assert [(a.id, a.type) for a in report.assets_generated] == [
        ("image_1", "image"),
        ("subtitle_1", "audio"),
        ("cutscene_1", "cutscene"),
    ]
    assert report.total_cost == pytest.approx(sum(a.cost for a in report.assets_generated))
    assert report.execution_time_ms >= 0

    breakdown = processor.get_cost_breakdown()
    assert breakdown.images.count == 1
    assert breakdown.audio.count == 1
    assert breakdown.cutscenes.count == 1
    assert breakdown.total == pytest.approx(report.total_cost)
    assert asyncio.run(processor.storage.exists("cutscene_1"))


def test_partial_failure_keeps_going(fast_config) -> None:
    processor, executor = _recording_processor(fast_config, fail_ids={"image_2"})

    report = asyncio.run(
        processor.process_actions({"actions": [image("image_1"), image("image_2"), image("image_3")]})
    )

    assert report.success is False
    assert executor.calls == ["image_1", "image_2", "image_3"]
    assert [(e.action_id, e.error_type) for e in report.errors] == [("image_2", "RuntimeError")]
    assert "backend rejected image_2" in report.errors[0].message
    assert [a.id for a in report.assets_generated] == ["image_1", "image_3"]
    assert report.actions_executed == ["image_1", "image_3"]
    assert report.total_cost == pytest.approx(0.02)


def test_executors_see_dependencies_first(fast_config) -> None:
    processor, executor = _recording_processor(fast_config)
    batch = {
        "actions": [
            cutscene("cutscene_1", ("image_1", "subtitle_1")),
            image("image_1"),
            subtitle("subtitle_1"),
        ]
    }

    report = asyncio.run(processor.process_actions(batch))

    assert executor.calls == ["image_1", "subtitle_1", "cutscene_1"]
    assert report.actions_executed == ["image_1", "subtitle_1", "cutscene_1"]


def test_dependents_still_run_by_default(fast_config) -> None:
    processor, executor = _recording_processor(fast_config, fail_ids={"image_1"})
    batch = {"actions": [image("image_1"), subtitle("subtitle_1"), cutscene("cutscene_1", ("image_1", "subtitle_1"))]}

    report = asyncio.run(processor.process_actions(batch))

    assert executor.calls == ["image_1", "subtitle_1", "cutscene_1"]
    assert [e.action_id for e in report.errors] == ["image_1"]


def test_skip_policy_records_dependents_as_failed(fast_config) -> None:
    processor, executor = _recording_processor(
        fast_config.with_overrides(on_dependency_failure="skip"), fail_ids={"image_1"}
    )
    batch = {
        "actions": [
            image("image_1"),
            subtitle("subtitle_1"),
            cutscene("cutscene_1", ("image_1", "subtitle_1")),
            {"type": "play_cutscene", "cutscene_id": "cutscene_1"},
        ]
    }

    report = asyncio.run(processor.process_actions(batch))

    assert executor.calls == ["image_1", "subtitle_1"]
    assert [(e.action_id, e.error_type) for e in report.errors] == [
        ("image_1", "RuntimeError"),
        ("cutscene_1", "DependencySkipped"),
        ("play_cutscene_4", "DependencySkipped"),
    ]
    assert report.errors[1].message == "skipped: dependency image_1 failed"
    assert report.actions_executed == ["subtitle_1"]
    assert len(telemetry.get_events("actions.action_skipped")) == 2


def test_cycle_rejects_whole_batch(fast_config) -> None:
    processor, executor = _recording_processor(fast_config)
    batch = {
        "actions": [
            image("free"),
            {"type": "show_modal", "id": "a", "title": "t", "content": "c", "image_id": "b"},
            {"type": "show_modal", "id": "b", "title": "t", "content": "c", "image_id": "a"},
        ]
    }

    report = asyncio.run(processor.process_actions(batch))

    assert report.success is False
    assert executor.calls == []
    assert report.errors[0].error_type == "DependencyCycleError"
    assert "Circular dependency detected" in report.errors[0].message


def test_progress_is_monotonic_and_ends_at_100(fast_config) -> None:
    snapshots: List[ProcessorStatus] = []
    processor: ActionProcessor

    def observe(action) -> None:
        snapshots.append(processor.get_status())

    processor, _ = _recording_processor(fast_config, on_execute=observe)
    batch = {"actions": [image("a"), image("b"), {"type": "reason", "ephemeral_reasoning": "x"}, image("c")]}

    asyncio.run(processor.process_actions(batch))

    assert [s.current_action for s in snapshots] == ["a", "b", "c"]
    assert all(s.is_processing for s in snapshots)
    assert all(s.queue_length == 4 for s in snapshots)
    progress = [s.progress for s in snapshots]
    assert progress == sorted(progress)
    assert progress[0] == 0.0
    assert progress[-1] == pytest.approx(75.0)

    final = processor.get_status()
    assert final.is_processing is False
    assert final.progress == 100.0
    assert final.current_action is None


def test_missing_executor_is_recorded_per_action(fast_config) -> None:
    executor = RecordingExecutor()
    processor = ActionProcessor(ExecutorRegistry({"asset_image": executor}), config=fast_config)

    report = asyncio.run(processor.process_actions({"actions": [subtitle("line"), image("pic")]}))

    assert [(e.action_id, e.error_type) for e in report.errors] == [("line", "ExecutorNotFoundError")]
    assert report.actions_executed == ["pic"]


def test_timeout_fails_only_the_slow_action(fast_config) -> None:
    slow = _SlowExecutor(delay=1.0)
    fast = RecordingExecutor()
    processor = ActionProcessor(
        ExecutorRegistry({"asset_image": slow, "asset_subtitle": fast}),
        config=fast_config.with_overrides(action_timeout_s=0.05),
    )

    report = asyncio.run(processor.process_actions({"actions": [image("slow"), subtitle("quick")]}))

    assert [(e.action_id, e.error_type) for e in report.errors] == [("slow", "TimeoutError")]
    assert report.errors[0].message == "timed out after 0.05s"
    assert report.actions_executed == ["quick"]


def test_cancel_stops_remaining_actions(fast_config) -> None:
    processor: ActionProcessor

    def cancel_after_first(action) -> None:
        processor.cancel()

    processor, executor = _recording_processor(fast_config, on_execute=cancel_after_first)

    report = asyncio.run(processor.process_actions({"actions": [image("a"), image("b"), image("c")]}))

    assert executor.calls == ["a"]
    assert report.actions_executed == ["a"]
    assert [(e.action_id, e.error_type) for e in report.errors] == [("b", "Cancelled"), ("c", "Cancelled")]

    executor.on_execute = None
    again = asyncio.run(processor.process_actions({"actions": [image("d")]}))
    assert again.success is True


def test_overlapping_batches_are_rejected(fast_config) -> None:
    slow = _SlowExecutor(delay=0.05)
    processor = ActionProcessor(ExecutorRegistry({"asset_image": slow}), config=fast_config)

    async def scenario():
        first = asyncio.create_task(processor.process_actions({"actions": [image("a")]}))
        await asyncio.sleep(0.01)
        with pytest.raises(ProcessorBusyError):
            await processor.process_actions({"actions": [image("b")]})
        return await first

    report = asyncio.run(scenario())
    assert report.success is True
    assert slow.calls == ["a"]


def test_telemetry_events_for_batch(fast_config) -> None:
    processor, _ = _recording_processor(fast_config, fail_ids={"b"})

    asyncio.run(processor.process_actions({"actions": [image("a"), image("b")]}))

    names = [ev["name"] for ev in telemetry.get_events()]
    assert names == [
        "actions.batch_started",
        "actions.action_succeeded",
        "actions.action_failed",
        "actions.batch_completed",
    ]
    completed = telemetry.get_events("actions.batch_completed")[0]["payload"]
    assert completed["executed"] == 1
    assert completed["failed"] == 1
    assert completed["success"] is False


def test_estimate_costs_does_not_execute(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)
    text = "x" * 1000
    batch = {
        "actions": [
            image("a", model="sdxl"),
            image("b"),
            subtitle("s", text=text),
            cutscene("c", ("a", "s")),
            {"type": "reason", "ephemeral_reasoning": "plan"},
        ]
    }

    estimate = processor.estimate_costs(batch)

    assert estimate.images.count == 2
    assert estimate.images.cost == pytest.approx(0.009)
    assert estimate.audio.cost == pytest.approx(0.015)
    assert estimate.cutscenes.count == 1
    assert estimate.total == pytest.approx(0.024)
    assert asyncio.run(processor.storage.list()) == []


def test_validate_actions_reports_per_action(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)
    processor.registry.unregister("asset_cutscene")
    batch = {
        "actions": [
            image("ok"),
            image("bad", prompt="graphic gore"),
            cutscene("scene", ("ok", "ok")),
            {"type": "reason", "ephemeral_reasoning": "plan"},
        ]
    }

    results = processor.validate_actions(batch)

    assert results["ok"].valid is True
    assert results["bad"].valid is False
    assert results["scene"].errors[0].code == "no_executor"
    assert results["reason_4"].valid is True


def test_validate_actions_raises_on_bad_input(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)
    with pytest.raises(ParseError):
        processor.validate_actions("not json")
    cyclic = {
        "actions": [
            {"type": "show_modal", "id": "a", "title": "t", "content": "c", "image_id": "b"},
            {"type": "show_modal", "id": "b", "title": "t", "content": "c", "image_id": "a"},
        ]
    }
    with pytest.raises(DependencyCycleError):
        processor.validate_actions(cyclic)


def test_from_env_builds_configured_processor(monkeypatch) -> None:
    monkeypatch.setenv("ACTIONFLOW_ON_DEPENDENCY_FAILURE", "skip")
    monkeypatch.setenv("ACTIONFLOW_ACTION_TIMEOUT_S", "2.5")
    processor = ActionProcessor.from_env()
    assert processor.config.on_dependency_failure == "skip"
    assert processor.config.action_timeout_s == 2.5


@pytest.mark.parametrize("raw", [{"actions": [{"type": ["asset_image"], "prompt": "p"}]}, '{"actions": [{"type": {"k": 1}}]}'])
def test_non_string_type_returns_parse_error_report(fast_config, raw) -> None:
    processor, executor = _recording_processor(fast_config)

    report = asyncio.run(processor.process_actions(raw))

    assert report.success is False
    assert [(e.action_id, e.error_type) for e in report.errors] == [(None, "ParseError")]
    assert "has unknown type" in report.errors[0].message
    assert executor.calls == []
    assert processor.get_status().is_processing is False


def test_estimate_costs_rejects_cycles(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)
    cyclic = {
        "actions": [
            image("pic", model="sdxl"),
            {"type": "show_modal", "id": "a", "title": "t", "content": "c", "image_id": "b"},
            {"type": "show_modal", "id": "b", "title": "t", "content": "c", "image_id": "a"},
        ]
    }
    with pytest.raises(DependencyCycleError):
        processor.estimate_costs(cyclic)


def test_long_running_processor_keeps_bounded_history(fast_config) -> None:
    processor = ActionProcessor(config=fast_config)
    generator = processor.registry.require("asset_image").generator
    batches = telemetry.MAX_EVENTS // 2

    async def run_many():
        for _ in range(batches):
            report = await processor.process_actions({"actions": [image("frame")]})
            assert report.success

    asyncio.run(run_many())

    assert len(telemetry.get_events()) == telemetry.MAX_EVENTS
    assert telemetry.get_events()[-1]["name"] == "actions.batch_completed"
    assert len(generator.calls) == CALL_HISTORY
