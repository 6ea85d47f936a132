"""Unit tests for the data model: descriptors, actions, workflows and reports."""

from __future__ import annotations

import json

from replaylens.core.types import (
    Action,
    ActionResult,
    ActionType,
    BoundingBox,
    ExecutionReport,
    Point,
    Position,
    ResolutionMode,
    VisualDescriptor,
    Workflow,
    validate_visual,
)


def make_visual(**overrides) -> VisualDescriptor:
    fields = dict(
        text="Log in",
        position=Position(absolute=Point(640, 360), relative=Point(50.0, 50.0)),
        bounding_box=BoundingBox(600, 340, 80, 40),
        surrounding_text=["Welcome back"],
        timestamp=1_700_000_000_000,
    )
    fields.update(overrides)
    return VisualDescriptor(**fields)


class TestValidateVisual:
    def test_complete_descriptor_is_valid(self):
        assert validate_visual(make_visual()) is True

    def test_screenshot_is_optional(self):
        assert validate_visual(make_visual(screenshot=None, context_screenshot=None)) is True

    def test_none_is_invalid(self):
        assert validate_visual(None) is False

    def test_missing_timestamp_is_invalid(self):
        assert validate_visual(make_visual(timestamp=None)) is False

    def test_missing_bounding_box_is_invalid(self):
        assert validate_visual(make_visual(bounding_box=None)) is False

    def test_non_numeric_position_in_dict_is_invalid(self):
        data = make_visual().to_dict()
        data["position"]["absolute"]["x"] = "640"
        assert validate_visual(data) is False

    def test_boolean_is_not_a_number(self):
        data = make_visual().to_dict()
        data["timestamp"] = True
        assert validate_visual(data) is False


class TestResolutionMode:
    def test_parse_accepts_camel_case(self):
        assert ResolutionMode.parse("selectorFirst") == ResolutionMode.SELECTOR_FIRST
        assert ResolutionMode.parse("visual_only") == ResolutionMode.VISUAL_ONLY

    def test_parse_defaults_to_visual_first(self):
        assert ResolutionMode.parse(None) == ResolutionMode.VISUAL_FIRST


class TestActionRecord:
    def test_record_keys(self):
        action = Action(
            type=ActionType.TYPE,
            name='Type into "Email"',
            visual=make_visual(text="", placeholder="Email"),
            backup_selector="#email",
            value="{{email}}",
        )
        d = action.to_dict()
        assert set(d) == {
            "type",
            "name",
            "visual",
            "backup_selector",
            "value",
            "params",
            "execution_method",
        }
        assert d["execution_method"] == "visual_first"
        assert d["visual"]["boundingBox"] == {"x": 600, "y": 340, "width": 80, "height": 40}
        assert d["visual"]["position"]["relative"] == {"x": 50.0, "y": 50.0}

    def test_placeholder_value_survives_json(self):
        action = Action(type=ActionType.TYPE, visual=make_visual(), value="{{password}}")
        restored = Action.from_dict(json.loads(json.dumps(action.to_dict())))
        assert restored.value == "{{password}}"
        assert restored.visual == action.visual

    def test_legacy_params_are_normalized(self):
        legacy = {
            "type": "click",
            "params": {
                "visual": make_visual().to_dict(),
                "backup_selector": "button.primary",
                "timeout": 5,
            },
        }
        action = Action.from_dict(legacy)
        assert action.backup_selector == "button.primary"
        assert action.visual is not None and action.visual.text == "Log in"
        assert action.params == {"timeout": 5}

    def test_text_field_is_read_as_value(self):
        action = Action.from_dict({"type": "type", "text": "hello"})
        assert action.value == "hello"


class TestWorkflowRecord:
    def test_steps_format_is_flattened(self):
        record = {
            "id": "wf-1",
            "name": "login",
            "steps": [
                {"micro_action": {"type": "navigate", "params": {"url": "https://a.test"}}},
                {
                    "micro_action": {"type": "type", "params": {"visual": make_visual().to_dict()}},
                    "params_override": {"delay": 10},
                },
            ],
        }
        wf = Workflow.from_dict(record)
        assert [a.type for a in wf.actions] == [ActionType.NAVIGATE, ActionType.TYPE]
        assert wf.actions[0].params["url"] == "https://a.test"
        assert wf.actions[1].params == {"delay": 10}
        assert wf.actions[1].visual is not None

    def test_copy_is_independent(self):
        wf = Workflow(id="wf", name="n", actions=[Action(type=ActionType.CLICK, visual=make_visual())])
        clone = wf.copy()
        clone.actions[0].visual.text = "changed"
        assert wf.actions[0].visual.text == "Log in"


class TestExecutionReport:
    def test_overall_stats(self):
        report = ExecutionReport(workflow_id="wf")
        report.add_result(ActionResult(0, "a", "click", True, method="visual", confidence=0.9, duration_ms=100))
        report.add_result(ActionResult(1, "b", "wait", True, method="wait", duration_ms=300))
        report.add_result(ActionResult(2, "c", "click", False, retries=3, duration_ms=200, error="x"))

        stats = report.overall_stats
        assert stats.total == 3
        assert stats.successful == 2
        assert stats.failed == 1
        assert stats.success_rate == 66.67
        assert stats.average_time == 200.0
        assert stats.average_confidence == 0.9
        assert report.method_stats["failed"].count == 1
        assert report.method_stats["visual"].total_time == 100

    def test_to_dict_keys_are_camel_case(self):
        report = ExecutionReport(workflow_id="wf", start_time="t0")
        d = report.to_dict()
        assert {"workflowId", "startTime", "endTime", "methodStats", "overallStats", "errors"} <= set(d)
        assert d["overallStats"]["successRate"] == 0.0

    def test_save_writes_json(self, tmp_path):
        report = ExecutionReport(workflow_id="wf", start_time="t0")
        path = report.save(tmp_path / "out" / "report.json")
        assert json.loads(open(path, encoding="utf-8").read())["workflowId"] == "wf"
