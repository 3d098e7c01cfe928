"""
Tests for tool call argument coercion and result formatting.
"""
from datetime import datetime, timezone

from kitchen_bridge.tool_types import ToolCall, ToolResult, coerce_datetime, coerce_float, coerce_int


def test_coerce_float():
    assert coerce_float(2) == 2.0
    assert coerce_float(" 2.5 ") == 2.5
    assert coerce_float("two") is None
    assert coerce_float(True) is None
    assert coerce_float(None) is None
    assert coerce_float("inf") is None
    assert coerce_float("nan") is None
    assert coerce_float(float("-inf")) is None


def test_coerce_int_truncates_floats():
    assert coerce_int(2.9) == 2
    assert coerce_int("30") == 30
    assert coerce_int("2.5") is None
    assert coerce_int(False) is None
    assert coerce_int(float("inf")) is None
    assert coerce_int(float("nan")) is None


def test_coerce_datetime_formats():
    assert coerce_datetime("2025-03-01") == datetime(2025, 3, 1)
    assert coerce_datetime("2025-03-01T10:00:00Z") == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)
    assert coerce_datetime("next tuesday") is None
    assert coerce_datetime("") is None
    assert coerce_datetime(20250301) is None


def test_typed_accessors_are_tolerant():
    call = ToolCall(
        id="c1",
        name="add_ingredient",
        arguments={
            "name": "milk",
            "quantity": "2",
            "servings": 4.0,
            "flag": True,
            "missing": None,
            "patch": '{"quantity": 3}',
            "tags": '["quick", "dinner"]',
            "broken": "[not json",
        },
    )

    assert call.string("name") == "milk"
    assert call.string("quantity") == "2"
    assert call.double("quantity") == 2.0
    assert call.int("servings") == 4
    assert call.bool("flag") is True
    assert call.bool("name") is None
    assert call.has("name")
    assert not call.has("missing")
    assert not call.has("absent")
    assert call.mapping("patch") == {"quantity": 3}
    assert call.json_list("tags") == ["quick", "dinner"]
    assert call.json_list("broken") is None
    assert call.mapping("tags") is None


def test_result_response_shapes():
    call = ToolCall(id="c1", name="get_ingredient")

    ok = ToolResult.ok(call, "You have 2 lbs of chicken", found=True)
    assert ok.to_response() == {"found": True, "success": True, "message": "You have 2 lbs of chicken"}
    assert ok.to_api_format()["id"] == "c1"
    assert ok.to_api_format()["name"] == "get_ingredient"

    failed = ToolResult.fail(call, "'tofu' not found in inventory")
    assert failed.to_response() == {"success": False, "error": "'tofu' not found in inventory"}
