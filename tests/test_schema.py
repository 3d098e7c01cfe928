"""
Tests for the tool schema registry.
"""
import pytest

from kitchen_bridge.schema import REGISTRY, SchemaRegistry, ToolDeclaration
from kitchen_bridge.tool_types import ToolCall
from kitchen_bridge.vocabulary import Unit


EXPECTED_TOOLS = {
    "add_ingredient",
    "remove_ingredient",
    "update_ingredient",
    "list_ingredients",
    "search_ingredients",
    "get_ingredient",
    "create_recipe",
    "update_recipe",
    "delete_recipe",
    "get_recipe",
    "list_recipes",
    "search_recipes",
    "suggest_recipes",
    "check_recipe_availability",
}


def test_registry_declares_every_tool_once():
    assert REGISTRY.names() == EXPECTED_TOOLS
    assert len(REGISTRY) == len(EXPECTED_TOOLS)


def test_duplicate_declarations_are_rejected():
    decl = ToolDeclaration(name="noop", description="Does nothing")
    with pytest.raises(ValueError, match="noop"):
        SchemaRegistry([decl, decl])


def test_api_format_of_add_ingredient():
    decl = REGISTRY.find("add_ingredient").to_api_format()

    assert decl["parameters"]["type"] == "object"
    assert decl["parameters"]["required"] == ["name", "quantity", "unit"]
    assert decl["parameters"]["properties"]["unit"]["enum"] == Unit.valid_strings()
    assert decl["parameters"]["properties"]["quantity"]["type"] == "number"


def test_validate_unknown_function():
    assert REGISTRY.validate(ToolCall(id="1", name="make_coffee")) == "Unknown function: make_coffee"


def test_validate_missing_and_null_required():
    missing = ToolCall(id="1", name="add_ingredient", arguments={"name": "milk", "unit": "l"})
    assert REGISTRY.validate(missing) == "Missing required parameter: quantity"

    null = ToolCall(id="1", name="add_ingredient", arguments={"name": None, "quantity": 1, "unit": "l"})
    assert REGISTRY.validate(null) == "Missing required parameter: name"


def test_validate_does_not_check_enum_membership():
    call = ToolCall(id="1", name="add_ingredient", arguments={"name": "parsley", "quantity": 1, "unit": "bunches"})
    assert REGISTRY.validate(call) is None


def test_validate_ignores_extra_arguments():
    call = ToolCall(id="1", name="list_ingredients", arguments={"mood": "hungry"})
    assert REGISTRY.validate(call) is None
