"""
Tests for persona loading and the system instruction.
"""
import kitchen_bridge.instructions as instructions
from kitchen_bridge.instructions import (
    DEFAULT_PROMPT,
    get_instructions,
    ingredient_schema_description,
    load_persona,
)
from kitchen_bridge.vocabulary import Unit


def test_default_persona_loads_from_yaml():
    persona = load_persona("default")
    assert persona["name"] == "default"
    assert "kitchen assistant" in persona["prompt"]


def test_unknown_persona_falls_back_to_default():
    assert load_persona("does-not-exist")["name"] == "default"


def test_builtin_prompt_when_no_files(tmp_path, monkeypatch):
    monkeypatch.setattr(instructions, "_get_prompts_dir", lambda: tmp_path)
    assert load_persona("anything") == {"name": "default", "prompt": DEFAULT_PROMPT}


def test_json_persona_and_schema_opt_out(tmp_path, monkeypatch):
    (tmp_path / "plain.json").write_text('{"name": "plain", "prompt": "Only talk about soup.", "include_schema": false}')
    monkeypatch.setattr(instructions, "_get_prompts_dir", lambda: tmp_path)

    text = get_instructions("plain")
    assert text == "Only talk about soup."


def test_instructions_include_live_vocabularies():
    text = get_instructions("quick", custom_instructions="The user is vegetarian.")

    assert text.startswith("You are a terse kitchen assistant")
    assert "Ingredient schema:" in text
    assert "Recipe schema:" in text
    assert text.endswith("The user is vegetarian.")
    assert ", ".join(Unit.valid_strings()) in ingredient_schema_description()


def test_persona_from_environment(monkeypatch):
    monkeypatch.setenv("KB_PERSONA", "quick")
    assert get_instructions().startswith("You are a terse kitchen assistant")
