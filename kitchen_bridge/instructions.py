"""
System instruction for the kitchen assistant.

Personas live in ``prompts/`` as YAML (preferred) or JSON. PyYAML's
safe_load parses both, so there is one loading path.

The final instruction is the persona prompt followed by a description of
the ingredient and recipe data model, generated from the live vocabularies
so the agent never sees a stale unit list.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .vocabulary import IngredientCategory, RecipeDifficulty, StorageLocation, Unit


DEFAULT_PROMPT = """
You are a friendly kitchen assistant. You keep track of the user's ingredients
and recipes using the available tools.

- Use tools for every inventory or recipe change; never pretend a change happened.
- Keep spoken answers short and natural.
- When a tool reports an error, explain it briefly and ask how to proceed.
""".strip()


def _get_prompts_dir() -> Path:
    return Path(__file__).parent / "prompts"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Persona file {path} must contain a mapping at top-level")
        return data


def load_persona(name: str) -> Dict[str, Any]:
    """
    Load persona configuration.

    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) default.yaml / default.yml / default.json
    3) built-in default
    """
    prompts_dir = _get_prompts_dir()
    for stem in (name, "default"):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = prompts_dir / f"{stem}{suffix}"
            if candidate.exists():
                return _load_file(candidate)

    return {"name": "default", "prompt": DEFAULT_PROMPT}


def ingredient_schema_description() -> str:
    return "\n".join([
        "Ingredient schema:",
        "- name: String (required)",
        "- quantity: Number (required, > 0)",
        f"- unit: String (required) - One of: {', '.join(Unit.valid_strings())}",
        f"- category: String (optional) - One of: {', '.join(IngredientCategory.valid_strings())}",
        f"- location: String (optional) - One of: {', '.join(StorageLocation.valid_strings())}",
        "- expiryDate: String (optional) - YYYY-MM-DD",
        "- notes: String (optional)",
        "",
        "Ingredient names are matched case-insensitively and singular/plural forms match.",
    ])


def recipe_schema_description() -> str:
    return "\n".join([
        "Recipe schema:",
        "- name: String (required)",
        "- description: String (optional)",
        "- notes: String (optional) - variations, tips, pairings, substitutions",
        '- cookingTemperature: String (optional) - e.g. "350F", "180C", "medium-high"',
        "- prepTime, cookTime: Number (optional) - minutes",
        "- servings: Number (optional)",
        f"- difficulty: String (optional) - One of: {', '.join(RecipeDifficulty.valid_strings())}",
        "- tags: JSON array of lowercase strings (optional)",
        "",
        "RecipeIngredient: {name (required), quantity?, unit?, preparation?}",
        "RecipeStep: a string, or {instruction (required), durationMinutes?}",
        "",
        "Updating ingredients or steps replaces the whole list.",
    ])


def get_instructions(persona: Optional[str] = None, custom_instructions: Optional[str] = None) -> str:
    """
    Full system instruction for a persona.

    Priority for the persona name: argument, KB_PERSONA, "default".
    """
    persona_cfg = load_persona(persona or os.getenv("KB_PERSONA", "default"))
    prompt = str(persona_cfg.get("prompt", DEFAULT_PROMPT)).strip()

    sections = [prompt]
    if persona_cfg.get("include_schema", True):
        sections.append(ingredient_schema_description())
        sections.append(recipe_schema_description())
    if custom_instructions:
        sections.append(custom_instructions)
    return "\n\n".join(sections)
