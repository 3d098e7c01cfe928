"""
Tool schema registry.

The catalog of functions the agent may call, in a stable order, plus the
presence-only validation applied before dispatch. Enum membership and value
types are deliberately left to the handlers, whose error messages are more
specific.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .tool_types import ToolCall
from .vocabulary import IngredientCategory, RecipeDifficulty, StorageLocation, Unit


@dataclass(frozen=True)
class PropertySchema:
    type: str
    description: str
    enum: Optional[Tuple[str, ...]] = None
    properties: Optional[Dict[str, "PropertySchema"]] = None
    required: Tuple[str, ...] = ()

    @classmethod
    def string(cls, description: str) -> "PropertySchema":
        return cls("string", description)

    @classmethod
    def number(cls, description: str) -> "PropertySchema":
        return cls("number", description)

    @classmethod
    def boolean(cls, description: str) -> "PropertySchema":
        return cls("boolean", description)

    @classmethod
    def string_enum(cls, description: str, values: Iterable[str]) -> "PropertySchema":
        return cls("string", description, enum=tuple(values))

    @classmethod
    def object(
        cls,
        description: str,
        properties: Dict[str, "PropertySchema"],
        required: Iterable[str] = (),
    ) -> "PropertySchema":
        return cls("object", description, properties=properties, required=tuple(required))

    def to_api_format(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            data["enum"] = list(self.enum)
        if self.properties is not None:
            data["properties"] = {k: v.to_api_format() for k, v in self.properties.items()}
        if self.required:
            data["required"] = list(self.required)
        return data


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    properties: Dict[str, PropertySchema] = field(default_factory=dict)
    required: Tuple[str, ...] = ()

    def to_api_format(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {k: v.to_api_format() for k, v in self.properties.items()},
                "required": list(self.required),
            },
        }


class SchemaRegistry:
    """Immutable, duplicate-free catalog of tool declarations."""

    def __init__(self, declarations: Iterable[ToolDeclaration]):
        ordered = tuple(declarations)
        by_name: Dict[str, ToolDeclaration] = {}
        for decl in ordered:
            if decl.name in by_name:
                raise ValueError(f"Duplicate tool declaration: {decl.name}")
            by_name[decl.name] = decl
        self._declarations = ordered
        self._by_name = by_name

    def declarations(self) -> Tuple[ToolDeclaration, ...]:
        return self._declarations

    def names(self) -> FrozenSet[str]:
        return frozenset(self._by_name)

    def find(self, name: str) -> Optional[ToolDeclaration]:
        return self._by_name.get(name)

    def validate(self, call: ToolCall) -> Optional[str]:
        """
        Return an error message, or None when the call may be dispatched.

        Fails only for an unknown name or a missing (or null) required
        argument. Extra arguments are ignored.
        """
        decl = self.find(call.name)
        if decl is None:
            return f"Unknown function: {call.name}"
        for required in decl.required:
            if call.arguments.get(required) is None:
                return f"Missing required parameter: {required}"
        return None

    def to_api_format(self) -> List[Dict[str, Any]]:
        return [decl.to_api_format() for decl in self._declarations]

    def __len__(self) -> int:
        return len(self._declarations)


S = PropertySchema

_UNITS = Unit.valid_strings()
_CATEGORIES = IngredientCategory.valid_strings()
_LOCATIONS = StorageLocation.valid_strings()
_DIFFICULTIES = RecipeDifficulty.valid_strings()


INVENTORY_TOOLS = (
    ToolDeclaration(
        name="add_ingredient",
        description="Add an ingredient. Merges quantities if it already exists.",
        properties={
            "name": S.string("Ingredient name"),
            "quantity": S.number("Amount (> 0)"),
            "unit": S.string_enum("Unit", _UNITS),
            "category": S.string_enum("Category", _CATEGORIES),
            "location": S.string_enum("Location", _LOCATIONS),
            "expiryDate": S.string("YYYY-MM-DD (optional)"),
            "notes": S.string("Notes (optional)"),
        },
        required=("name", "quantity", "unit"),
    ),
    ToolDeclaration(
        name="remove_ingredient",
        description="Remove an ingredient or reduce its quantity.",
        properties={
            "name": S.string("Name to remove"),
            "quantity": S.number("Amount to remove. Omit to remove all."),
        },
        required=("name",),
    ),
    ToolDeclaration(
        name="update_ingredient",
        description="Update existing ingredient properties. Only include fields to change.",
        properties={
            "name": S.string("Current name"),
            "patch": S.object(
                "Fields to update",
                properties={
                    "name": S.string("New name"),
                    "quantity": S.number("New quantity"),
                    "unit": S.string_enum("New unit", _UNITS),
                    "category": S.string_enum("New category", _CATEGORIES),
                    "location": S.string_enum("New location", _LOCATIONS),
                    "expiryDate": S.string("New expiry (YYYY-MM-DD)"),
                    "notes": S.string("New notes"),
                },
            ),
        },
        required=("name", "patch"),
    ),
    ToolDeclaration(
        name="list_ingredients",
        description="List ingredients, optionally filtered.",
        properties={
            "category": S.string_enum("Filter category", _CATEGORIES),
            "location": S.string_enum("Filter location", _LOCATIONS),
        },
    ),
    ToolDeclaration(
        name="search_ingredients",
        description="Search ingredients by name (partial match).",
        properties={"query": S.string("Search term")},
        required=("query",),
    ),
    ToolDeclaration(
        name="get_ingredient",
        description="Check the details of one ingredient.",
        properties={"name": S.string("Name to check")},
        required=("name",),
    ),
)

RECIPE_TOOLS = (
    ToolDeclaration(
        name="create_recipe",
        description="Create a new recipe.",
        properties={
            "name": S.string("Recipe name"),
            "description": S.string("Description"),
            "notes": S.string("Variations, tips, pairings or substitutions"),
            "cookingTemperature": S.string("Target temperature, e.g. 350F, 180C, medium-high"),
            "ingredients": S.string("JSON array: [{name, quantity?, unit?, preparation?}]"),
            "steps": S.string("JSON array: [string] or [{instruction, durationMinutes?}]"),
            "prepTime": S.number("Minutes"),
            "cookTime": S.number("Minutes"),
            "servings": S.number("Servings"),
            "difficulty": S.string_enum("Difficulty", _DIFFICULTIES),
            "tags": S.string("JSON array of tags"),
        },
        required=("name", "ingredients", "steps"),
    ),
    ToolDeclaration(
        name="update_recipe",
        description="Update an existing recipe. Only provide fields to change.",
        properties={
            "name": S.string("Name of recipe to update"),
            "newName": S.string("New name"),
            "description": S.string("New description"),
            "notes": S.string("New notes"),
            "cookingTemperature": S.string("New cooking temperature"),
            "ingredients": S.string("New JSON array (replaces old list)"),
            "steps": S.string("New JSON array (replaces old list)"),
            "prepTime": S.number("New prep time"),
            "cookTime": S.number("New cook time"),
            "servings": S.number("New servings"),
            "difficulty": S.string_enum("New difficulty", _DIFFICULTIES),
            "tags": S.string("New tags JSON"),
        },
        required=("name",),
    ),
    ToolDeclaration(
        name="delete_recipe",
        description="Delete a recipe.",
        properties={"name": S.string("Name to delete")},
        required=("name",),
    ),
    ToolDeclaration(
        name="get_recipe",
        description="Get the full recipe including ingredients and steps.",
        properties={"name": S.string("Exact recipe name")},
        required=("name",),
    ),
    ToolDeclaration(
        name="list_recipes",
        description="List recipes summary.",
        properties={"tag": S.string("Filter by tag")},
    ),
    ToolDeclaration(
        name="search_recipes",
        description="Search recipes by name or tag.",
        properties={"query": S.string("Search term")},
        required=("query",),
    ),
    ToolDeclaration(
        name="suggest_recipes",
        description="Suggest recipes from inventory.",
        properties={
            "maxMissingIngredients": S.number("Max missing (default 3)"),
            "onlyFullyMakeable": S.boolean("Only complete matches"),
        },
    ),
    ToolDeclaration(
        name="check_recipe_availability",
        description="Check if a recipe can be made with current inventory, and list missing items.",
        properties={"name": S.string("Exact recipe name")},
        required=("name",),
    ),
)

REGISTRY = SchemaRegistry(INVENTORY_TOOLS + RECIPE_TOOLS)
