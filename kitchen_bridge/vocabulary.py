"""
Closed vocabularies used by the kitchen tools.

Each vocabulary has canonical string values plus a synonym table. ``parse``
is case- and whitespace-insensitive and returns None when nothing matches,
so handlers can report the valid values back to the agent.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Dict, List, Optional, Type, TypeVar

E = TypeVar("E", bound=Enum)

_WHITESPACE = re.compile(r"\s+")


def _clean(value: str) -> str:
    return _WHITESPACE.sub(" ", value.strip().lower()).rstrip(".")


def _parse(enum_cls: Type[E], value: Optional[str], synonyms: Dict[str, E]) -> Optional[E]:
    if not isinstance(value, str):
        return None
    cleaned = _clean(value)
    if not cleaned:
        return None
    for member in enum_cls:
        if member.value == cleaned:
            return member
    return synonyms.get(cleaned)


class Unit(str, Enum):
    COUNT = "count"
    GRAM = "g"
    KILOGRAM = "kg"
    OUNCE = "oz"
    POUND = "lbs"
    MILLILITER = "ml"
    LITER = "l"
    TEASPOON = "tsp"
    TABLESPOON = "tbsp"
    CUP = "cups"
    CLOVE = "cloves"
    SLICE = "slices"
    CAN = "cans"
    PINCH = "pinch"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Unit"]:
        return _parse(cls, value, UNIT_SYNONYMS)

    @classmethod
    def valid_strings(cls) -> List[str]:
        return [m.value for m in cls]


class IngredientCategory(str, Enum):
    PRODUCE = "produce"
    DAIRY = "dairy"
    MEAT = "meat"
    SEAFOOD = "seafood"
    PANTRY = "pantry"
    FROZEN = "frozen"
    SPICES = "spices"
    CONDIMENTS = "condiments"
    BEVERAGES = "beverages"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["IngredientCategory"]:
        return _parse(cls, value, CATEGORY_SYNONYMS)

    @classmethod
    def valid_strings(cls) -> List[str]:
        return [m.value for m in cls]


class StorageLocation(str, Enum):
    FRIDGE = "fridge"
    FREEZER = "freezer"
    PANTRY = "pantry"
    COUNTER = "counter"

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["StorageLocation"]:
        return _parse(cls, value, LOCATION_SYNONYMS)

    @classmethod
    def valid_strings(cls) -> List[str]:
        return [m.value for m in cls]


class RecipeDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["RecipeDifficulty"]:
        return _parse(cls, value, DIFFICULTY_SYNONYMS)

    @classmethod
    def valid_strings(cls) -> List[str]:
        return [m.value for m in cls]


class RecipeSource(str, Enum):
    USER_CREATED = "user_created"
    AI_DRAFTED = "ai_drafted"
    IMPORTED = "imported"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["RecipeSource"]:
        return _parse(cls, value, SOURCE_SYNONYMS)

    @classmethod
    def valid_strings(cls) -> List[str]:
        return [m.value for m in cls]


def _expand(table: Dict[E, tuple]) -> Dict[str, E]:
    return {synonym: member for member, synonyms in table.items() for synonym in synonyms}


UNIT_SYNONYMS: Dict[str, Unit] = _expand({
    Unit.COUNT: ("each", "ea", "piece", "pieces", "pc", "pcs", "item", "items", "whole", "unit", "units"),
    Unit.GRAM: ("gram", "grams", "gr", "gm", "gms"),
    Unit.KILOGRAM: ("kilogram", "kilograms", "kilo", "kilos", "kgs"),
    Unit.OUNCE: ("ounce", "ounces", "ozs"),
    Unit.POUND: ("lb", "pound", "pounds"),
    Unit.MILLILITER: ("milliliter", "milliliters", "millilitre", "millilitres", "mls"),
    Unit.LITER: ("liter", "liters", "litre", "litres", "ltr"),
    Unit.TEASPOON: ("teaspoon", "teaspoons", "tsps"),
    Unit.TABLESPOON: ("tablespoon", "tablespoons", "tbsps", "tbs", "tbl"),
    Unit.CUP: ("cup", "c"),
    Unit.CLOVE: ("clove",),
    Unit.SLICE: ("slice",),
    Unit.CAN: ("can", "tin", "tins"),
    Unit.PINCH: ("pinches",),
})

CATEGORY_SYNONYMS: Dict[str, IngredientCategory] = _expand({
    IngredientCategory.PRODUCE: ("vegetable", "vegetables", "veggies", "veg", "fruit", "fruits"),
    IngredientCategory.DAIRY: ("milk", "cheese", "dairy products"),
    IngredientCategory.MEAT: ("poultry", "beef", "pork", "meats"),
    IngredientCategory.SEAFOOD: ("fish", "shellfish"),
    IngredientCategory.PANTRY: ("dry goods", "grains", "baking", "canned goods", "staples"),
    IngredientCategory.FROZEN: ("frozen foods", "frozen food"),
    IngredientCategory.SPICES: ("spice", "herbs", "seasoning", "seasonings"),
    IngredientCategory.CONDIMENTS: ("condiment", "sauce", "sauces", "dressing", "dressings"),
    IngredientCategory.BEVERAGES: ("beverage", "drink", "drinks"),
    IngredientCategory.OTHER: ("misc", "miscellaneous"),
})

LOCATION_SYNONYMS: Dict[str, StorageLocation] = _expand({
    StorageLocation.FRIDGE: ("refrigerator", "refrigerated", "cooler"),
    StorageLocation.FREEZER: ("deep freeze", "frozen"),
    StorageLocation.PANTRY: ("cupboard", "cabinet", "shelf"),
    StorageLocation.COUNTER: ("countertop", "counter top", "kitchen counter"),
})

DIFFICULTY_SYNONYMS: Dict[str, RecipeDifficulty] = _expand({
    RecipeDifficulty.EASY: ("simple", "beginner", "quick", "basic"),
    RecipeDifficulty.MEDIUM: ("moderate", "intermediate"),
    RecipeDifficulty.HARD: ("advanced", "difficult", "complex", "challenging"),
})

SOURCE_SYNONYMS: Dict[str, RecipeSource] = _expand({
    RecipeSource.USER_CREATED: ("user", "manual", "user created"),
    RecipeSource.AI_DRAFTED: ("ai", "assistant", "generated", "ai drafted"),
    RecipeSource.IMPORTED: ("import", "web", "url"),
})
