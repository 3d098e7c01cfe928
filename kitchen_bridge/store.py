"""
Kitchen data: ingredients, recipes and the store interface the tool
handlers work against.

The protocol layer only needs find/create/update/delete semantics, so the
store is a Protocol. InMemoryKitchenStore is the reference implementation
used by the CLI and the tests.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from logging_setup import get_logger, Component

from .tool_types import coerce_float, coerce_int
from .vocabulary import (
    IngredientCategory,
    RecipeDifficulty,
    RecipeSource,
    StorageLocation,
    Unit,
)

logger = get_logger(Component.STORE)

EXPIRING_SOON_DAYS = 3

_WHITESPACE = re.compile(r"\s+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value.strip().lower())


def _singular(word: str) -> str:
    if len(word) <= 3:
        return word
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith("sses"):
        return word[:-2]
    if word.endswith(("ss", "us", "is")):
        return word
    if word.endswith(("oes", "ches", "shes", "xes")):
        return word[:-2]
    if word.endswith("s"):
        return word[:-1]
    return word


def normalize_name(name: str) -> str:
    """
    Normalize an ingredient name for matching.

    "  Cherry  Tomatoes " -> "cherry tomato", "Eggs" -> "egg".
    Only the last word is singularized.
    """
    collapsed = _collapse(name)
    if not collapsed:
        return collapsed
    words = collapsed.split(" ")
    words[-1] = _singular(words[-1])
    return " ".join(words)


def normalize_recipe_name(name: str) -> str:
    return _collapse(name)


def format_quantity(quantity: float) -> str:
    if quantity == int(quantity):
        return str(int(quantity))
    return f"{quantity:.1f}"


def format_minutes(total: int) -> str:
    if total < 60:
        return f"{total} min"
    hours, minutes = divmod(total, 60)
    if minutes == 0:
        return f"{hours} hr"
    return f"{hours} hr {minutes} min"


# --- ingredients ---


@dataclass
class Ingredient:
    name: str
    quantity: float
    unit: Unit
    category: IngredientCategory = IngredientCategory.OTHER
    location: StorageLocation = StorageLocation.PANTRY
    expiry_date: Optional[date] = None
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        self.name = self.name.strip()

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def display_quantity(self) -> str:
        return f"{format_quantity(self.quantity)} {self.unit.value}"

    def days_until_expiry(self, today: Optional[date] = None) -> Optional[int]:
        if self.expiry_date is None:
            return None
        today = today or date.today()
        return (self.expiry_date - today).days

    def is_expired(self, today: Optional[date] = None) -> bool:
        days = self.days_until_expiry(today)
        return days is not None and days < 0

    def is_expiring_soon(self, today: Optional[date] = None) -> bool:
        days = self.days_until_expiry(today)
        return days is not None and 0 <= days <= EXPIRING_SOON_DAYS

    def remove_quantity(self, amount: float) -> float:
        """Subtract ``amount``, clamping at zero. Returns what was removed."""
        removed = min(amount, self.quantity)
        self.quantity = max(0.0, self.quantity - amount)
        self.updated_at = _now()
        return removed

    def apply_patch(
        self,
        name: Optional[str] = None,
        quantity: Optional[float] = None,
        unit: Optional[Unit] = None,
        category: Optional[IngredientCategory] = None,
        location: Optional[StorageLocation] = None,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> None:
        if name is not None and name.strip():
            self.name = name.strip()
        if quantity is not None:
            self.quantity = max(0.0, quantity)
        if unit is not None:
            self.unit = unit
        if category is not None:
            self.category = category
        if location is not None:
            self.location = location
        if expiry_date is not None:
            self.expiry_date = expiry_date
        if notes is not None:
            self.notes = notes.strip() or None
        self.updated_at = _now()

    def summary(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit.value,
            "location": self.location.value,
        }


# --- recipes ---


_FRACTIONS = {0.25: "¼", 0.5: "½", 0.75: "¾"}


@dataclass
class RecipeIngredient:
    name: str
    quantity: Optional[float] = None
    unit: Optional[Unit] = None
    preparation: Optional[str] = None

    def __post_init__(self):
        self.name = self.name.strip()
        if self.preparation is not None:
            self.preparation = self.preparation.strip() or None

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def display_text(self) -> str:
        parts = []
        qty = self.quantity
        if qty is not None:
            whole = int(qty)
            frac = qty - whole
            if frac == 0:
                parts.append(str(whole))
            elif frac in _FRACTIONS:
                parts.append(f"{whole}{_FRACTIONS[frac]}" if whole > 0 else _FRACTIONS[frac])
            else:
                parts.append(f"{qty:.1f}")
        if self.unit is not None:
            parts.append(self.unit.value)
        parts.append(self.name)
        if self.preparation:
            parts.append(f"({self.preparation})")
        return " ".join(parts)

    @classmethod
    def from_arguments(cls, args: Any) -> Optional["RecipeIngredient"]:
        """Build from an agent-supplied mapping; None if it has no usable name."""
        if not isinstance(args, dict):
            return None
        name = args.get("name")
        if not isinstance(name, str) or not name.strip():
            return None

        quantity = coerce_float(args.get("quantity"))

        unit = Unit.parse(args.get("unit")) if isinstance(args.get("unit"), str) else None
        preparation = args.get("preparation")
        if not isinstance(preparation, str):
            # older drafts used "notes"
            preparation = args.get("notes") if isinstance(args.get("notes"), str) else None

        return cls(name=name, quantity=quantity, unit=unit, preparation=preparation)


@dataclass
class RecipeStep:
    instruction: str
    order_index: int = 0
    duration_minutes: Optional[int] = None

    def __post_init__(self):
        self.instruction = self.instruction.strip()

    @classmethod
    def from_arguments(cls, item: Any, index: int) -> Optional["RecipeStep"]:
        """Accepts a bare string or ``{instruction, durationMinutes?}``."""
        if isinstance(item, str):
            return cls(instruction=item, order_index=index) if item.strip() else None
        if not isinstance(item, dict):
            return None
        instruction = item.get("instruction")
        if not isinstance(instruction, str) or not instruction.strip():
            return None
        duration = None
        for key in ("duration", "durationMinutes", "timer"):
            value = item.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                duration = coerce_int(value)
                break
        return cls(instruction=instruction, order_index=index, duration_minutes=duration)


def parse_steps(items: Iterable[Any]) -> List[RecipeStep]:
    steps = []
    for index, item in enumerate(items):
        step = RecipeStep.from_arguments(item, index)
        if step is not None:
            steps.append(step)
    return steps


def parse_recipe_ingredients(items: Iterable[Any]) -> List[RecipeIngredient]:
    return [ing for ing in (RecipeIngredient.from_arguments(i) for i in items) if ing is not None]


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@dataclass
class Recipe:
    name: str
    ingredients: List[RecipeIngredient] = field(default_factory=list)
    steps: List[RecipeStep] = field(default_factory=list)
    description: Optional[str] = None
    notes: Optional[str] = None
    cooking_temperature: Optional[str] = None
    prep_time: Optional[int] = None
    cook_time: Optional[int] = None
    servings: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    difficulty: RecipeDifficulty = RecipeDifficulty.MEDIUM
    source: RecipeSource = RecipeSource.USER_CREATED
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        self.name = self.name.strip()
        self.description = _clean_optional(self.description)
        self.notes = _clean_optional(self.notes)
        self.cooking_temperature = _clean_optional(self.cooking_temperature)
        self.prep_time = None if self.prep_time is None else max(0, self.prep_time)
        self.cook_time = None if self.cook_time is None else max(0, self.cook_time)
        self.servings = None if self.servings is None else max(1, self.servings)
        self.tags = [t.strip().lower() for t in self.tags if t.strip()]

    @property
    def normalized_name(self) -> str:
        return normalize_recipe_name(self.name)

    @property
    def total_time(self) -> Optional[int]:
        if self.prep_time is None and self.cook_time is None:
            return None
        return (self.prep_time or 0) + (self.cook_time or 0)

    @property
    def formatted_total_time(self) -> Optional[str]:
        total = self.total_time
        return None if total is None else format_minutes(total)

    @property
    def ordered_steps(self) -> List[RecipeStep]:
        return sorted(self.steps, key=lambda s: s.order_index)

    def missing_ingredients(self, inventory: Iterable[Ingredient]) -> List[RecipeIngredient]:
        names = {i.normalized_name for i in inventory}
        return [ing for ing in self.ingredients if ing.normalized_name not in names]

    def available_ingredients(self, inventory: Iterable[Ingredient]) -> List[RecipeIngredient]:
        names = {i.normalized_name for i in inventory}
        return [ing for ing in self.ingredients if ing.normalized_name in names]

    def can_make(self, inventory: Iterable[Ingredient]) -> bool:
        return not self.missing_ingredients(inventory)

    def match_percentage(self, inventory: Iterable[Ingredient]) -> float:
        """Share of ingredients on hand, 0.0 to 1.0."""
        if not self.ingredients:
            return 1.0
        return len(self.available_ingredients(inventory)) / len(self.ingredients)

    def apply_changes(self, changes: Dict[str, Any]) -> None:
        """Apply already-coerced field changes. Ingredient/step lists are replaced wholesale."""
        if "name" in changes and changes["name"].strip():
            self.name = changes["name"].strip()
        if "description" in changes:
            self.description = _clean_optional(changes["description"])
        if "notes" in changes:
            self.notes = _clean_optional(changes["notes"])
        if "cookingTemperature" in changes:
            self.cooking_temperature = _clean_optional(changes["cookingTemperature"])
        if "prepTime" in changes:
            self.prep_time = max(0, changes["prepTime"])
        if "cookTime" in changes:
            self.cook_time = max(0, changes["cookTime"])
        if "servings" in changes:
            self.servings = max(1, changes["servings"])
        if "difficulty" in changes:
            self.difficulty = changes["difficulty"]
        if "tags" in changes:
            self.tags = [t.strip().lower() for t in changes["tags"] if t.strip()]
        if "ingredients" in changes:
            self.ingredients = list(changes["ingredients"])
        if "steps" in changes:
            self.steps = list(changes["steps"])
        self.updated_at = _now()


# --- store ---


class KitchenStore(Protocol):
    """Persistence seam consumed by the function dispatcher."""

    def find_ingredient(self, name: str) -> Optional[Ingredient]: ...

    def upsert_ingredient(
        self,
        name: str,
        quantity: float,
        unit: Unit,
        category: IngredientCategory = IngredientCategory.OTHER,
        location: StorageLocation = StorageLocation.PANTRY,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Ingredient, bool]: ...

    def list_ingredients(
        self,
        category: Optional[IngredientCategory] = None,
        location: Optional[StorageLocation] = None,
    ) -> List[Ingredient]: ...

    def search_ingredients(self, query: str) -> List[Ingredient]: ...

    def delete_ingredient(self, ingredient: Ingredient) -> None: ...

    def find_recipe(self, name: str) -> Optional[Recipe]: ...

    def add_recipe(self, recipe: Recipe) -> None: ...

    def list_recipes(self, tag: Optional[str] = None) -> List[Recipe]: ...

    def search_recipes(self, query: str) -> List[Recipe]: ...

    def delete_recipe(self, recipe: Recipe) -> None: ...


class InMemoryKitchenStore:
    """Dict-backed KitchenStore. Lookups go through normalized names."""

    def __init__(self):
        self._ingredients: Dict[str, Ingredient] = {}
        self._recipes: Dict[str, Recipe] = {}

    # ingredients

    def find_ingredient(self, name: str) -> Optional[Ingredient]:
        target = normalize_name(name)
        for ingredient in self._ingredients.values():
            if ingredient.normalized_name == target:
                return ingredient
        return None

    def upsert_ingredient(
        self,
        name: str,
        quantity: float,
        unit: Unit,
        category: IngredientCategory = IngredientCategory.OTHER,
        location: StorageLocation = StorageLocation.PANTRY,
        expiry_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Ingredient, bool]:
        """
        Create the ingredient, or merge into an existing one.

        Same unit adds the quantities; a different unit replaces quantity
        and unit. Location, expiry and notes are refreshed when given.
        """
        existing = self.find_ingredient(name)
        if existing is None:
            ingredient = Ingredient(
                name=name,
                quantity=quantity,
                unit=unit,
                category=category,
                location=location,
                expiry_date=expiry_date,
                notes=notes,
            )
            self._ingredients[ingredient.id] = ingredient
            logger.debug("Ingredient created", ingredient=ingredient.name, unit=unit.value)
            return ingredient, True

        if existing.unit == unit:
            existing.quantity += quantity
        else:
            existing.quantity = quantity
            existing.unit = unit
        existing.location = location
        if category != IngredientCategory.OTHER:
            existing.category = category
        if expiry_date is not None:
            existing.expiry_date = expiry_date
        if notes is not None:
            existing.notes = notes
        existing.updated_at = _now()
        logger.debug("Ingredient merged", ingredient=existing.name, quantity=existing.quantity)
        return existing, False

    def list_ingredients(
        self,
        category: Optional[IngredientCategory] = None,
        location: Optional[StorageLocation] = None,
    ) -> List[Ingredient]:
        items = [
            i for i in self._ingredients.values()
            if (category is None or i.category == category)
            and (location is None or i.location == location)
        ]
        return sorted(items, key=lambda i: i.normalized_name)

    def search_ingredients(self, query: str) -> List[Ingredient]:
        needle = normalize_name(query)
        return [i for i in self.list_ingredients() if needle in i.normalized_name]

    def delete_ingredient(self, ingredient: Ingredient) -> None:
        self._ingredients.pop(ingredient.id, None)

    # recipes

    def find_recipe(self, name: str) -> Optional[Recipe]:
        target = normalize_recipe_name(name)
        for recipe in self._recipes.values():
            if recipe.normalized_name == target:
                return recipe
        return None

    def add_recipe(self, recipe: Recipe) -> None:
        self._recipes[recipe.id] = recipe

    def list_recipes(self, tag: Optional[str] = None) -> List[Recipe]:
        recipes = sorted(self._recipes.values(), key=lambda r: r.normalized_name)
        if tag:
            wanted = tag.strip().lower()
            recipes = [r for r in recipes if wanted in r.tags]
        return recipes

    def search_recipes(self, query: str) -> List[Recipe]:
        """Name substring matches first, then tag substring matches, without duplicates."""
        needle = normalize_recipe_name(query)
        recipes = self.list_recipes()
        results = [r for r in recipes if needle in r.normalized_name]
        seen = {r.id for r in results}
        for recipe in recipes:
            if recipe.id not in seen and any(needle in tag for tag in recipe.tags):
                results.append(recipe)
                seen.add(recipe.id)
        return results

    def delete_recipe(self, recipe: Recipe) -> None:
        self._recipes.pop(recipe.id, None)


def suggest_recipes(
    recipes: Iterable[Recipe],
    inventory: List[Ingredient],
    max_missing: int = 3,
) -> List[Tuple[Recipe, float, List[RecipeIngredient]]]:
    """Recipes missing at most ``max_missing`` ingredients, best match first."""
    if not inventory:
        return []
    scored = []
    for recipe in recipes:
        missing = recipe.missing_ingredients(inventory)
        if len(missing) <= max_missing:
            scored.append((recipe, recipe.match_percentage(inventory), missing))
    scored.sort(key=lambda entry: entry[1], reverse=True)
    return scored

