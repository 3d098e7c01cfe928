"""
Function dispatcher: runs validated tool calls against the kitchen store.

execute() is total. Unknown names, bad argument values and even handler
crashes come back as failure ToolResults so the agent can recover in
conversation; nothing here raises to the transport.
"""
from __future__ import annotations

import time
from datetime import date
from typing import Callable, Dict, List, Optional

from logging_setup import get_logger, Component

from .schema import REGISTRY, SchemaRegistry
from .store import (
    KitchenStore,
    Recipe,
    format_quantity,
    parse_recipe_ingredients,
    parse_steps,
    suggest_recipes,
)
from .tool_types import ToolCall, ToolResult, coerce_datetime, coerce_float
from .vocabulary import (
    IngredientCategory,
    RecipeDifficulty,
    RecipeSource,
    StorageLocation,
    Unit,
)

logger = get_logger(Component.DISPATCHER)

Handler = Callable[[ToolCall], ToolResult]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _invalid_unit_message() -> str:
    return f"Invalid unit. Valid units: {', '.join(Unit.valid_strings())}"


def _invalid_category_message() -> str:
    return f"Invalid category. Valid categories: {', '.join(IngredientCategory.valid_strings())}"


def _invalid_location_message() -> str:
    return f"Invalid location. Valid locations: {', '.join(StorageLocation.valid_strings())}"


class FunctionDispatcher:
    """Maps tool names to handlers over a KitchenStore."""

    def __init__(
        self,
        store: KitchenStore,
        registry: SchemaRegistry = REGISTRY,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.registry = registry
        self._today = today
        self._handlers: Dict[str, Handler] = {
            "add_ingredient": self._add_ingredient,
            "remove_ingredient": self._remove_ingredient,
            "update_ingredient": self._update_ingredient,
            "list_ingredients": self._list_ingredients,
            "search_ingredients": self._search_ingredients,
            "get_ingredient": self._get_ingredient,
            "create_recipe": self._create_recipe,
            "update_recipe": self._update_recipe,
            "delete_recipe": self._delete_recipe,
            "get_recipe": self._get_recipe,
            "list_recipes": self._list_recipes,
            "search_recipes": self._search_recipes,
            "suggest_recipes": self._suggest_recipes,
            "check_recipe_availability": self._check_recipe_availability,
        }

    def dispatch(self, call: ToolCall) -> ToolResult:
        """Validate against the registry, then execute."""
        error = self.registry.validate(call)
        if error is not None:
            logger.warning("Tool call rejected", tool=call.name, call_id=call.id, reason=error)
            return ToolResult.fail(call, error)
        return self.execute(call)

    def execute(self, call: ToolCall) -> ToolResult:
        handler = self._handlers.get(call.name)
        if handler is None:
            return ToolResult.fail(call, f"Unknown function: {call.name}")

        start_ts = time.time()
        try:
            result = handler(call)
        except Exception as e:
            logger.exception(
                "Tool handler crashed",
                tool=call.name,
                call_id=call.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ToolResult.fail(call, f"Failed to run {call.name}: {e}")

        logger.info(
            "Tool executed",
            tool=call.name,
            call_id=call.id,
            success=result.success,
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return result

    # --- inventory ---

    def _add_ingredient(self, call: ToolCall) -> ToolResult:
        name = call.string("name")
        if not name or not name.strip():
            return ToolResult.fail(call, "Missing ingredient name")
        quantity = call.double("quantity")
        if quantity is None or quantity <= 0:
            return ToolResult.fail(call, "Quantity must be greater than 0")
        unit = Unit.parse(call.string("unit"))
        if unit is None:
            return ToolResult.fail(call, _invalid_unit_message())

        category = IngredientCategory.parse(call.string("category")) or IngredientCategory.OTHER
        location = StorageLocation.parse(call.string("location")) or StorageLocation.PANTRY
        expiry = call.date("expiryDate")

        ingredient, created = self.store.upsert_ingredient(
            name=name,
            quantity=quantity,
            unit=unit,
            category=category,
            location=location,
            expiry_date=expiry.date() if expiry else None,
            notes=call.string("notes"),
        )

        where = ingredient.location.display_name
        if created:
            message = f"Added {ingredient.display_quantity} of {ingredient.name} to the {where}"
        else:
            message = f"Updated {ingredient.name} - now have {ingredient.display_quantity} in the {where}"
        return ToolResult.ok(call, message, wasCreated=created, ingredient=ingredient.summary())

    def _remove_ingredient(self, call: ToolCall) -> ToolResult:
        name = call.string("name")
        if not name:
            return ToolResult.fail(call, "Missing ingredient name")
        ingredient = self.store.find_ingredient(name)
        if ingredient is None:
            return ToolResult.fail(call, f"'{name}' not found in inventory")

        if not call.has("quantity"):
            self.store.delete_ingredient(ingredient)
            return ToolResult.ok(call, f"Removed {ingredient.name} from inventory")

        quantity = call.double("quantity")
        if quantity is None or quantity <= 0:
            return ToolResult.fail(call, "Quantity must be greater than 0")

        removed = ingredient.remove_quantity(quantity)
        if ingredient.quantity <= 0:
            self.store.delete_ingredient(ingredient)
            return ToolResult.ok(call, f"Removed all {ingredient.name} from inventory", remaining=0)

        return ToolResult.ok(
            call,
            f"Removed {format_quantity(removed)} {ingredient.unit.value} of {ingredient.name}. "
            f"{ingredient.display_quantity} remaining.",
            remaining=ingredient.quantity,
        )

    def _update_ingredient(self, call: ToolCall) -> ToolResult:
        name = call.string("name")
        if not name:
            return ToolResult.fail(call, "Missing ingredient name")
        patch = call.mapping("patch")
        if patch is None:
            return ToolResult.fail(call, "Missing update patch")
        ingredient = self.store.find_ingredient(name)
        if ingredient is None:
            return ToolResult.fail(call, f"'{name}' not found in inventory")

        changes = {}
        if isinstance(patch.get("name"), str) and patch["name"].strip():
            changes["name"] = patch["name"]
        quantity = coerce_float(patch.get("quantity"))
        if quantity is not None:
            changes["quantity"] = quantity
        if isinstance(patch.get("unit"), str):
            unit = Unit.parse(patch["unit"])
            if unit is None:
                return ToolResult.fail(call, _invalid_unit_message())
            changes["unit"] = unit
        if isinstance(patch.get("category"), str):
            category = IngredientCategory.parse(patch["category"])
            if category is None:
                return ToolResult.fail(call, _invalid_category_message())
            changes["category"] = category
        if isinstance(patch.get("location"), str):
            location = StorageLocation.parse(patch["location"])
            if location is None:
                return ToolResult.fail(call, _invalid_location_message())
            changes["location"] = location
        expiry = coerce_datetime(patch.get("expiryDate"))
        if expiry is not None:
            changes["expiry_date"] = expiry.date()
        if isinstance(patch.get("notes"), str):
            changes["notes"] = patch["notes"]

        if not changes:
            return ToolResult.fail(call, "No changes specified")

        ingredient.apply_patch(**changes)
        return ToolResult.ok(
            call,
            f"Updated {ingredient.name}",
            ingredient=ingredient.summary(),
            updatedFields=sorted(changes),
        )

    def _list_ingredients(self, call: ToolCall) -> ToolResult:
        category = IngredientCategory.parse(call.string("category"))
        location = StorageLocation.parse(call.string("location"))
        ingredients = self.store.list_ingredients(category=category, location=location)

        if not ingredients:
            message = "No ingredients"
            if category:
                message += f" in {category.display_name}"
            if location:
                message += f" in the {location.display_name}"
            return ToolResult.ok(call, message, count=0, items=[])

        message = _plural(len(ingredients), "item")
        if location:
            message += f" in the {location.display_name}"
        if category:
            message += f" ({category.display_name})"
        items = [f"{i.name}: {i.display_quantity}" for i in ingredients]
        return ToolResult.ok(call, message, count=len(ingredients), items=items)

    def _search_ingredients(self, call: ToolCall) -> ToolResult:
        query = call.string("query")
        if not query:
            return ToolResult.fail(call, "Missing search query")
        results = self.store.search_ingredients(query)
        if not results:
            return ToolResult.ok(call, f"No ingredients matching '{query}'", count=0, results=[])
        items = [
            {"name": i.name, "quantity": i.display_quantity, "location": i.location.display_name}
            for i in results
        ]
        return ToolResult.ok(
            call,
            f"Found {len(results)} matching ingredient{'' if len(results) == 1 else 's'}",
            count=len(results),
            results=items,
        )

    def _get_ingredient(self, call: ToolCall) -> ToolResult:
        name = call.string("name")
        if not name:
            return ToolResult.fail(call, "Missing ingredient name")
        ingredient = self.store.find_ingredient(name)
        if ingredient is None:
            return ToolResult.ok(call, f"No '{name}' in inventory", found=False)

        today = self._today()
        data = {
            "found": True,
            "name": ingredient.name,
            "quantity": ingredient.quantity,
            "unit": ingredient.unit.value,
            "displayQuantity": ingredient.display_quantity,
            "location": ingredient.location.display_name,
            "category": ingredient.category.display_name,
        }
        days = ingredient.days_until_expiry(today)
        if days is not None:
            data["daysUntilExpiry"] = days
            data["isExpired"] = ingredient.is_expired(today)
            data["isExpiringSoon"] = ingredient.is_expiring_soon(today)

        if ingredient.is_expired(today):
            expiry_info = " (EXPIRED)"
        elif ingredient.is_expiring_soon(today):
            expiry_info = " (expiring soon)"
        else:
            expiry_info = ""

        return ToolResult.ok(
            call,
            f"You have {ingredient.display_quantity} of {ingredient.name} "
            f"in the {ingredient.location.display_name}{expiry_info}",
            **data,
        )

    # --- recipes ---

    def _recipe_or_failure(self, call: ToolCall):
        name = call.string("name")
        if not name:
            return None, ToolResult.fail(call, "Missing recipe name")
        recipe = self.store.find_recipe(name)
        if recipe is None:
            return None, ToolResult.fail(call, f"Recipe '{name}' not found")
        return recipe, None

    def _tags(self, call: ToolCall) -> Optional[List[str]]:
        tags = call.json_list("tags")
        if tags is None:
            return None
        return [t for t in tags if isinstance(t, str)]

    def _create_recipe(self, call: ToolCall) -> ToolResult:
        name = call.string("name")
        if not name or not name.strip():
            return ToolResult.fail(call, "Missing recipe name")

        raw_ingredients = call.json_list("ingredients")
        if raw_ingredients is None:
            return ToolResult.fail(call, "Invalid ingredients format - expected JSON array")
        ingredients = parse_recipe_ingredients(raw_ingredients)
        if not ingredients:
            return ToolResult.fail(call, "No valid ingredients provided")

        raw_steps = call.json_list("steps")
        if raw_steps is None:
            return ToolResult.fail(call, "Invalid steps format - expected JSON array")
        steps = parse_steps(raw_steps)
        if not steps:
            return ToolResult.fail(call, "No valid steps provided")

        if self.store.find_recipe(name) is not None:
            return ToolResult.fail(call, f"A recipe named '{name}' already exists")

        recipe = Recipe(
            name=name,
            description=call.string("description"),
            notes=call.string("notes"),
            cooking_temperature=call.string("cookingTemperature"),
            ingredients=ingredients,
            steps=steps,
            prep_time=call.int("prepTime"),
            cook_time=call.int("cookTime"),
            servings=call.int("servings"),
            tags=self._tags(call) or [],
            difficulty=RecipeDifficulty.parse(call.string("difficulty")) or RecipeDifficulty.MEDIUM,
            source=RecipeSource.AI_DRAFTED,
        )
        self.store.add_recipe(recipe)

        return ToolResult.ok(
            call,
            f"Created recipe '{recipe.name}' with {_plural(len(ingredients), 'ingredient')} "
            f"and {_plural(len(steps), 'step')}",
            name=recipe.name,
            ingredientCount=len(ingredients),
            stepCount=len(steps),
        )

    def _update_recipe(self, call: ToolCall) -> ToolResult:
        recipe, failure = self._recipe_or_failure(call)
        if failure:
            return failure

        changes = {}
        new_name = call.string("newName")
        if new_name and new_name.strip():
            existing = self.store.find_recipe(new_name)
            if existing is not None and existing.id != recipe.id:
                return ToolResult.fail(call, f"A recipe named '{new_name}' already exists")
            changes["name"] = new_name
        for key in ("description", "notes", "cookingTemperature"):
            value = call.string(key)
            if value is not None:
                changes[key] = value
        for key in ("prepTime", "cookTime", "servings"):
            value = call.int(key)
            if value is not None:
                changes[key] = value
        if call.has("difficulty"):
            difficulty = RecipeDifficulty.parse(call.string("difficulty"))
            if difficulty is None:
                return ToolResult.fail(
                    call,
                    f"Invalid difficulty. Valid values: {', '.join(RecipeDifficulty.valid_strings())}",
                )
            changes["difficulty"] = difficulty
        tags = self._tags(call)
        if tags is not None:
            changes["tags"] = tags
        if call.has("ingredients"):
            raw = call.json_list("ingredients")
            if raw is None:
                return ToolResult.fail(call, "Invalid ingredients format - expected JSON array")
            changes["ingredients"] = parse_recipe_ingredients(raw)
        if call.has("steps"):
            raw = call.json_list("steps")
            if raw is None:
                return ToolResult.fail(call, "Invalid steps format - expected JSON array")
            changes["steps"] = parse_steps(raw)

        if not changes:
            return ToolResult.fail(call, "No changes specified")

        recipe.apply_changes(changes)
        return ToolResult.ok(call, f"Updated recipe '{recipe.name}'", updatedFields=sorted(changes))

    def _delete_recipe(self, call: ToolCall) -> ToolResult:
        recipe, failure = self._recipe_or_failure(call)
        if failure:
            return failure
        self.store.delete_recipe(recipe)
        return ToolResult.ok(call, f"Deleted recipe '{recipe.name}'")

    def _get_recipe(self, call: ToolCall) -> ToolResult:
        recipe, failure = self._recipe_or_failure(call)
        if failure:
            return failure

        inventory = self.store.list_ingredients()
        missing = {ing.normalized_name for ing in recipe.missing_ingredients(inventory)}

        ingredient_list = []
        for ing in recipe.ingredients:
            entry = {"name": ing.name, "displayText": ing.display_text}
            if ing.quantity is not None:
                entry["quantity"] = ing.quantity
            if ing.unit is not None:
                entry["unit"] = ing.unit.value
            if ing.preparation:
                entry["preparation"] = ing.preparation
            entry["available"] = ing.normalized_name not in missing
            ingredient_list.append(entry)

        step_list = []
        for step in recipe.ordered_steps:
            entry = {"instruction": step.instruction, "index": step.order_index}
            if step.duration_minutes is not None:
                entry["durationMinutes"] = step.duration_minutes
            step_list.append(entry)

        data = {
            "name": recipe.name,
            "description": recipe.description or "",
            "ingredients": ingredient_list,
            "steps": step_list,
            "missingCount": len(missing),
            "canMake": not missing,
            "totalTime": recipe.formatted_total_time or "Unknown",
            "difficulty": recipe.difficulty.display_name,
            "tags": list(recipe.tags),
        }
        if recipe.notes:
            data["notes"] = recipe.notes
        if recipe.cooking_temperature:
            data["cookingTemperature"] = recipe.cooking_temperature
        if recipe.servings:
            data["servings"] = recipe.servings
        return ToolResult.ok(call, f"Found recipe '{recipe.name}'", **data)

    def _list_recipes(self, call: ToolCall) -> ToolResult:
        tag = call.string("tag")
        recipes = self.store.list_recipes(tag=tag)
        if not recipes:
            message = f"No recipes with tag '{tag}'" if tag else "No recipes saved yet"
            return ToolResult.ok(call, message, count=0, recipes=[])

        inventory = self.store.list_ingredients()
        summaries = []
        for recipe in recipes:
            missing = recipe.missing_ingredients(inventory)
            summaries.append({
                "name": recipe.name,
                "description": recipe.description or "",
                "canMake": not missing,
                "missingCount": len(missing),
                "totalTime": recipe.formatted_total_time or "Unknown",
                "difficulty": recipe.difficulty.display_name,
            })
        return ToolResult.ok(
            call,
            f"{_plural(len(recipes), 'recipe')} found",
            count=len(recipes),
            recipes=summaries,
        )

    def _search_recipes(self, call: ToolCall) -> ToolResult:
        query = call.string("query")
        if not query:
            return ToolResult.fail(call, "Missing search query")
        results = self.store.search_recipes(query)
        if not results:
            return ToolResult.ok(call, f"No recipes matching '{query}'", count=0, results=[])

        inventory = self.store.list_ingredients()
        summaries = []
        for recipe in results:
            missing = recipe.missing_ingredients(inventory)
            summaries.append({"name": recipe.name, "canMake": not missing, "missingCount": len(missing)})
        return ToolResult.ok(
            call,
            f"Found {_plural(len(results), 'recipe')} matching '{query}'",
            count=len(results),
            results=summaries,
        )

    def _suggest_recipes(self, call: ToolCall) -> ToolResult:
        inventory = self.store.list_ingredients()
        if not inventory:
            return ToolResult.ok(
                call,
                "No ingredients in inventory. Add some ingredients first!",
                count=0,
                suggestions=[],
            )

        max_missing = call.int("maxMissingIngredients")
        if max_missing is None:
            max_missing = 3
        only_fully_makeable = call.bool("onlyFullyMakeable") or False

        suggestions = suggest_recipes(self.store.list_recipes(), inventory, max(0, max_missing))
        if only_fully_makeable:
            suggestions = [s for s in suggestions if not s[2]]

        if not suggestions:
            if only_fully_makeable:
                message = "No recipes can be made with current inventory"
            else:
                message = f"No recipes found with {max_missing} or fewer missing ingredients"
            return ToolResult.ok(call, message, count=0, suggestions=[])

        fully_makeable = sum(1 for s in suggestions if not s[2])
        suggestion_list = [
            {
                "name": recipe.name,
                "matchPercentage": int(match * 100),
                "missingIngredients": [m.name for m in missing],
                "totalTime": recipe.formatted_total_time or "Unknown",
            }
            for recipe, match, missing in suggestions
        ]
        return ToolResult.ok(
            call,
            f"{_plural(len(suggestions), 'recipe')} available. {fully_makeable} can be made right now.",
            count=len(suggestions),
            fullyMakeable=fully_makeable,
            suggestions=suggestion_list,
        )

    def _check_recipe_availability(self, call: ToolCall) -> ToolResult:
        recipe, failure = self._recipe_or_failure(call)
        if failure:
            return failure

        missing = recipe.missing_ingredients(self.store.list_ingredients())
        can_make = not missing
        if can_make:
            message = f"You can make '{recipe.name}' with current inventory"
        else:
            message = f"Missing {_plural(len(missing), 'item')} for '{recipe.name}'"
        return ToolResult.ok(
            call,
            message,
            name=recipe.name,
            canMake=can_make,
            missingCount=len(missing),
            missing=[{"name": m.name, "displayText": m.display_text} for m in missing],
        )
