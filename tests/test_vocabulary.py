"""
Tests for the closed vocabularies (units, categories, locations, difficulty).
"""
import pytest

from kitchen_bridge.vocabulary import (
    IngredientCategory,
    RecipeDifficulty,
    RecipeSource,
    StorageLocation,
    UNIT_SYNONYMS,
    Unit,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("lbs", Unit.POUND),
        ("Pounds", Unit.POUND),
        (" lb. ", Unit.POUND),
        ("tablespoons", Unit.TABLESPOON),
        ("each", Unit.COUNT),
        ("G", Unit.GRAM),
        ("cloves", Unit.CLOVE),
    ],
)
def test_unit_parse_accepts_canonical_and_synonyms(raw, expected):
    assert Unit.parse(raw) is expected


@pytest.mark.parametrize("synonym, member", sorted(UNIT_SYNONYMS.items()))
def test_every_unit_synonym_parses_to_its_unit(synonym, member):
    for variant in (synonym, synonym.upper(), f"  {synonym}  ", f"\t{synonym.title()} "):
        assert Unit.parse(variant) is member


@pytest.mark.parametrize("member", list(Unit))
def test_every_canonical_unit_parses_to_itself(member):
    for variant in (member.value, member.value.upper(), f" {member.value} "):
        assert Unit.parse(variant) is member


@pytest.mark.parametrize("raw", ["bunches", "", "   ", None, 5])
def test_unit_parse_rejects_unknown(raw):
    assert Unit.parse(raw) is None


def test_valid_unit_strings_are_canonical_values():
    valid = Unit.valid_strings()
    assert valid[0] == "count"
    assert "lbs" in valid
    assert "bunch" not in valid
    assert len(valid) == len(set(valid)) == 14


def test_location_synonyms_and_display():
    assert StorageLocation.parse("Refrigerator") is StorageLocation.FRIDGE
    assert StorageLocation.parse("cupboard") is StorageLocation.PANTRY
    assert StorageLocation.FRIDGE.display_name == "fridge"


def test_category_parse_and_display():
    assert IngredientCategory.parse("veggies") is IngredientCategory.PRODUCE
    assert IngredientCategory.parse("Dairy") is IngredientCategory.DAIRY
    assert IngredientCategory.parse("bakery") is None
    assert IngredientCategory.SEAFOOD.display_name == "Seafood"


def test_difficulty_synonyms():
    assert RecipeDifficulty.parse("beginner") is RecipeDifficulty.EASY
    assert RecipeDifficulty.parse("Intermediate") is RecipeDifficulty.MEDIUM
    assert RecipeDifficulty.parse("challenging") is RecipeDifficulty.HARD
    assert RecipeDifficulty.parse("impossible") is None


def test_source_parse():
    assert RecipeSource.parse("ai drafted") is RecipeSource.AI_DRAFTED
    assert RecipeSource.parse("web") is RecipeSource.IMPORTED
