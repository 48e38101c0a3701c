"""
MealSync - Name Normalization.

Matching keys for ingredients, inventory items and recipe names.
Units are only cleaned of spelling variants, never converted.
"""

# Spelling variants of the same unit
_UNIT_ALIASES = {
    "grams": "g",
    "gram": "g",
    "kilograms": "kg",
    "kilogram": "kg",
    "milliliters": "ml",
    "milliliter": "ml",
    "millilitres": "ml",
    "liters": "l",
    "liter": "l",
    "litres": "l",
    "litre": "l",
    "pounds": "lb",
    "pound": "lb",
    "lbs": "lb",
    "ounces": "oz",
    "ounce": "oz",
    "cups": "cup",
    "tablespoons": "tbsp",
    "tablespoon": "tbsp",
    "teaspoons": "tsp",
    "teaspoon": "tsp",
    "pieces": "piece",
    "pcs": "piece",
    "items": "item",
    "cloves": "clove",
    "cans": "can",
}


def normalize_name(name: str) -> str:
    """
    Normalize a name for consistent matching.

    Examples:
        normalize_name("  Chicken Thighs  ") -> "chicken thighs"
        normalize_name("TOMATO") -> "tomato"
        normalize_name("green   pepper") -> "green pepper"
    """
    return " ".join(name.lower().strip().split())


def clean_unit(unit: str) -> str:
    """Lowercase a unit and fold plural/long spellings ("Grams" -> "g")."""
    unit = unit.lower().strip()
    return _UNIT_ALIASES.get(unit, unit)


def ingredient_key(name: str, unit: str) -> tuple[str, str]:
    """(name, unit) key used to match requirements against inventory."""
    return (normalize_name(name), clean_unit(unit))


def display_name(name: str) -> str:
    """Tidy a name for display: collapsed whitespace, first letter upper."""
    name = " ".join(name.strip().split())
    return name[:1].upper() + name[1:]
