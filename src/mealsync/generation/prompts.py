"""
MealSync - Generation prompts.

System prompts for the generator. The response shape itself is enforced
by the schema passed with the call, so prompts describe intent only.
"""

import json

RECIPE_SYSTEM_PROMPT = """You are a professional chef.

Create ONE recipe based on the user's request.

## Rules
- List every ingredient with a numeric amount and a unit (g, ml, piece, tbsp, ...)
- Nutrition is per serving: calories, protein, carbs and fat are all required
- Instructions are numbered steps in a single text block
- Difficulty is one of Easy, Medium, Hard
{dietary}"""


MEAL_PLAN_SYSTEM_PROMPT = """You are a professional nutritionist and meal planner.

Create a {duration}-day meal plan based on the user's request.

## Rules
- Return exactly {duration} days, in order, named "Day 1", "Day 2", ...
- Every meal has a name, a type (breakfast, lunch, dinner or snack), calories and protein
- Do not compute daily totals{meals_rule}
{custom_recipes}"""


_CUSTOM_RECIPES_BLOCK = """
## Custom Recipes
The user has these custom recipes. Use ONLY these recipes, by their exact name,
when constructing the plan:
{recipes}"""


def _dietary_block(context: dict) -> str:
    lines = []
    if context.get("diet_type") and context["diet_type"] != "None":
        lines.append(f"- Diet: {context['diet_type']}")
    if context.get("allergies"):
        lines.append(f"- NEVER use: {', '.join(context['allergies'])}")
    if context.get("dislikes"):
        lines.append(f"- Avoid: {', '.join(context['dislikes'])}")
    if not lines:
        return ""
    return "\n## User Preferences\n" + "\n".join(lines)


def build_recipe_prompt(context: dict) -> str:
    return RECIPE_SYSTEM_PROMPT.format(dietary=_dietary_block(context))


def build_meal_plan_prompt(context: dict) -> str:
    recipes = context.get("custom_recipes") or []
    block = (
        _CUSTOM_RECIPES_BLOCK.format(recipes=json.dumps(recipes, indent=2))
        if recipes
        else ""
    )
    meals_per_day = context.get("meals_per_day")
    meals_rule = (
        f"\n- Every day has exactly {meals_per_day} meals" if meals_per_day else ""
    )
    return MEAL_PLAN_SYSTEM_PROMPT.format(
        duration=context["duration"], meals_rule=meals_rule, custom_recipes=block
    )
