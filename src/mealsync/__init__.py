"""
MealSync - Reactive synchronization and derivation core.

Keeps local views of remote collections live, applies optimistic
mutations with rollback, and derives meal plans and shopping lists:
- Inventory, recipes, meal plans, shopping lists
- Notifications and notification preferences
- User profile
"""

__version__ = "1.0.0"
