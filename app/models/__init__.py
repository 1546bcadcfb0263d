from app.models.meal_analysis import MealAnalysis

__all__ = ["MealAnalysis"]
