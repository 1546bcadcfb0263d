from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Action(str, Enum):
    CHAT = "chat"
    ANALYZE_FOOD = "analyze-food"
    CALCULATE_NUTRITION = "calculate-nutrition"
    GENERATE_MEAL_PLAN = "generate-meal-plan"
    GENERATE_RECIPES = "generate-recipes"
    GENERATE_SHOPPING_LIST = "generate-shopping-list"
    GENERATE_CLINICAL_SUMMARY = "generate-clinical-summary"


class PayloadModel(BaseModel):
    """Payloads arrive from the front end in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Request / response envelope ----

class GatewayRequest(BaseModel):
    action: str = Field(..., description="One of the supported actions; validated by the dispatcher")
    payload: dict[str, Any] = Field(default_factory=dict)


class GatewayResponse(BaseModel):
    result: str


class ErrorResponse(BaseModel):
    error: str


# ---- chat ----

class ClinicalSettings(PayloadModel):
    medication: str
    dosage: str = ""
    start_date: str | None = None
    injection_day: int | None = None


class ChatUser(PayloadModel):
    name: str
    goal: str | None = None
    daily_calorie_goal: float
    daily_water_goal: float = Field(0, ge=0)
    is_clinical_mode: bool = False
    clinical_settings: ClinicalSettings | None = None


class ChatStats(PayloadModel):
    calories_consumed: float = 0
    water_consumed: float = 0
    calories_burned: float = 0


class RecentMeal(PayloadModel):
    name: str
    calories: float


class ChatContext(PayloadModel):
    user: ChatUser
    stats: ChatStats = Field(default_factory=ChatStats)
    recent_meals: list[RecentMeal] = Field(default_factory=list)


class ChatPayload(PayloadModel):
    message: str = Field(..., min_length=1, max_length=8000)
    conversation_history: str | None = None
    context: ChatContext | None = None


# ---- analyze-food ----

class AnalyzeFoodPayload(PayloadModel):
    base64_data: str = Field(..., alias="base64Data", min_length=1)
    mime_type: str = Field("image/jpeg", pattern=r"^image/[\w.+-]+$")


# ---- calculate-nutrition ----

class FoodItem(PayloadModel):
    name: str = Field(..., min_length=1)
    quantity: str
    unit: str


class CalculateNutritionPayload(PayloadModel):
    food_items: list[FoodItem] = Field(..., min_length=1)


# ---- generate-meal-plan ----

class Macros(PayloadModel):
    protein: float


class MealPlanClinicalSettings(PayloadModel):
    medication: str | None = None


class MealPlanUser(PayloadModel):
    daily_calorie_goal: float
    goal: str | None = None
    macros: Macros
    is_clinical_mode: bool = False
    clinical_settings: MealPlanClinicalSettings | None = None


class MealPreferences(PayloadModel):
    diet_type: str = "normal"
    allergies: list[str] = Field(default_factory=list)
    disliked_foods: list[str] = Field(default_factory=list)
    meals_per_day: int = Field(3, ge=1)
    cooking_time: str = "normal"


class MealPlanPayload(PayloadModel):
    user: MealPlanUser
    preferences: MealPreferences
    day_name: str = Field(..., min_length=1)


# ---- generate-recipes ----

class RecipesPayload(PayloadModel):
    ingredients: str = Field(..., min_length=1)


# ---- generate-shopping-list ----

class ShoppingListPayload(PayloadModel):
    ingredients: list[str] = Field(..., min_length=1)


# ---- generate-clinical-summary ----

class SymptomEntry(PayloadModel):
    symptom: str
    date: str
    severity: int


class ClinicalSummaryPayload(PayloadModel):
    protein_adherence: float = Field(..., ge=0, le=100)
    symptoms: list[SymptomEntry] = Field(default_factory=list)
    medication: str | None = None
    dosage: str | None = None
    start_date: str | None = None


PAYLOAD_MODELS: dict[Action, type[PayloadModel]] = {
    Action.CHAT: ChatPayload,
    Action.ANALYZE_FOOD: AnalyzeFoodPayload,
    Action.CALCULATE_NUTRITION: CalculateNutritionPayload,
    Action.GENERATE_MEAL_PLAN: MealPlanPayload,
    Action.GENERATE_RECIPES: RecipesPayload,
    Action.GENERATE_SHOPPING_LIST: ShoppingListPayload,
    Action.GENERATE_CLINICAL_SUMMARY: ClinicalSummaryPayload,
}
