from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from social_recipes.app.db.models import SourceType

DIFFICULTIES = ("EASY", "MEDIUM", "HARD", "EXPERT")
CATEGORIES = (
    "BREAKFAST",
    "BRUNCH",
    "LUNCH",
    "DINNER",
    "APPETIZER",
    "SNACK",
    "DESSERT",
    "BEVERAGE",
    "SOUP",
    "SALAD",
    "SIDE_DISH",
    "MAIN_COURSE",
    "SAUCE",
    "BREAD",
    "BAKING",
    "OTHER",
)


class IngredientDraft(BaseModel):
    name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None
    optional: bool = False


class StepDraft(BaseModel):
    order: StrictInt
    instruction: str
    duration: Optional[int] = None
    tips: Optional[str] = None


class ComponentDraft(BaseModel):
    name: str = "Main"
    ingredients: List[IngredientDraft]
    steps: List[StepDraft]


class RecipeDraft(BaseModel):
    """Parser output. Shape only; semantic rules live in recipe_parser."""

    title: str
    description: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    components: List[ComponentDraft]
    source_url: Optional[str] = None
    source_author: Optional[str] = None
    source_post_id: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None


class GenerateStepsRequest(BaseModel):
    title: str
    ingredients: List[IngredientDraft] = Field(default_factory=list)


class GenerateStepsResponse(BaseModel):
    steps: List[StepDraft]


class IngredientRead(BaseModel):
    id: int
    name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None
    optional: bool = False

    model_config = ConfigDict(from_attributes=True)


class StepRead(BaseModel):
    id: int
    step_order: int
    instruction: str
    duration_minutes: Optional[int] = None
    tips: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ComponentRead(BaseModel):
    id: int
    position: int
    name: str
    ingredients: List[IngredientRead]
    steps: List[StepRead]

    model_config = ConfigDict(from_attributes=True)


class TagRead(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class RecipeRead(BaseModel):
    id: int
    user_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    source_type: SourceType
    source_url: Optional[str] = None
    source_author: Optional[str] = None
    source_post_id: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    servings: Optional[int] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    total_time_minutes: Optional[int] = None
    difficulty: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    created_at: Optional[datetime] = None
    components: List[ComponentRead]
    tags: List[TagRead]

    model_config = ConfigDict(from_attributes=True)
