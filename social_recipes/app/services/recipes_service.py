import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from social_recipes.app.core.config import get_settings
from social_recipes.app.core.errors import NotFoundError, PersistenceError
from social_recipes.app.db import models
from social_recipes.app.schemas.recipe import ComponentDraft, RecipeDraft, RecipeRead

logger = logging.getLogger(__name__)


class RecipeRepository(ABC):
    @abstractmethod
    def save_recipe(self, draft: RecipeDraft, user_id: Optional[str] = None) -> int:  # pragma: no cover - interface
        """Persist a validated draft and return the new recipe id, or raise PersistenceError."""
        raise NotImplementedError

    @abstractmethod
    def get_recipe(self, recipe_id: int) -> RecipeRead:  # pragma: no cover - interface
        raise NotImplementedError


# Users and tags are committed ahead of the recipe itself: parallel workers
# may race to create the same row, and the loser simply re-reads it.


def _ensure_user(db: Session, user_id: str) -> None:
    if db.get(models.User, user_id) is not None:
        return
    db.add(models.User(user_id=user_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if db.get(models.User, user_id) is None:
            raise


def _get_or_create_tag(db: Session, name: str) -> models.Tag:
    normalized = name.strip()
    stmt = select(models.Tag).where(func.lower(models.Tag.name) == normalized.lower())
    tag = db.scalars(stmt).first()
    if tag:
        return tag

    tag = models.Tag(name=normalized)
    db.add(tag)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        tag = db.scalars(stmt).first()
        if tag:
            return tag
        raise
    return tag


def _build_components(components: Iterable[ComponentDraft]) -> List[models.RecipeComponent]:
    built = []
    for position, component in enumerate(components):
        row = models.RecipeComponent(position=position, name=component.name)
        for ing_position, ingredient in enumerate(component.ingredients):
            row.ingredients.append(
                models.Ingredient(
                    position=ing_position,
                    name=ingredient.name,
                    quantity=ingredient.quantity,
                    unit=ingredient.unit,
                    notes=ingredient.notes,
                    optional=ingredient.optional,
                )
            )
        # Order values are stored as given; display sorts by step_order
        for step in component.steps:
            row.steps.append(
                models.Step(
                    step_order=step.order,
                    instruction=step.instruction,
                    duration_minutes=step.duration,
                    tips=step.tips,
                )
            )
        built.append(row)
    return built


def create_recipe(db: Session, draft: RecipeDraft, user_id: Optional[str] = None) -> models.Recipe:
    settings = get_settings()
    user_id_str = str(user_id) if user_id is not None else None
    if user_id_str is not None:
        _ensure_user(db, user_id_str)
    tags = [_get_or_create_tag(db, name) for name in draft.tags]
    total_time = None
    if draft.prep_time_minutes is not None or draft.cook_time_minutes is not None:
        total_time = (draft.prep_time_minutes or 0) + (draft.cook_time_minutes or 0)

    recipe = models.Recipe(
        user_id=user_id_str,
        title=draft.title,
        description=draft.description,
        image_url=draft.image_url,
        video_url=draft.video_url,
        source_type=models.SourceType.SOCIAL_POST if draft.source_post_id else models.SourceType.MANUAL,
        source_url=draft.source_url,
        source_author=draft.source_author,
        source_post_id=draft.source_post_id,
        servings=draft.servings if draft.servings is not None else settings.recipe_default_servings,
        prep_time_minutes=draft.prep_time_minutes,
        cook_time_minutes=draft.cook_time_minutes,
        total_time_minutes=total_time,
        difficulty=draft.difficulty,
        category=draft.category,
        cuisine=draft.cuisine,
    )
    recipe.components = _build_components(draft.components)
    recipe.tags = tags

    db.add(recipe)
    db.commit()
    db.refresh(recipe)
    return recipe


def get_recipe(db: Session, recipe_id: int) -> models.Recipe:
    stmt = (
        select(models.Recipe)
        .where(models.Recipe.id == recipe_id)
        .options(
            selectinload(models.Recipe.components).selectinload(models.RecipeComponent.ingredients),
            selectinload(models.Recipe.components).selectinload(models.RecipeComponent.steps),
            selectinload(models.Recipe.tags),
        )
    )
    recipe = db.scalars(stmt).first()
    if not recipe:
        raise NotFoundError(f"Recipe {recipe_id} not found")
    return recipe


class SqlRecipeRepository(RecipeRepository):
    """RecipeRepository backed by the service database.

    Each call uses its own session so worker threads never share one.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def save_recipe(self, draft: RecipeDraft, user_id: Optional[str] = None) -> int:
        with self._session_factory() as db:
            try:
                recipe = create_recipe(db, draft, user_id=user_id)
                return recipe.id
            except OperationalError as exc:
                db.rollback()
                raise PersistenceError("store_unavailable", f"Recipe store unavailable: {exc}", fatal=True) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.warning("Failed to save recipe %r: %s", draft.title, exc)
                raise PersistenceError("persistence_failed", f"Failed to save recipe: {exc}") from exc

    def get_recipe(self, recipe_id: int) -> RecipeRead:
        with self._session_factory() as db:
            return RecipeRead.model_validate(get_recipe(db, recipe_id))
