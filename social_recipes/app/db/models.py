from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from social_recipes.app.db.base import Base


class SourceType(str, enum.Enum):
    MANUAL = "manual"
    SOCIAL_POST = "social_post"


class ImportJobStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    COMPLETED_WITH_ERRORS = "COMPLETED_WITH_ERRORS"
    FAILED = "FAILED"


class ImportItemStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


recipe_tags = Table(
    "recipe_tags",
    Base.metadata,
    Column("recipe_id", ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)

    recipes = relationship("Recipe", back_populates="user", cascade="all, delete-orphan")


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    image_url = Column(String)
    video_url = Column(String)
    source_type = Column(Enum(SourceType, native_enum=False), nullable=False, default=SourceType.MANUAL)
    source_url = Column(String)
    source_author = Column(String)
    source_post_id = Column(String, index=True)
    servings = Column(Integer)
    prep_time_minutes = Column(Integer)
    cook_time_minutes = Column(Integer)
    total_time_minutes = Column(Integer)
    difficulty = Column(String)
    category = Column(String)
    cuisine = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="recipes")
    components = relationship(
        "RecipeComponent",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeComponent.position",
    )
    tags = relationship("Tag", secondary=recipe_tags, back_populates="recipes")


class RecipeComponent(Base):
    __tablename__ = "recipe_components"

    id = Column(Integer, primary_key=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False)

    recipe = relationship("Recipe", back_populates="components")
    ingredients = relationship(
        "Ingredient",
        back_populates="component",
        cascade="all, delete-orphan",
        order_by="Ingredient.position",
    )
    steps = relationship(
        "Step",
        back_populates="component",
        cascade="all, delete-orphan",
        order_by="Step.step_order",
    )


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True)
    component_id = Column(Integer, ForeignKey("recipe_components.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(Text, nullable=False)
    quantity = Column(Float)
    unit = Column(String)
    notes = Column(Text)
    optional = Column(Boolean, nullable=False, default=False)

    component = relationship("RecipeComponent", back_populates="ingredients")


class Step(Base):
    __tablename__ = "steps"
    __table_args__ = (UniqueConstraint("component_id", "step_order", name="uq_component_step_order"),)

    id = Column(Integer, primary_key=True)
    component_id = Column(Integer, ForeignKey("recipe_components.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)
    duration_minutes = Column(Integer)
    tips = Column(Text)

    component = relationship("RecipeComponent", back_populates="steps")


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True, index=True)

    recipes = relationship("Recipe", secondary=recipe_tags, back_populates="tags")


class BulkImportJob(Base):
    __tablename__ = "bulk_import_jobs"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default=ImportJobStatus.PENDING.value)
    total_posts = Column(Integer, nullable=False)
    processed_posts = Column(Integer, nullable=False, default=0)
    successful_posts = Column(Integer, nullable=False, default=0)
    failed_posts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    items = relationship(
        "ImportItem",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="ImportItem.position",
    )

    __table_args__ = (Index("ix_bulk_import_jobs_user_status", "user_id", "status"),)


class ImportItem(Base):
    __tablename__ = "import_items"

    id = Column(Integer, primary_key=True)
    job_id = Column(String, ForeignKey("bulk_import_jobs.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    post_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ImportItemStatus.PENDING.value)
    result_recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True)
    error_code = Column(String)
    error_detail = Column(Text)
    claimed_at = Column(DateTime)
    finished_at = Column(DateTime)

    job = relationship("BulkImportJob", back_populates="items")

    __table_args__ = (
        UniqueConstraint("job_id", "position", name="uq_import_item_position"),
        Index("ix_import_items_job_status", "job_id", "status"),
    )
