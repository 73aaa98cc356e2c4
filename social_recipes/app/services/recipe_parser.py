"""Validation and normalization of recipe drafts.

``validate_recipe_payload`` is a pure check that reports every violation it
finds. ``parse_payload`` and ``parse_post`` build on it and raise the
pipeline errors; ``generate_steps`` fills in steps for posts that only list
ingredients.
"""
import logging
import math
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from social_recipes.app.core.errors import FieldViolation, ParseError, ValidationError
from social_recipes.app.schemas.post import RawPost
from social_recipes.app.schemas.recipe import CATEGORIES, DIFFICULTIES, IngredientDraft, RecipeDraft, StepDraft
from social_recipes.app.services import caption_parser

logger = logging.getLogger(__name__)

POST_URL_TEMPLATE = "https://www.instagram.com/p/{shortcode}/"


def _pydantic_violations(exc: PydanticValidationError) -> List[FieldViolation]:
    violations = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part is not None)
        violations.append(FieldViolation(field=loc or None, message=err.get("msg", "Invalid value")))
    return violations


def _check_draft(draft: RecipeDraft) -> List[FieldViolation]:
    violations: List[FieldViolation] = []

    def add(field: str, message: str) -> None:
        violations.append(FieldViolation(field=field, message=message))

    if not draft.title.strip():
        add("title", "Title is required")
    for field in ("prep_time_minutes", "cook_time_minutes", "servings"):
        value = getattr(draft, field)
        if value is not None and value < 0:
            add(field, "Must be a non-negative integer")
    if draft.difficulty and draft.difficulty.strip().upper() not in DIFFICULTIES:
        add("difficulty", f"Must be one of {', '.join(DIFFICULTIES)}")
    if draft.category and draft.category.strip().upper() not in CATEGORIES:
        add("category", f"Must be one of {', '.join(CATEGORIES)}")

    if not draft.components:
        add("components", "At least one component is required")
    for c_idx, component in enumerate(draft.components):
        prefix = f"components.{c_idx}"
        if not component.name.strip():
            add(f"{prefix}.name", "Component name is required")
        if not component.ingredients:
            add(f"{prefix}.ingredients", "At least one ingredient is required")
        if not component.steps:
            add(f"{prefix}.steps", "At least one step is required")

        for i_idx, ingredient in enumerate(component.ingredients):
            field = f"{prefix}.ingredients.{i_idx}"
            if not ingredient.name.strip():
                add(f"{field}.name", "Ingredient name is required")
            quantity = ingredient.quantity
            if quantity is not None and (not math.isfinite(quantity) or quantity < 0):
                add(f"{field}.quantity", "Quantity must be a finite, non-negative number")

        seen_orders = set()
        for s_idx, step in enumerate(component.steps):
            field = f"{prefix}.steps.{s_idx}"
            if step.order < 1:
                add(f"{field}.order", "Step order must be a positive integer")
            elif step.order in seen_orders:
                add(f"{field}.order", f"Duplicate step order {step.order}")
            else:
                seen_orders.add(step.order)
            if not step.instruction.strip():
                add(f"{field}.instruction", "Step instruction is required")
            if step.duration is not None and step.duration < 0:
                add(f"{field}.duration", "Duration must be a non-negative integer")
    return violations


def validate_recipe_payload(payload: Any) -> List[FieldViolation]:
    """Return every violated constraint of a RecipeDraft-shaped payload."""
    try:
        draft = payload if isinstance(payload, RecipeDraft) else RecipeDraft.model_validate(payload)
    except PydanticValidationError as exc:
        return _pydantic_violations(exc)
    return _check_draft(draft)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _dedupe_tags(tags: Iterable[str]) -> List[str]:
    seen = {}
    for tag in tags:
        cleaned = tag.strip().lstrip("#").strip()
        if cleaned and cleaned.lower() not in seen:
            seen[cleaned.lower()] = cleaned
    return list(seen.values())


def normalize_draft(draft: RecipeDraft) -> RecipeDraft:
    """Strip text, collapse empty optionals and de-duplicate tags.

    Step order values and list ordering are kept exactly as given.
    """
    data = draft.model_dump()
    data["title"] = data["title"].strip()
    for field in ("description", "cuisine", "source_url", "source_author", "source_post_id", "image_url", "video_url"):
        data[field] = _clean_optional(data[field])
    for field in ("difficulty", "category"):
        value = _clean_optional(data[field])
        data[field] = value.upper() if value else None
    data["tags"] = _dedupe_tags(data["tags"])
    for component in data["components"]:
        component["name"] = component["name"].strip()
        for ingredient in component["ingredients"]:
            ingredient["name"] = ingredient["name"].strip()
            ingredient["unit"] = _clean_optional(ingredient["unit"])
            ingredient["notes"] = _clean_optional(ingredient["notes"])
        for step in component["steps"]:
            step["instruction"] = step["instruction"].strip()
            step["tips"] = _clean_optional(step["tips"])
    return RecipeDraft.model_validate(data)


def parse_payload(payload: Any) -> RecipeDraft:
    """Validate a manually supplied payload; raises ValidationError listing all violations."""
    violations = validate_recipe_payload(payload)
    if violations:
        raise ValidationError(violations)
    draft = payload if isinstance(payload, RecipeDraft) else RecipeDraft.model_validate(payload)
    return normalize_draft(draft)


def _fallback_title(raw: RawPost) -> str:
    if raw.owner_username:
        return f"Recipe from {raw.owner_username}"
    return f"Recipe from post {raw.post_id}"


def _attach_orphan_steps(components: List[dict]) -> List[dict]:
    """Move steps parsed outside any ingredient-bearing component onto one."""
    with_ingredients = [c for c in components if c["ingredients"]]
    if not with_ingredients:
        return components
    for orphan in [c for c in components if not c["ingredients"]]:
        target = next((c for c in with_ingredients if not c["steps"]), with_ingredients[-1])
        for step in orphan["steps"]:
            target["steps"].append({**step, "order": len(target["steps"]) + 1})
    return with_ingredients


def _payload_from_caption(raw: RawPost) -> dict:
    payload = caption_parser.parse_caption(raw.caption or "")
    components = _attach_orphan_steps(payload["components"])
    if not any(c["ingredients"] for c in components):
        raise ParseError("no_ingredients", "No ingredient list found in post caption")
    title = payload.get("title") or _fallback_title(raw)
    for component in components:
        if not component["steps"]:
            generated = generate_steps(title, component["ingredients"])
            component["steps"] = [step.model_dump() for step in generated]
    payload["components"] = components
    return payload


def parse_post(raw: RawPost) -> RecipeDraft:
    """Convert fetched post content into a validated draft or raise ParseError."""
    if raw.recipe is not None:
        payload = dict(raw.recipe)
        strategy = "structured"
    elif raw.caption and raw.caption.strip():
        payload = _payload_from_caption(raw)
        strategy = "caption"
    else:
        raise ParseError("no_caption", "Post has no caption to parse")

    if not isinstance(payload.get("title"), str) or not payload["title"].strip():
        payload["title"] = _fallback_title(raw)
    payload.setdefault("source_post_id", raw.post_id)
    if raw.owner_username:
        payload.setdefault("source_author", raw.owner_username)
    if raw.shortcode:
        payload.setdefault("source_url", POST_URL_TEMPLATE.format(shortcode=raw.shortcode))
    if raw.image_url:
        payload.setdefault("image_url", raw.image_url)
    if raw.video_url:
        payload.setdefault("video_url", raw.video_url)

    violations = validate_recipe_payload(payload)
    if violations:
        message = "; ".join(f"{v.field}: {v.message}" if v.field else v.message for v in violations)
        raise ParseError("invalid_recipe", message, violations)
    logger.debug("Parsed post %s using %s strategy", raw.post_id, strategy)
    return normalize_draft(RecipeDraft.model_validate(payload))


# Step synthesis

_DRY = ("flour", "sugar", "baking powder", "baking soda", "cocoa", "oat", "cornstarch", "yeast", "breadcrumb", "semolina")
_SEASONING = ("salt", "pepper", "paprika", "cumin", "cinnamon", "oregano", "chili", "chilli", "spice", "seasoning", "nutmeg", "turmeric")
_WET = (
    "milk", "egg", "butter", "oil", "water", "cream", "yogurt", "yoghurt", "vanilla", "honey", "syrup",
    "juice", "stock", "broth", "vinegar", "wine", "buttermilk",
)
_PROTEIN = ("chicken", "beef", "pork", "lamb", "turkey", "fish", "salmon", "tuna", "shrimp", "prawn", "tofu", "tempeh", "bacon", "sausage", "mince")
_PRODUCE = (
    "onion", "garlic", "tomato", "tomatoes", "carrot", "celery", "potato", "potatoes", "zucchini", "spinach", "lettuce",
    "cucumber", "mushroom", "broccoli", "cabbage", "parsley", "cilantro", "basil", "ginger", "lemon", "lime",
    "apple", "banana", "berry", "berries", "avocado", "scallion", "shallot", "leek", "kale", "bell pepper",
)
_DISH_METHODS = (
    ("no_cook", ("salad", "smoothie", "bowl", "dip", "salsa", "overnight", "parfait", "sandwich", "wrap", "guacamole", "shake")),
    ("bake", ("bake", "baked", "cake", "bread", "cookie", "muffin", "brownie", "pie", "tart", "casserole", "lasagna", "loaf", "roast", "focaccia", "scone", "granola")),
    ("pan", ("pancake", "crepe", "fritter", "omelette", "omelet", "fried", "fry", "stir-fry", "burger", "quesadilla", "toast", "skillet")),
    ("simmer", ("soup", "stew", "curry", "pasta", "noodle", "risotto", "chili", "sauce", "ragu", "dal", "ramen", "broth")),
)
_METHOD_STEPS = {
    "bake": (
        "Transfer to a prepared baking dish and bake at 180°C (350°F) until cooked through and golden.",
        25,
        "Check for doneness a few minutes early.",
    ),
    "pan": ("Heat a lightly oiled pan over medium heat and cook in batches until golden on both sides.", 10, None),
    "simmer": ("Bring to a boil, then reduce the heat and simmer until everything is tender.", 20, None),
    "no_cook": ("Toss or blend everything together until evenly combined.", None, None),
    "generic": ("Cook over medium heat, stirring occasionally, until done.", 15, None),
}


def _matches(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(kw)}(?:s|es)?\b", lowered) for kw in keywords)


def _classify(name: str) -> str:
    # Order matters: "bell pepper" is produce, "black pepper" is seasoning
    if _matches(name, ("bell pepper",)):
        return "produce"
    for label, keywords in (
        ("dry", _DRY),
        ("seasoning", _SEASONING),
        ("wet", _WET),
        ("protein", _PROTEIN),
        ("produce", _PRODUCE),
    ):
        if _matches(name, keywords):
            return label
    return "other"


def _dish_method(title: str) -> str:
    for method, keywords in _DISH_METHODS:
        if _matches(title, keywords):
            return method
    return "generic"


def _join(names: Sequence[str]) -> str:
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


def _format_quantity(quantity: Optional[float]) -> Optional[str]:
    if quantity is None:
        return None
    if float(quantity).is_integer():
        return str(int(quantity))
    return f"{quantity:g}"


def _label(ingredient: IngredientDraft) -> str:
    parts = [_format_quantity(ingredient.quantity), ingredient.unit, ingredient.name.strip()]
    return " ".join(part for part in parts if part)


def generate_steps(title: str, ingredients: Sequence[Union[IngredientDraft, dict]]) -> List[StepDraft]:
    """Synthesize an ordered step list from a title and ingredient list.

    Output depends only on the inputs, so identical calls give identical steps.
    """
    if not title or not title.strip():
        raise ValidationError.single("title", "Title is required to generate steps")
    title = title.strip()
    items = [i if isinstance(i, IngredientDraft) else IngredientDraft.model_validate(i) for i in ingredients]
    items = [i for i in items if i.name and i.name.strip()]

    groups = {"dry": [], "seasoning": [], "wet": [], "protein": [], "produce": [], "other": []}
    for item in items:
        groups[_classify(item.name)].append(item.name.strip())
    method = _dish_method(title)

    planned: List[Tuple[str, Optional[int], Optional[str]]] = []
    if items:
        planned.append((f"Gather and measure the ingredients: {', '.join(_label(i) for i in items)}.", None, None))
    if groups["produce"]:
        planned.append((f"Wash and chop the {_join(groups['produce'])}.", None, None))
    if groups["protein"]:
        planned.append((f"Pat dry and season the {_join(groups['protein'])}.", None, None))
    if groups["dry"] and groups["wet"]:
        planned.append((f"In a large bowl, whisk together the {_join(groups['dry'] + groups['seasoning'])}.", None, None))
        planned.append((f"In a separate bowl, combine the {_join(groups['wet'])}.", None, None))
        planned.append(
            (
                "Pour the wet ingredients into the dry ingredients and mix until just combined.",
                None,
                "A few lumps are fine; overmixing makes the result tough.",
            )
        )
        remaining = groups["other"]
    else:
        remaining = groups["dry"] + groups["wet"] + groups["seasoning"] + groups["other"]
    if remaining:
        planned.append((f"Add the {_join(remaining)} and combine well.", None, None))
    planned.append(_METHOD_STEPS[method])
    if method == "no_cook":
        planned.append((f"Serve the {title} right away.", None, None))
    else:
        planned.append((f"Adjust the seasoning to taste and serve the {title}.", None, None))

    return [
        StepDraft(order=index, instruction=instruction, duration=duration, tips=tips)
        for index, (instruction, duration, tips) in enumerate(planned, start=1)
    ]
