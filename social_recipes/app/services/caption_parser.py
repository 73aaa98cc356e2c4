"""Heuristic extraction of a recipe payload from free-text post captions."""

import logging
import re
from typing import Dict, List, Optional, Tuple

from social_recipes.app.services.quantity_parser import FRACTION_CHARS, normalize_fractions, parse_quantity

logger = logging.getLogger(__name__)

DEFAULT_COMPONENT_NAME = "Main"
MAX_TITLE_LENGTH = 120
MAX_DESCRIPTION_LENGTH = 1000

COMMON_UNITS = {
    "cup",
    "c",
    "teaspoon",
    "tsp",
    "tablespoon",
    "tbsp",
    "tbs",
    "ounce",
    "oz",
    "fl",
    "pound",
    "lb",
    "gram",
    "g",
    "kg",
    "kilogram",
    "milliliter",
    "millilitre",
    "ml",
    "liter",
    "litre",
    "l",
    "pinch",
    "dash",
    "clove",
    "can",
    "package",
    "packet",
    "stick",
    "slice",
    "piece",
    "handful",
    "bunch",
    "sprig",
    "pint",
    "quart",
}

_HASHTAG_RE = re.compile(r"#(\w+)", re.UNICODE)
_LEADING_DECORATION_RE = re.compile(rf"^[^\w{FRACTION_CHARS}(#]+", re.UNICODE)
_BULLET_RE = re.compile(r"^\s*[-*•▪●◦‣·✔✓➡→>]")
_KEYCAP_STEP_RE = re.compile(r"^\s*(\d{1,2})\ufe0f?\u20e3\s*(?P<text>.+)$")
_NUMBERED_STEP_RE = re.compile(r"^\s*(?:step\s*)?(\d{1,2})\s*[.):\-]\s+(?P<text>.+)$", re.I)
_INGREDIENT_HEADER_RE = re.compile(
    r"^(?:the\s+)?(?:ingredients?|you(?:'|’)?ll\s+need|what\s+you(?:'|’)?ll\s+need|what\s+you\s+need)\b"
    r"\s*(?:\([^)]*\))?\s*:?\s*(?P<rest>.*)$",
    re.I,
)
_STEP_HEADER_RE = re.compile(
    r"^(?:instructions?|directions?|method|steps?|how\s+to\s+make(?:\s+it)?|preparation)\b"
    r"\s*:?\s*(?P<rest>.*)$",
    re.I,
)
_NOTES_HEADER_RE = re.compile(r"^(?:notes?|tips?)\b\s*:?\s*(?P<rest>.*)$", re.I)
_FOR_COMPONENT_RE = re.compile(r"^for\s+(?:the\s+)?(?P<name>[^:]{1,40}):\s*$", re.I)
_BARE_COMPONENT_RE = re.compile(r"^(?P<name>[A-Za-z][A-Za-z &'’\-]{1,30}):$")
_SERVINGS_RE = re.compile(r"\b(?:serves|servings?|yields?|makes)\s*:?\s*(\d+)", re.I)
_DURATION_TEXT = r"\d+(?:\.\d+)?\s*(?:h|hr|hrs|hours?|m|mins?|minutes?)\b(?:\s*\d+\s*(?:m|mins?|minutes?)\b)?"
_PREP_RE = re.compile(rf"\bprep(?:aration)?(?:\s*time\s*[:\-]?|\s*[:\-])\s*(?P<duration>{_DURATION_TEXT})", re.I)
_COOK_RE = re.compile(rf"\bcook(?:ing)?(?:\s*time\s*[:\-]?|\s*[:\-])\s*(?P<duration>{_DURATION_TEXT})", re.I)
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:h|hr|hrs|hours?)\b", re.I)
_MINUTES_RE = re.compile(r"(\d+)\s*(?:m|mins?|minutes?)\b", re.I)
_QTY_UNIT_NAME_RE = re.compile(
    rf"^(?P<qty>[\d{FRACTION_CHARS}][\d\s/.,\-–{FRACTION_CHARS}]*?)\s*(?P<unit>[A-Za-z][A-Za-z.]*)\s+(?P<name>.+)$"
)
_QTY_NAME_RE = re.compile(rf"^(?P<qty>[\d{FRACTION_CHARS}][\d\s/.,\-–{FRACTION_CHARS}]*?)\s+(?P<name>.+)$")
_ARTICLE_UNIT_RE = re.compile(r"^(?:a|an)\s+(?P<unit>[A-Za-z]+)\s+(?:of\s+)?(?P<name>.+)$", re.I)
_NAME_THEN_QTY_RE = re.compile(
    rf"^(?P<name>[^\d:\-–{FRACTION_CHARS}][^:\-–]*?)\s*[:\-–]\s*(?P<qty>[\d{FRACTION_CHARS}][\d\s/.{FRACTION_CHARS}]*)\s*(?P<unit>[A-Za-z]+)?\.?$"
)
_PAREN_RE = re.compile(r"\(([^)]*)\)")
_OPTIONAL_RE = re.compile(r"\boptional\b", re.I)
_TO_TASTE_RE = re.compile(r"\bto\s+taste\b", re.I)


def clean_text(text: str) -> str:
    """Normalize whitespace in text."""
    return re.sub(r"\s+", " ", text or "").strip()


def normalize_unit_token(unit: str) -> str:
    token = unit.lower().strip(".")
    if len(token) > 2 and token.endswith("s"):
        token = token[:-1]
    return token


def is_known_unit(unit: str) -> bool:
    return normalize_unit_token(unit) in COMMON_UNITS


def extract_hashtags(caption: str) -> List[str]:
    tags: Dict[str, None] = {}
    for tag in _HASHTAG_RE.findall(caption or ""):
        tags.setdefault(tag.lower(), None)
    return list(tags)


def strip_hashtags(text: str) -> str:
    return clean_text(_HASHTAG_RE.sub("", text))


def parse_duration_minutes(text: str) -> Optional[int]:
    """Read "1 hr 15 min" style durations; None when no duration is mentioned."""
    if not text:
        return None
    hours_match = _HOURS_RE.search(text)
    minutes_match = _MINUTES_RE.search(text)
    if not hours_match and not minutes_match:
        return None
    total = 0.0
    if hours_match:
        total += float(hours_match.group(1)) * 60
    if minutes_match:
        total += int(minutes_match.group(1))
    return int(round(total))


def clean_title(text: str) -> Optional[str]:
    cleaned = strip_hashtags(text)
    cleaned = re.sub(r"[^\w\s&'’,.!?()\-]", " ", cleaned, flags=re.UNICODE)
    cleaned = clean_text(cleaned).strip(" .:;-–|")
    if not re.search(r"[^\W\d_]", cleaned, flags=re.UNICODE):
        return None
    if len(cleaned) > MAX_TITLE_LENGTH:
        cleaned = cleaned[:MAX_TITLE_LENGTH].rsplit(" ", 1)[0]
    return cleaned


def split_ingredient_line(line: str) -> Optional[dict]:
    """Split "1 1/2 cups flour, sifted (optional)" into name/quantity/unit/notes."""
    raw = clean_text(normalize_fractions(line))
    if not raw:
        return None

    notes: List[str] = []
    optional = bool(_OPTIONAL_RE.search(raw))
    for inner in _PAREN_RE.findall(raw):
        inner = clean_text(_OPTIONAL_RE.sub("", inner)).strip(" ,;")
        if inner:
            notes.append(inner)
    raw = clean_text(_PAREN_RE.sub(" ", raw))
    raw = clean_text(_OPTIONAL_RE.sub("", raw)).strip(" ,;")
    if _TO_TASTE_RE.search(raw):
        notes.append("to taste")
        raw = clean_text(_TO_TASTE_RE.sub("", raw)).strip(" ,;")

    qty_text: Optional[str] = None
    unit: Optional[str] = None
    name = raw

    match = _QTY_UNIT_NAME_RE.match(raw)
    if match and is_known_unit(match.group("unit")):
        qty_text, unit, name = match.group("qty"), match.group("unit").rstrip("."), match.group("name")
    else:
        match = _QTY_NAME_RE.match(raw)
        if match:
            qty_text, name = match.group("qty"), match.group("name")
        else:
            match = _ARTICLE_UNIT_RE.match(raw)
            if match and is_known_unit(match.group("unit")):
                qty_text, unit, name = "1", match.group("unit"), match.group("name")
            else:
                match = _NAME_THEN_QTY_RE.match(raw)
                if match:
                    name, qty_text = match.group("name"), match.group("qty")
                    unit = match.group("unit") if match.group("unit") and is_known_unit(match.group("unit")) else None

    name = re.sub(r"^of\s+", "", clean_text(name), flags=re.I)
    if "," in name:
        name, tail = name.split(",", 1)
        tail = clean_text(tail)
        if tail:
            notes.append(tail)
    name = clean_text(name).strip(" .,;:")
    if not name:
        return None

    return {
        "name": name,
        "quantity": parse_quantity(qty_text.strip(" ,")) if qty_text else None,
        "unit": unit,
        "notes": "; ".join(notes) or None,
        "optional": optional,
    }


def _step_text(text: str) -> str:
    for pattern in (_KEYCAP_STEP_RE, _NUMBERED_STEP_RE):
        match = pattern.match(text)
        if match:
            return clean_text(match.group("text"))
    return clean_text(text)


def _is_numbered_step(text: str) -> bool:
    return bool(_KEYCAP_STEP_RE.match(text) or _NUMBERED_STEP_RE.match(text))


def _looks_like_ingredient(raw_line: str, text: str) -> bool:
    if _is_numbered_step(text):
        return False
    if _BULLET_RE.match(raw_line):
        return True
    return bool(re.match(rf"^[\d{FRACTION_CHARS}]", text))


def _match_section_header(text: str) -> Optional[Tuple[str, str]]:
    for kind, pattern in (
        ("ingredients", _INGREDIENT_HEADER_RE),
        ("steps", _STEP_HEADER_RE),
        ("notes", _NOTES_HEADER_RE),
    ):
        match = pattern.match(text)
        if not match:
            continue
        rest = clean_text(match.group("rest"))
        # "Method is simple" is prose, "Method: ..." is a header
        if rest and ":" not in text:
            continue
        return kind, rest
    return None


def _match_component_header(text: str, mode: Optional[str]) -> Optional[str]:
    match = _FOR_COMPONENT_RE.match(text)
    if not match and mode is not None:
        match = _BARE_COMPONENT_RE.match(text)
    if not match:
        return None
    name = clean_text(match.group("name"))
    return name[:1].upper() + name[1:]


def _read_metadata(text: str, meta: dict) -> bool:
    """Record servings/prep/cook found on a short metadata line."""
    if len(text) > 60 or _is_numbered_step(text):
        return False
    found = False
    servings = _SERVINGS_RE.search(text)
    if servings:
        meta.setdefault("servings", int(servings.group(1)))
        found = True
    for key, pattern in (("prep_time_minutes", _PREP_RE), ("cook_time_minutes", _COOK_RE)):
        match = pattern.search(text)
        if match:
            minutes = parse_duration_minutes(match.group("duration"))
            if minutes is not None:
                meta.setdefault(key, minutes)
                found = True
    return found


class _CaptionComponents:
    def __init__(self) -> None:
        self._components: Dict[str, dict] = {}
        self.current: Optional[dict] = None

    def switch(self, name: str) -> dict:
        key = name.lower()
        if key not in self._components:
            self._components[key] = {"name": name, "ingredients": [], "steps": []}
        self.current = self._components[key]
        return self.current

    def ensure_current(self) -> dict:
        if self.current is None:
            return self.switch(DEFAULT_COMPONENT_NAME)
        return self.current

    def add_ingredient_text(self, text: str) -> None:
        ingredient = split_ingredient_line(text)
        if ingredient:
            self.ensure_current()["ingredients"].append(ingredient)

    def add_step_text(self, text: str) -> None:
        instruction = _step_text(text)
        if not instruction:
            return
        steps = self.ensure_current()["steps"]
        steps.append(
            {
                "order": len(steps) + 1,
                "instruction": instruction,
                "duration": parse_duration_minutes(instruction),
            }
        )

    def as_list(self) -> List[dict]:
        return [c for c in self._components.values() if c["ingredients"] or c["steps"]]


def parse_caption(caption: str) -> dict:
    """Turn a caption into a RecipeDraft-shaped payload.

    Components may come back with no steps; callers decide how to fill them.
    """
    meta: dict = {}
    title: Optional[str] = None
    description_parts: List[str] = []
    components = _CaptionComponents()
    mode: Optional[str] = None

    for raw_line in (caption or "").splitlines():
        text = strip_hashtags(_LEADING_DECORATION_RE.sub("", raw_line.strip()))
        if not text:
            continue

        header = _match_section_header(text)
        if header:
            mode, rest = header
            if mode == "notes":
                if rest:
                    description_parts.append(rest)
                continue
            components.ensure_current()
            if rest and mode == "ingredients":
                for part in rest.split(","):
                    components.add_ingredient_text(part)
            elif rest:
                components.add_step_text(rest)
            continue

        if _read_metadata(text, meta):
            continue

        component_name = _match_component_header(text, mode)
        if component_name:
            components.switch(component_name)
            if mode is None:
                mode = "ingredients"
            continue

        if mode == "ingredients":
            components.add_ingredient_text(_step_text(text) if _is_numbered_step(text) else text)
        elif mode == "steps":
            components.add_step_text(text)
        elif mode == "notes":
            description_parts.append(text)
        elif title is None:
            title = clean_title(text)
        elif _is_numbered_step(text):
            components.add_step_text(text)
        elif _looks_like_ingredient(raw_line, text):
            components.add_ingredient_text(text)
        else:
            description_parts.append(text)

    description = clean_text(" ".join(description_parts))[:MAX_DESCRIPTION_LENGTH] or None
    parsed = {
        "title": title,
        "description": description,
        "tags": extract_hashtags(caption),
        "components": components.as_list(),
        **meta,
    }
    logger.debug(
        "Caption parsed: title=%r components=%d tags=%d",
        title,
        len(parsed["components"]),
        len(parsed["tags"]),
    )
    return parsed
