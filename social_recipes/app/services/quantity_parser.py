import re
from decimal import Decimal, InvalidOperation
from typing import Optional

UNICODE_FRACTIONS = {
    "½": "1/2",
    "⅓": "1/3",
    "⅔": "2/3",
    "¼": "1/4",
    "¾": "3/4",
    "⅕": "1/5",
    "⅖": "2/5",
    "⅗": "3/5",
    "⅘": "4/5",
    "⅙": "1/6",
    "⅚": "5/6",
    "⅛": "1/8",
    "⅜": "3/8",
    "⅝": "5/8",
    "⅞": "7/8",
}
FRACTION_CHARS = "".join(UNICODE_FRACTIONS)


def normalize_fractions(raw: str) -> str:
    # "1½" -> "1 1/2"
    value = re.sub(rf"(\d)([{FRACTION_CHARS}])", r"\1 \2", raw)
    for char, ascii_value in UNICODE_FRACTIONS.items():
        value = value.replace(char, ascii_value)
    return re.sub(r"\s+", " ", value).strip()


def _parse_simple(value: str) -> Optional[Decimal]:
    try:
        if "/" not in value and " " not in value:
            return Decimal(value)
    except InvalidOperation:
        return None

    try:
        if " " in value:
            whole_part, frac_part = value.split(" ", 1)
            whole = Decimal(whole_part)
            num_str, denom_str = frac_part.split("/", 1)
            denom = Decimal(denom_str)
            if denom == 0:
                return None
            return whole + (Decimal(num_str) / denom)
        num_str, denom_str = value.split("/", 1)
        denom = Decimal(denom_str)
        if denom == 0:
            return None
        return Decimal(num_str) / denom
    except (InvalidOperation, ValueError):
        return None


def parse_quantity(raw: Optional[str]) -> Optional[float]:
    """Parse a display quantity ("2", "0.5", "1 1/2", "1½", "2-3") into a float.

    Ranges resolve to their lower bound. Returns None when nothing numeric
    can be read.
    """
    if raw is None:
        return None
    value = normalize_fractions(raw.replace(",", "."))
    if not value:
        return None
    range_match = re.match(r"^(.+?)\s*(?:-|–|to)\s*(.+)$", value)
    if range_match:
        value = range_match.group(1).strip()
    parsed = _parse_simple(value)
    if parsed is None or not parsed.is_finite():
        return None
    return float(round(parsed, 4))
