"""Indian price notation (lakh / crore) formatting and parsing.

Raw prices travel as integer strings of rupees. Display strings use short
units: "₹75 L", "₹1.5 Cr", "₹10K". Formatting keeps at most one decimal
for lakh and crore, so a round trip through format and parse is exact only
when the amount lands on that granularity; anything finer is display-only
and lost on purpose.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

RUPEE = "₹"

THOUSAND = 1_000
LAKH = 100_000
CRORE = 10_000_000

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")
_STRIP = re.compile(r"[₹,\s]")
_UNIT = re.compile(r"([0-9]+\.?[0-9]*)(CR|L|K)")
_DIGITS = re.compile(r"[0-9]+")

_MULTIPLIERS = {"CR": CRORE, "L": LAKH, "K": THOUSAND}

PRICE_PRESETS: list[dict[str, str]] = [
    {"value": "10000", "label": "10K", "full_label": "₹10,000"},
    {"value": "50000", "label": "50K", "full_label": "₹50,000"},
    {"value": "100000", "label": "1L", "full_label": "₹1 Lakh"},
    {"value": "500000", "label": "5L", "full_label": "₹5 Lakh"},
    {"value": "1000000", "label": "10L", "full_label": "₹10 Lakh"},
    {"value": "2500000", "label": "25L", "full_label": "₹25 Lakh"},
    {"value": "5000000", "label": "50L", "full_label": "₹50 Lakh"},
    {"value": "7500000", "label": "75L", "full_label": "₹75 Lakh"},
    {"value": "10000000", "label": "1Cr", "full_label": "₹1 Crore"},
    {"value": "15000000", "label": "1.5Cr", "full_label": "₹1.5 Crore"},
    {"value": "20000000", "label": "2Cr", "full_label": "₹2 Crore"},
    {"value": "30000000", "label": "3Cr", "full_label": "₹3 Crore"},
    {"value": "50000000", "label": "5Cr", "full_label": "₹5 Crore"},
    {"value": "100000000", "label": "10Cr", "full_label": "₹10 Crore"},
]


def group_indian(value: int | float) -> str:
    """Group digits the Indian way: 12,34,567."""
    negative = value < 0
    if isinstance(value, float):
        digits, _, fraction = f"{abs(value):.3f}".rstrip("0").rstrip(".").partition(".")
        fraction = f".{fraction}" if fraction else ""
    else:
        digits, fraction = str(abs(value)), ""

    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        digits = ",".join(pairs + [tail])

    return ("-" if negative else "") + digits + fraction


def _fixed(amount: int | float, divisor: int, places: int) -> str:
    quantum = Decimal(1).scaleb(-places)
    return str((Decimal(amount) / divisor).quantize(quantum, rounding=ROUND_HALF_UP))


def format_price_indian(raw: str) -> str:
    """Short display form of a raw rupee amount; "" when raw is empty or not a number."""
    if not raw:
        return ""
    match = _LEADING_INT.match(raw)
    if not match:
        return ""
    num = int(match.group(1))

    if num >= CRORE:
        return f"{RUPEE}{_fixed(num, CRORE, 0 if num % CRORE == 0 else 1)} Cr"
    if num >= LAKH:
        return f"{RUPEE}{_fixed(num, LAKH, 0 if num % LAKH == 0 else 1)} L"
    if num >= THOUSAND:
        return f"{RUPEE}{_fixed(num, THOUSAND, 0)}K"
    return f"{RUPEE}{group_indian(num)}"


def parse_indian_notation(text: str) -> str:
    """Parse "75L", "₹1.5cr", "10k" or plain digits into a raw rupee string.

    Returns "" when the input cannot be read.
    """
    cleaned = _STRIP.sub("", text).upper()

    unit = _UNIT.fullmatch(cleaned)
    if unit:
        try:
            amount = Decimal(unit.group(1)) * _MULTIPLIERS[unit.group(2)]
        except InvalidOperation:
            return ""
        return str(int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP)))

    if _DIGITS.fullmatch(cleaned):
        return cleaned

    return ""


@dataclass(frozen=True)
class ParsedPrice:
    status: str  # "empty" | "invalid" | "ok"
    value: str = ""


def parse_price_input(text: str) -> ParsedPrice:
    """Like parse_indian_notation, but tells a cleared field from a bad one."""
    if not text or not _STRIP.sub("", text):
        return ParsedPrice("empty")
    value = parse_indian_notation(text)
    if not value:
        return ParsedPrice("invalid")
    return ParsedPrice("ok", value)


def apply_price_input(current: str, text: str) -> str:
    """Resolve a price box edit: parsed value, cleared, or unchanged when invalid."""
    parsed = parse_price_input(text)
    if parsed.status == "ok":
        return parsed.value
    if parsed.status == "empty":
        return ""
    return current


def format_price(price: int | float) -> str:
    """Long display form with two decimals for lakh and crore."""
    if price >= CRORE:
        return f"{RUPEE}{_fixed(price, CRORE, 2)} Cr"
    if price >= LAKH:
        return f"{RUPEE}{_fixed(price, LAKH, 2)} L"
    return f"{RUPEE}{group_indian(price)}"


def format_price_range(min_price: int | float | None = None, max_price: int | float | None = None) -> str:
    if min_price and max_price:
        if min_price == max_price:
            return format_price(min_price)
        return f"{format_price(min_price)} - {format_price(max_price)}"
    if min_price:
        return f"From {format_price(min_price)}"
    if max_price:
        return f"Up to {format_price(max_price)}"
    return "Price on Request"
