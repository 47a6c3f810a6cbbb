# Overview: Variant price resolution; pure functions over a product's declared variations.

"""
Variant Price Resolver

Resolution rules (authoritative):
- Every variation resolves to exactly one option per order line.
- A missing selection defaults to the variation's FIRST option
  (mirrors the storefront's default-select behavior).
- A selection that names no declared option contributes nothing.
- Selections for unknown variation names are ignored.
- Malformed variation data degrades to a zero delta for that variation.
  The resolver never raises.

Strict parsing (parse_variations) is used when a product is saved, so bad
shapes are rejected at construction time rather than at order time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from ..errors import ValidationError
from ..validation import coerce_decimal, require_text, optional_text

VARIATION_TEXT = "text"
VARIATION_COLOR = "color"
VALID_VARIATION_TYPES = {VARIATION_TEXT, VARIATION_COLOR}

ZERO = Decimal("0")


@dataclass(frozen=True)
class VariationOption:
    value: str
    price_adjustment: Decimal = ZERO
    color: str | None = None

    def to_dict(self) -> dict:
        data = {"value": self.value, "priceAdjustment": str(self.price_adjustment)}
        if self.color:
            data["color"] = self.color
        return data


@dataclass(frozen=True)
class Variation:
    name: str
    type: str = VARIATION_TEXT
    options: tuple[VariationOption, ...] = field(default_factory=tuple)

    def find_option(self, value) -> VariationOption | None:
        for opt in self.options:
            if opt.value == value:
                return opt
        return None

    def default_option(self) -> VariationOption | None:
        return self.options[0] if self.options else None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "options": [o.to_dict() for o in self.options],
        }


def _parse_option(raw, variation_name: str) -> VariationOption:
    if not isinstance(raw, dict):
        raise ValidationError(f"options of variation '{variation_name}' must be objects")
    value = require_text(raw.get("value"), f"{variation_name}.option.value", max_length=120)
    adjustment = coerce_decimal(
        raw.get("priceAdjustment", raw.get("price_adjustment", 0)),
        f"{variation_name}.{value}.priceAdjustment",
        min_value=None,
    )
    color = optional_text(raw.get("color"), f"{variation_name}.{value}.color", max_length=32)
    return VariationOption(value=value, price_adjustment=adjustment, color=color)


def parse_variations(raw) -> list[Variation]:
    """Strictly parse the JSON variation list stored on a product."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("variations must be a list")

    variations: list[Variation] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, Variation):
            variations.append(item)
            seen.add(item.name)
            continue
        if not isinstance(item, dict):
            raise ValidationError("each variation must be an object")
        name = require_text(item.get("name"), "variation.name", max_length=120)
        if name in seen:
            raise ValidationError(f"duplicate variation name '{name}'")
        seen.add(name)

        vtype = (item.get("type") or VARIATION_TEXT)
        if vtype not in VALID_VARIATION_TYPES:
            raise ValidationError(f"variation '{name}' has invalid type '{vtype}'")

        raw_options = item.get("options") or []
        if not isinstance(raw_options, list):
            raise ValidationError(f"options of variation '{name}' must be a list")
        options = tuple(_parse_option(o, name) for o in raw_options)
        values = [o.value for o in options]
        if len(values) != len(set(values)):
            raise ValidationError(f"variation '{name}' has duplicate option values")

        variations.append(Variation(name=name, type=vtype, options=options))
    return variations


def _lenient_adjustment(raw_option) -> Decimal:
    if isinstance(raw_option, VariationOption):
        return raw_option.price_adjustment
    if not isinstance(raw_option, dict):
        return ZERO
    raw = raw_option.get("priceAdjustment", raw_option.get("price_adjustment", 0))
    if raw is None or isinstance(raw, bool):
        return ZERO
    try:
        adj = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return ZERO
    return adj if adj.is_finite() else ZERO


def _iter_lenient(variations):
    """
    Yield (name, options) pairs from Variation objects or raw dicts, skipping junk.

    A raw variation only counts when its name is a string and its options a list.
    """
    if not isinstance(variations, (list, tuple)):
        return
    for v in variations:
        if isinstance(v, Variation):
            yield v.name, list(v.options)
        elif isinstance(v, dict) and isinstance(v.get("name"), str) and isinstance(v.get("options"), list):
            yield v.get("name"), v["options"]


def _option_value(opt):
    if isinstance(opt, VariationOption):
        return opt.value
    if isinstance(opt, dict):
        return opt.get("value")
    return None


def resolve_variant_price(variations, selections: dict | None) -> Decimal:
    """
    Sum the price adjustments of the selected (or default) option of every variation.

    Accepts parsed Variation objects or the raw JSON dicts stored on a product.
    """
    selections = selections if isinstance(selections, dict) else {}
    delta = ZERO
    for name, options in _iter_lenient(variations):
        if not options:
            continue
        if name in selections:
            wanted = selections[name]
            chosen = next((o for o in options if _option_value(o) == wanted), None)
        else:
            chosen = options[0]
        if chosen is not None:
            delta += _lenient_adjustment(chosen)
    return delta


def default_selections(variations) -> dict:
    """The selection map a customer gets without touching any picker."""
    defaults = {}
    for name, options in _iter_lenient(variations):
        if options:
            value = _option_value(options[0])
            if value is not None:
                defaults[name] = value
    return defaults


def resolved_selections(variations, selections: dict | None) -> dict:
    """
    Merge explicit selections over the defaults, keeping only declared variations.

    Used to persist exactly what was priced on an order line. A selection
    naming an undeclared option drops that variation from the result.
    """
    resolved = default_selections(variations)
    selections = selections if isinstance(selections, dict) else {}
    for name, options in _iter_lenient(variations):
        if name not in selections:
            continue
        if any(_option_value(o) == selections[name] for o in options):
            resolved[name] = selections[name]
        else:
            # priced at zero delta, so nothing was actually chosen
            resolved.pop(name, None)
    return resolved
