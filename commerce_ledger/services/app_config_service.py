# Overview: Admin-editable economy settings; JSON overrides deep-merged over defaults, cached per process.

from __future__ import annotations

import copy
import threading
import time

from flask import current_app

from ..extensions import db
from ..models import AppSetting
from ..validation import ValidationError

APP_CONFIG_KEY = "app_settings"

PACK_SIZES = ("small", "medium", "large")
PACK_NAMES = {"small": "Small", "medium": "Medium", "large": "Large"}

DEFAULT_CONFIG = {
    "tokenPacks": {
        "small": {"tokens": 100, "priceDA": 1000},
        "medium": {"tokens": 500, "priceDA": 4500},
        "large": {"tokens": 1000, "priceDA": 8500},
    },
    "tokenPacksPro": {
        "small": {"tokens": 120},
        "medium": {"tokens": 625},
        "large": {"tokens": 1250},
    },
    "proBonusTokens": 200,
    "referralBonusTokens": 50,
    "orderUnlockCost": 10,
    "adFreePacks": {
        "week": {"days": 7, "cost": 30},
        "month": {"days": 30, "cost": 100},
    },
}

_cache_lock = threading.Lock()
_cached_config: dict | None = None
_cached_at = 0.0


def deep_merge(defaults: dict, overrides: dict) -> dict:
    """Nested dicts merge key by key; any other override value replaces the default."""
    result = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def clear_cache() -> None:
    global _cached_config, _cached_at
    with _cache_lock:
        _cached_config = None
        _cached_at = 0.0


def _store_cache(config: dict) -> None:
    global _cached_config, _cached_at
    with _cache_lock:
        _cached_config = config
        _cached_at = time.monotonic()


def get_app_config() -> dict:
    """Current economy settings. Returns a copy; mutate via update_app_config."""
    ttl = current_app.config.get("APP_CONFIG_CACHE_SECONDS", 60)
    with _cache_lock:
        if _cached_config is not None and time.monotonic() - _cached_at < ttl:
            return copy.deepcopy(_cached_config)

    row = db.session.query(AppSetting).filter_by(key=APP_CONFIG_KEY).first()
    merged = deep_merge(DEFAULT_CONFIG, row.value if row is not None else {})
    _store_cache(merged)
    return copy.deepcopy(merged)


def _positive(value, label: str, errors: list) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        errors.append(f"{label} must be a positive integer")


def validate_config_patch(partial: dict) -> None:
    """Every numeric value present in the patch must be a positive integer."""
    if not isinstance(partial, dict):
        raise ValidationError("config patch must be an object")

    unknown = sorted(set(partial) - set(DEFAULT_CONFIG))
    if unknown:
        raise ValidationError(f"Unknown config keys: {', '.join(unknown)}")

    errors: list[str] = []

    for section, fields in (("tokenPacks", ("tokens", "priceDA")), ("tokenPacksPro", ("tokens",))):
        packs = partial.get(section)
        if packs is None:
            continue
        if not isinstance(packs, dict):
            errors.append(f"{section} must be an object")
            continue
        for size, pack in packs.items():
            if size not in PACK_SIZES or not isinstance(pack, dict):
                errors.append(f"{section}.{size} is not a known pack")
                continue
            for f in fields:
                _positive(pack.get(f), f"{section}.{size}.{f}", errors)

    _positive(partial.get("proBonusTokens"), "proBonusTokens", errors)
    _positive(partial.get("referralBonusTokens"), "referralBonusTokens", errors)
    _positive(partial.get("orderUnlockCost"), "orderUnlockCost", errors)

    ad_free = partial.get("adFreePacks")
    if ad_free is not None:
        if not isinstance(ad_free, dict):
            errors.append("adFreePacks must be an object")
        else:
            for pack_id, pack in ad_free.items():
                if not isinstance(pack, dict):
                    errors.append(f"adFreePacks.{pack_id} must be an object")
                    continue
                _positive(pack.get("days"), f"adFreePacks.{pack_id}.days", errors)
                _positive(pack.get("cost"), f"adFreePacks.{pack_id}.cost", errors)

    if errors:
        raise ValidationError(", ".join(errors), details={"errors": errors})


def update_app_config(partial: dict, *, updated_by: str | None = None) -> dict:
    """Merge a partial config over the current one, persist it and refresh the cache."""
    validate_config_patch(partial)

    row = db.session.query(AppSetting).filter_by(key=APP_CONFIG_KEY).first()
    current = deep_merge(DEFAULT_CONFIG, row.value if row is not None else {})
    merged = deep_merge(current, partial)

    if row is None:
        row = AppSetting(key=APP_CONFIG_KEY, value=merged, updated_by=updated_by)
        db.session.add(row)
    else:
        row.value = merged
        row.updated_by = updated_by
    db.session.commit()

    _store_cache(merged)
    current_app.logger.info("App config updated by %s: %s", updated_by or "system", sorted(partial))
    return copy.deepcopy(merged)


def build_token_packs(cfg: dict | None = None) -> tuple[dict, dict]:
    """(packs, pro_packs) keyed by pack id. PRO packs share prices and differ in tokens."""
    cfg = cfg if cfg is not None else get_app_config()
    packs = {}
    pro_packs = {}
    for size in PACK_SIZES:
        base = cfg["tokenPacks"][size]
        packs[size] = {
            "id": size,
            "name": PACK_NAMES[size],
            "tokens": base["tokens"],
            "priceDA": base["priceDA"],
        }
        pro_packs[size] = dict(packs[size], tokens=cfg["tokenPacksPro"][size]["tokens"])
    return packs, pro_packs
