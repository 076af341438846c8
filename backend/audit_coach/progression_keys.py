"""Key resolution for curriculum progression.

Maps heterogeneous case and recipe fields onto the canonical path, tier,
module and skill keys. Every helper is pure string handling and degrades to
an empty string (or a documented default) instead of raising.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

DEFAULT_PATH_ID = "general"
DEFAULT_TIER = "foundations"
TIER_ORDER: Tuple[str, ...] = ("foundations", "core", "advanced")
SKILL_DEPTHS: Tuple[str, ...] = ("basic", "intermediate", "advanced")
MODULE_LABELS: Dict[str, str] = {
    "payables": "Accounts Payable",
    "cash": "Cash",
    "fixed_assets": "Fixed Assets",
}
MODULE_KEY_ALIASES: Dict[str, str] = {
    "accounts payable": "payables",
    "accounts_payable": "payables",
    "accounts-payable": "payables",
    "ap": "payables",
    "fixed assets": "fixed_assets",
    "fixed-assets": "fixed_assets",
    "fixed_assets": "fixed_assets",
    "cash": "cash",
}
CASE_LEVEL_TIERS: Dict[str, str] = {
    "basic": "foundations",
    "intermediate": "core",
    "advanced": "advanced",
}

_SEPARATOR_RUN = re.compile(r"[\s-]+")
_TOKEN_SPLIT = re.compile(r"[-_]")


def clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_module_key(value: Any) -> str:
    trimmed = clean_text(value).lower()
    if not trimmed:
        return ""
    if trimmed in MODULE_LABELS:
        return trimmed
    underscored = _SEPARATOR_RUN.sub("_", trimmed)
    if underscored in MODULE_LABELS:
        return underscored
    if trimmed in MODULE_KEY_ALIASES:
        return MODULE_KEY_ALIASES[trimmed]
    if underscored in MODULE_KEY_ALIASES:
        return MODULE_KEY_ALIASES[underscored]
    return trimmed


def humanize_token(value: Any = "") -> str:
    """``fixed_assets`` -> ``Fixed Assets``."""
    segments = [segment for segment in _TOKEN_SPLIT.split(clean_text(value)) if segment]
    return " ".join(segment[:1].upper() + segment[1:] for segment in segments)


def normalize_tier(value: Any) -> str:
    normalized = clean_text(value).lower()
    return normalized if normalized in TIER_ORDER else DEFAULT_TIER


def uses_legacy_tier_path(record: Any) -> bool:
    """True when ``pathId`` holds a tier literal and therefore decides the tier."""
    return clean_text(getattr(record, "path_id", None)).lower() in TIER_ORDER


def program_tier(record: Any) -> str:
    raw_path = clean_text(getattr(record, "path_id", None)).lower()
    if raw_path in TIER_ORDER:
        return raw_path
    raw_tier = clean_text(getattr(record, "tier", None)).lower()
    if raw_tier in TIER_ORDER:
        return raw_tier
    return DEFAULT_TIER


def path_key(record: Any) -> str:
    return (
        clean_text(getattr(record, "path_id", None))
        or clean_text(getattr(record, "audit_area", None))
        or DEFAULT_PATH_ID
    )


def tier_for_case_level(value: Any) -> str:
    """``basic``/``intermediate``/``advanced`` -> tier, or empty when unknown."""
    return CASE_LEVEL_TIERS.get(clean_text(value).lower(), "")


def module_id_for(record: Any) -> str:
    return clean_text(getattr(record, "module_id", None)) or clean_text(getattr(record, "id", None))


def module_key_for_recipe(recipe: Any) -> str:
    return normalize_module_key(getattr(recipe, "audit_area", None)) or normalize_module_key(module_id_for(recipe))


def direct_module_key_for_case(case: Any) -> str:
    """Module key from the case's own fields; catalog lookups happen in the index."""
    from_area = normalize_module_key(getattr(case, "audit_area", None))
    if from_area:
        return from_area
    from_title = normalize_module_key(getattr(case, "module_title", None))
    if from_title in MODULE_LABELS:
        return from_title
    return ""


def skill_depth(item: Any) -> str:
    raw_level = clean_text(getattr(item, "case_level", None)).lower()
    if raw_level in SKILL_DEPTHS:
        return raw_level
    tier = normalize_tier(getattr(item, "tier", None))
    if tier == "core":
        return "intermediate"
    if tier == "advanced":
        return "advanced"
    return "basic"


def skill_base(item: Any) -> str:
    for attribute in ("primary_skill", "module_title", "title", "case_name"):
        value = clean_text(getattr(item, attribute, None))
        if value:
            return value
    return ""


def skill_key(item: Any) -> str:
    base = skill_base(item)
    if base:
        return f"{base}::{skill_depth(item)}"
    for attribute in ("module_id", "recipe_id", "id"):
        value = clean_text(getattr(item, attribute, None))
        if value:
            return value
    return ""


def skill_key_matches(key: str, base: str) -> bool:
    return key == base or key.startswith(f"{base}::")


def module_title(case: Any) -> str:
    for attribute in ("module_title", "title", "case_name"):
        value = clean_text(getattr(case, attribute, None))
        if value:
            return value
    return "Untitled module"


def order_index(case: Any) -> float:
    value = getattr(case, "order_index", None)
    return value if isinstance(value, (int, float)) else float("inf")


def next_case_sort_key(case: Any) -> Tuple[float, str, str]:
    """Lowest ``orderIndex`` first, then title (case-insensitive)."""
    title = module_title(case)
    return (order_index(case), title.casefold(), title)


def progress_updated_at(case: Any) -> float:
    """Epoch seconds of the most relevant progress timestamp, or 0."""
    progress = getattr(case, "progress", None)
    active_attempt = getattr(progress, "active_attempt", None)
    candidates = (
        getattr(active_attempt, "updated_at", None),
        getattr(progress, "last_attempt_at", None),
        getattr(progress, "updated_at", None),
        getattr(case, "updated_at", None),
        getattr(case, "created_at", None),
    )
    for candidate in candidates:
        if isinstance(candidate, datetime):
            return candidate.timestamp()
    return 0.0


def get_path_label(path_id: Optional[str], path_title: Optional[str] = None) -> str:
    title = clean_text(path_title)
    if title:
        return title
    return humanize_token(clean_text(path_id) or DEFAULT_PATH_ID) or "General"


def get_module_label(case: Any) -> str:
    raw_area = clean_text(getattr(case, "audit_area", None)).lower()
    if not raw_area:
        return "General"
    module_key = normalize_module_key(raw_area)
    return MODULE_LABELS.get(module_key) or humanize_token(raw_area)


def module_label_for_recipe(recipe: Any) -> str:
    raw_area = clean_text(getattr(recipe, "audit_area", None)).lower()
    if raw_area and normalize_module_key(raw_area) in MODULE_LABELS:
        return MODULE_LABELS[normalize_module_key(raw_area)]
    for attribute in ("module_title", "title"):
        value = clean_text(getattr(recipe, attribute, None))
        if value:
            return value
    return humanize_token(raw_area) if raw_area else "General"


def get_skill_label(case: Any) -> str:
    for attribute in ("primary_skill", "module_title", "title", "case_name"):
        value = clean_text(getattr(case, attribute, None))
        if value:
            return value
    return "Skill"


__all__ = [
    "CASE_LEVEL_TIERS",
    "DEFAULT_PATH_ID",
    "DEFAULT_TIER",
    "MODULE_KEY_ALIASES",
    "MODULE_LABELS",
    "SKILL_DEPTHS",
    "TIER_ORDER",
    "clean_text",
    "direct_module_key_for_case",
    "get_module_label",
    "get_path_label",
    "get_skill_label",
    "humanize_token",
    "module_id_for",
    "module_key_for_recipe",
    "module_label_for_recipe",
    "module_title",
    "next_case_sort_key",
    "normalize_module_key",
    "normalize_tier",
    "order_index",
    "path_key",
    "program_tier",
    "progress_updated_at",
    "skill_base",
    "skill_depth",
    "skill_key",
    "skill_key_matches",
    "tier_for_case_level",
    "uses_legacy_tier_path",
]
