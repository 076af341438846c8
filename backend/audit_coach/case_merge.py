"""Merge stored case documents with trainee progress and catalog metadata."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .progression_keys import clean_text, normalize_tier, tier_for_case_level
from .progression_models import CaseRecord, ModuleCatalogEntry

logger = logging.getLogger(__name__)

# Catalog fields that take precedence over the case's own copy.
_RECIPE_OVERLAY_FIELDS = ("pathId", "pathTitle", "pathDescription", "tier", "primarySkill")


def normalize_recipe_document(recipe_id: str, data: Optional[Mapping[str, Any]]) -> ModuleCatalogEntry:
    """Build a catalog entry from a stored recipe document.

    ``moduleId`` falls back to the document id, ``title`` and ``moduleTitle``
    fall back to each other and the tier defaults to ``foundations``.
    """
    raw: Dict[str, Any] = dict(data or {})
    title = clean_text(raw.get("title")) or clean_text(raw.get("moduleTitle"))
    module_title = clean_text(raw.get("moduleTitle")) or clean_text(raw.get("title"))
    raw.update(
        {
            "id": recipe_id,
            "moduleId": clean_text(raw.get("moduleId")) or recipe_id,
            "title": title,
            "moduleTitle": module_title,
            "tier": normalize_tier(raw.get("tier")),
        }
    )
    return ModuleCatalogEntry.model_validate(raw)


def _overlay_recipe(document: Dict[str, Any], recipe: ModuleCatalogEntry) -> None:
    recipe_payload = recipe.model_dump(by_alias=True)
    for field_name in _RECIPE_OVERLAY_FIELDS:
        value = clean_text(recipe_payload.get(field_name))
        if value:
            document[field_name] = value
    module_title = clean_text(recipe.module_title) or clean_text(recipe.title)
    if module_title:
        document["moduleTitle"] = module_title
    if recipe.secondary_skills:
        document["secondarySkills"] = list(recipe.secondary_skills)


def merge_case_documents(
    cases: Iterable[Mapping[str, Any]],
    progress_by_case_id: Mapping[str, Mapping[str, Any]],
    recipes: Sequence[ModuleCatalogEntry],
) -> List[CaseRecord]:
    """Attach progress to each case and apply its recipe's curriculum metadata."""
    recipe_by_module_id: Dict[str, ModuleCatalogEntry] = {}
    for recipe in recipes:
        module_id = clean_text(recipe.module_id) or clean_text(recipe.id)
        if module_id:
            recipe_by_module_id[module_id] = recipe

    merged: List[CaseRecord] = []
    for case in cases:
        document = dict(case)
        case_id = clean_text(document.get("id"))
        recipe = recipe_by_module_id.get(clean_text(document.get("moduleId")))
        if recipe is not None:
            _overlay_recipe(document, recipe)
        if not clean_text(document.get("tier")):
            fallback_tier = tier_for_case_level(document.get("caseLevel"))
            if fallback_tier:
                document["tier"] = fallback_tier
        progress = progress_by_case_id.get(case_id) if case_id else None
        document["progress"] = dict(progress) if progress else {"state": "not_started", "percentComplete": 0}
        merged.append(CaseRecord.model_validate(document))

    logger.debug("Merged %d case documents against %d recipes", len(merged), len(recipe_by_module_id))
    return merged


__all__ = ["merge_case_documents", "normalize_recipe_document"]
