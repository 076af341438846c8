"""Per-evaluation lookup tables for curriculum progression.

Each structure here is built once per evaluation from the raw inputs and then
passed between the selection and aggregation steps as plain data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .progression_keys import (
    TIER_ORDER,
    clean_text,
    direct_module_key_for_case,
    module_id_for,
    module_key_for_recipe,
    next_case_sort_key,
    path_key,
    program_tier,
    progress_updated_at,
    skill_base,
    skill_depth,
    skill_key,
)
from .progression_models import CaseRecord, ModuleCatalogEntry, ProgressRecord, TierStat

ACTIONABLE_STATUSES = frozenset({"assigned", "in_progress", "draft"})


def is_progress_completed(progress: Optional[ProgressRecord]) -> bool:
    if progress is None:
        return False
    if progress.has_successful_attempt is not None:
        return progress.has_successful_attempt
    state = clean_text(progress.state).lower()
    return state == "submitted" or progress.percent_complete >= 100


def has_meaningful_draft(progress: Optional[ProgressRecord]) -> bool:
    if progress is None or is_progress_completed(progress):
        return False
    attempt = progress.active_attempt
    if attempt is None:
        return False
    if attempt.draft:
        return True
    if clean_text(attempt.step):
        return True
    return attempt.started_at is not None or attempt.updated_at is not None


@dataclass(frozen=True)
class RecipeEntry:
    recipe: ModuleCatalogEntry
    module_id: str
    module_key: str
    path_id: str
    tier: str
    skill_key: str

    @classmethod
    def build(cls, recipe: ModuleCatalogEntry) -> "RecipeEntry":
        return cls(
            recipe=recipe,
            module_id=module_id_for(recipe),
            module_key=module_key_for_recipe(recipe),
            path_id=path_key(recipe),
            tier=program_tier(recipe),
            skill_key=skill_key(recipe),
        )


@dataclass(frozen=True)
class ModuleIndex:
    """Catalog lookups keyed by module id and by normalized module key."""

    entries: Tuple[RecipeEntry, ...]
    by_module_id: Mapping[str, RecipeEntry]
    by_module_key: Mapping[str, Tuple[RecipeEntry, ...]]

    @classmethod
    def build(cls, recipes: Iterable[ModuleCatalogEntry]) -> "ModuleIndex":
        entries = tuple(RecipeEntry.build(recipe) for recipe in recipes)
        by_module_id: Dict[str, RecipeEntry] = {}
        grouped: Dict[str, List[RecipeEntry]] = {}
        for entry in entries:
            if entry.module_id:
                # Later catalog entries win for the same module id.
                by_module_id[entry.module_id] = entry
            if entry.module_key:
                grouped.setdefault(entry.module_key, []).append(entry)
        return cls(
            entries=entries,
            by_module_id=by_module_id,
            by_module_key={key: tuple(items) for key, items in grouped.items()},
        )

    def recipe_for_case(self, case: CaseRecord) -> Optional[RecipeEntry]:
        reference = clean_text(case.module_id) or clean_text(case.recipe_id)
        if not reference:
            return None
        return self.by_module_id.get(reference)

    def recipes_for(self, module_key: str) -> Tuple[RecipeEntry, ...]:
        if not module_key:
            return ()
        return self.by_module_key.get(module_key, ())

    def skill_keys_for(self, module_key: str) -> Set[str]:
        return {entry.skill_key for entry in self.recipes_for(module_key) if entry.skill_key}

    def first_path_id(self) -> str:
        return self.entries[0].path_id if self.entries else ""


@dataclass(frozen=True)
class CaseEntry:
    """A case record with every derived key resolved once."""

    record: CaseRecord
    module_id: str
    module_key: str
    path_id: str
    tier: str
    skill_base: str
    skill_key: str
    status: str
    completed: bool
    has_draft: bool
    updated_at: float

    @property
    def sort_key(self) -> Tuple[float, str, str]:
        return next_case_sort_key(self.record)

    @classmethod
    def build(cls, case: CaseRecord, modules: ModuleIndex) -> "CaseEntry":
        recipe_entry = modules.recipe_for_case(case)
        module_key = direct_module_key_for_case(case)
        if not module_key and recipe_entry is not None:
            module_key = recipe_entry.module_key
        return cls(
            record=case,
            module_id=module_id_for(case),
            module_key=module_key,
            path_id=path_key(case),
            tier=program_tier(case),
            skill_base=skill_base(case),
            skill_key=_case_skill_key(case, recipe_entry),
            status=clean_text(case.status).lower(),
            completed=is_progress_completed(case.progress),
            has_draft=has_meaningful_draft(case.progress),
            updated_at=progress_updated_at(case),
        )


def _case_skill_key(case: CaseRecord, recipe_entry: Optional[RecipeEntry]) -> str:
    recipe = recipe_entry.recipe if recipe_entry is not None else None
    base = clean_text(recipe.primary_skill) if recipe is not None else ""
    if not base:
        base = skill_base(case)
    if base:
        return f"{base}::{skill_depth(recipe if recipe is not None else case)}"
    return skill_key(case)


def sort_for_next(entries: Iterable[CaseEntry]) -> List[CaseEntry]:
    return sorted(entries, key=lambda entry: entry.sort_key)


def first_for_next(entries: Iterable[CaseEntry]) -> Optional[CaseEntry]:
    ordered = sort_for_next(entries)
    return ordered[0] if ordered else None


@dataclass(frozen=True)
class CompletionIndex:
    """Module ids with at least one completed attempt."""

    completed_module_ids: FrozenSet[str]

    @classmethod
    def build(cls, entries: Iterable[CaseEntry]) -> "CompletionIndex":
        return cls(frozenset(entry.module_id for entry in entries if entry.module_id and entry.completed))

    def is_module_completed(self, module_id: str) -> bool:
        return bool(module_id) and module_id in self.completed_module_ids

    def is_retake(self, entry: CaseEntry) -> bool:
        return self.is_module_completed(entry.module_id) and not entry.completed


def partition_attempts(
    entries: Sequence[CaseEntry],
    completion: CompletionIndex,
) -> Tuple[List[CaseEntry], List[CaseEntry]]:
    """Split attempts into first-pass (primary) and post-completion retakes.

    Retakes come back most-recently-updated first.
    """
    primary = [entry for entry in entries if not completion.is_retake(entry)]
    retakes = [entry for entry in entries if completion.is_retake(entry)]
    retakes.sort(key=lambda entry: entry.updated_at, reverse=True)
    return primary, retakes


def is_tier_complete(stat: Optional[TierStat]) -> bool:
    """A tier with no modules is never complete."""
    if stat is None or stat.total == 0:
        return False
    return stat.done >= stat.total


@dataclass(frozen=True)
class TierMembership:
    """Module ids per path and tier, with completion counts and unlock gates."""

    modules_by_path: Mapping[str, Mapping[str, FrozenSet[str]]]
    completion: CompletionIndex

    @classmethod
    def build(
        cls,
        primary: Iterable[CaseEntry],
        recipes: Iterable[RecipeEntry],
        completion: CompletionIndex,
    ) -> "TierMembership":
        buckets: Dict[str, Dict[str, Set[str]]] = {}

        def add(path_id: str, tier: str, module_id: str) -> None:
            if not module_id:
                return
            tiers = buckets.setdefault(path_id, {name: set() for name in TIER_ORDER})
            tiers[tier].add(module_id)

        for recipe in recipes:
            add(recipe.path_id, recipe.tier, recipe.module_id)
        for entry in primary:
            add(entry.path_id, entry.tier, entry.module_id)

        return cls(
            modules_by_path={
                path_id: {tier: frozenset(ids) for tier, ids in tiers.items()}
                for path_id, tiers in buckets.items()
            },
            completion=completion,
        )

    def stats_for(self, path_id: str) -> Dict[str, TierStat]:
        tiers = self.modules_by_path.get(path_id, {})
        stats: Dict[str, TierStat] = {}
        for tier in TIER_ORDER:
            module_ids = tiers.get(tier, frozenset())
            done = sum(1 for module_id in module_ids if self.completion.is_module_completed(module_id))
            stats[tier] = TierStat(done=done, total=len(module_ids))
        return stats

    def is_tier_complete(self, path_id: str, tier: str) -> bool:
        return is_tier_complete(self.stats_for(path_id).get(tier))

    def is_tier_unlocked(self, path_id: str, tier: str) -> bool:
        if tier == "foundations":
            return True
        if tier == "core":
            return self.is_tier_complete(path_id, "foundations")
        if tier == "advanced":
            return self.is_tier_complete(path_id, "core")
        return False

    def unlocked_tiers(self, path_id: str) -> List[str]:
        return [tier for tier in TIER_ORDER if self.is_tier_unlocked(path_id, tier)]

    def current_tier(self, path_id: str) -> str:
        """First unlocked tier with open modules, else the highest unlocked tier."""
        stats = self.stats_for(path_id)
        unlocked = self.unlocked_tiers(path_id)
        for tier in unlocked:
            stat = stats[tier]
            if stat.total > 0 and stat.done < stat.total:
                return tier
        return unlocked[-1]


__all__ = [
    "ACTIONABLE_STATUSES",
    "CaseEntry",
    "CompletionIndex",
    "ModuleIndex",
    "RecipeEntry",
    "TierMembership",
    "first_for_next",
    "has_meaningful_draft",
    "is_progress_completed",
    "is_tier_complete",
    "partition_attempts",
    "sort_for_next",
]
