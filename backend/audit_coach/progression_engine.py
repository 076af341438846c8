"""Curriculum progression engine.

Turns a trainee's case attempts and the module catalog into a
``ProgressionView``: which tiers are unlocked, which single action the
dashboard should offer next, and per-skill / per-module progress summaries.
The evaluation is synchronous and keeps no state between calls.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import Settings, get_settings
from .progression_index import (
    ACTIONABLE_STATUSES,
    CaseEntry,
    CompletionIndex,
    ModuleIndex,
    RecipeEntry,
    TierMembership,
    first_for_next,
    partition_attempts,
)
from .progression_keys import (
    DEFAULT_PATH_ID,
    MODULE_LABELS,
    TIER_ORDER,
    clean_text,
    get_module_label,
    get_path_label,
    get_skill_label,
    module_label_for_recipe,
    normalize_module_key,
    skill_base,
    skill_key_matches,
    uses_legacy_tier_path,
)
from .progression_models import (
    AssignedAction,
    CaseRecord,
    EmptyModuleAction,
    ModuleCatalogEntry,
    ModuleJourneyEntry,
    ModuleOption,
    ProgramPath,
    ProgressionView,
    RecommendedAction,
    ResumeDraftAction,
    SkillProgress,
    StartModuleAction,
    TierState,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_MODULE_OPTION_LIMIT = 6
MAX_FLAGGED_RECORDS = 20

Action = Union[ResumeDraftAction, AssignedAction, RecommendedAction, StartModuleAction, EmptyModuleAction]
CaseInput = Union[CaseRecord, Mapping[str, Any]]
RecipeInput = Union[ModuleCatalogEntry, Mapping[str, Any]]


@dataclass(frozen=True)
class EngineOptions:
    module_option_limit: int = DEFAULT_MODULE_OPTION_LIMIT
    flag_legacy_tier_paths: bool = True

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EngineOptions":
        settings = settings or get_settings()
        return cls(
            module_option_limit=settings.module_option_limit,
            flag_legacy_tier_paths=settings.flag_legacy_tier_paths,
        )


@dataclass
class _ModuleCandidate:
    module_key: str
    label: str
    description: str
    updated_at: float


@dataclass(frozen=True)
class _ActionResolution:
    action: Optional[Action] = None
    case: Optional[CaseEntry] = None
    recipe: Optional[RecipeEntry] = None


class ProgressionEngine:
    """Evaluates one trainee's curriculum state from attempts and catalog."""

    def __init__(self, options: Optional[EngineOptions] = None) -> None:
        self._options = options or EngineOptions()

    def compute(
        self,
        cases: Iterable[CaseInput],
        recipes: Iterable[RecipeInput],
        selected_module_id: Optional[str] = None,
    ) -> ProgressionView:
        started_at = perf_counter()
        modules = ModuleIndex.build(_as_recipe(item) for item in recipes or ())
        entries = [CaseEntry.build(_as_case(item), modules) for item in cases or ()]
        if self._options.flag_legacy_tier_paths:
            self._flag_legacy_tier_paths(entries, modules.entries)

        completion = CompletionIndex.build(entries)
        primary, retakes = partition_attempts(entries, completion)
        membership = TierMembership.build(primary, modules.entries, completion)
        selected_key = normalize_module_key(selected_module_id)

        draft = self._select_draft(primary, selected_key)
        assigned = [entry for entry in primary if not entry.completed and entry.status in ACTIONABLE_STATUSES]
        assigned_next = self._select_assigned(assigned, selected_key, draft)
        eligible = [
            entry
            for entry in primary
            if not entry.completed and membership.is_tier_unlocked(entry.path_id, entry.tier)
        ]

        current_path_id = self._resolve_current_path(
            selected_key, primary, modules, draft, assigned_next, eligible
        )
        if draft is not None:
            current_tier = draft.tier
        elif assigned_next is not None:
            current_tier = assigned_next.tier
        else:
            current_tier = membership.current_tier(current_path_id)

        if assigned_next is not None:
            option_source = assigned
        elif eligible:
            option_source = eligible
        else:
            option_source = [entry for entry in primary if not entry.completed]
        module_options = self._module_options(option_source, modules, current_path_id)
        option_values = [option.value for option in module_options]
        if selected_key and selected_key in option_values:
            active_module_id = selected_key
        else:
            active_module_id = option_values[0] if option_values else ""

        recommended = self._select_recommended(
            eligible, current_path_id, current_tier, selected_key, active_module_id
        )
        available_modules = self._available_modules(
            modules, completion, current_path_id, selected_key or active_module_id
        )
        resolution = self._resolve_action(
            draft,
            assigned_next,
            recommended,
            selected_key,
            active_module_id,
            primary,
            modules,
            completion,
        )

        view = ProgressionView(
            primary_cases=[entry.record for entry in primary],
            retake_cases=[entry.record for entry in retakes],
            module_completion_by_id=sorted(completion.completed_module_ids),
            draft_case=draft.record if draft else None,
            assigned_cases=[entry.record for entry in assigned],
            eligible_cases=[entry.record for entry in eligible],
            current_path_id=current_path_id,
            current_tier=current_tier,
            module_options=module_options,
            active_module_id=active_module_id,
            recommended_case=recommended.record if recommended else None,
            current_action=resolution.action,
            hero_case=resolution.case.record if resolution.case else None,
            hero_recipe=resolution.recipe.recipe if resolution.recipe else None,
            skill_progress=self._skill_progress(resolution, primary, modules),
            program_path=self._program_path(membership, current_path_id, resolution.case, primary, modules),
            module_journey=self._module_journey(primary, modules),
            available_modules=[entry.recipe for entry in available_modules],
        )

        duration_ms = (perf_counter() - started_at) * 1000
        logger.debug(
            "Progression evaluated: %d cases (%d retakes), %d recipes, action=%s in %.2fms",
            len(entries),
            len(retakes),
            len(modules.entries),
            resolution.action.type if resolution.action else None,
            duration_ms,
        )
        emit_event(
            "progression_view_computed",
            case_count=len(entries),
            recipe_count=len(modules.entries),
            primary_count=len(primary),
            retake_count=len(retakes),
            eligible_count=len(eligible),
            action=resolution.action.type if resolution.action else None,
            path_id=current_path_id,
            tier=current_tier,
            selected_module_id=selected_key or None,
            duration_ms=round(duration_ms, 2),
        )
        return view

    # -- candidate selection -------------------------------------------------

    @staticmethod
    def _select_draft(primary: Sequence[CaseEntry], selected_key: str) -> Optional[CaseEntry]:
        latest: Optional[CaseEntry] = None
        for entry in primary:
            if not entry.has_draft:
                continue
            if selected_key and entry.module_key != selected_key:
                continue
            if latest is None or entry.updated_at > latest.updated_at:
                latest = entry
        return latest

    @staticmethod
    def _select_assigned(
        assigned: Sequence[CaseEntry],
        selected_key: str,
        draft: Optional[CaseEntry],
    ) -> Optional[CaseEntry]:
        scoped = [entry for entry in assigned if entry.module_key == selected_key] if selected_key else assigned
        return first_for_next(entry for entry in scoped if entry is not draft)

    @staticmethod
    def _select_recommended(
        eligible: Sequence[CaseEntry],
        current_path_id: str,
        current_tier: str,
        selected_key: str,
        active_module_id: str,
    ) -> Optional[CaseEntry]:
        in_path = [entry for entry in eligible if entry.path_id == current_path_id]
        module_key = selected_key or active_module_id
        in_module = [entry for entry in in_path if entry.module_key == module_key] if module_key else in_path
        if selected_key or in_module:
            scoped = in_module
        else:
            scoped = [entry for entry in in_path if entry.tier == current_tier]
        return first_for_next(scoped)

    def _resolve_action(
        self,
        draft: Optional[CaseEntry],
        assigned_next: Optional[CaseEntry],
        recommended: Optional[CaseEntry],
        selected_key: str,
        active_module_id: str,
        primary: Sequence[CaseEntry],
        modules: ModuleIndex,
        completion: CompletionIndex,
    ) -> _ActionResolution:
        if draft is not None:
            return _ActionResolution(ResumeDraftAction(case_data=draft.record), case=draft)
        if assigned_next is not None:
            return _ActionResolution(AssignedAction(case_data=assigned_next.record), case=assigned_next)
        if recommended is not None:
            return _ActionResolution(RecommendedAction(case_data=recommended.record), case=recommended)

        target_key = selected_key or active_module_id
        has_content = bool(target_key) and (
            any(entry.module_key == target_key for entry in primary) or bool(modules.recipes_for(target_key))
        )
        if has_content:
            recipe = self._start_recipe(target_key, bool(selected_key), modules, completion)
            if recipe is not None:
                return _ActionResolution(StartModuleAction(recipe=recipe.recipe), recipe=recipe)
        if selected_key and not has_content:
            return _ActionResolution(EmptyModuleAction(module_id=selected_key))
        return _ActionResolution()

    @staticmethod
    def _start_recipe(
        module_key: str,
        explicit: bool,
        modules: ModuleIndex,
        completion: CompletionIndex,
    ) -> Optional[RecipeEntry]:
        in_module = modules.recipes_for(module_key)
        for entry in in_module:
            if not completion.is_module_completed(entry.module_id):
                return entry
        # Only an explicit selection reopens a module whose recipes are all done.
        if explicit and in_module:
            return in_module[0]
        return None

    # -- path and module context ----------------------------------------------

    @staticmethod
    def _resolve_current_path(
        selected_key: str,
        primary: Sequence[CaseEntry],
        modules: ModuleIndex,
        draft: Optional[CaseEntry],
        assigned_next: Optional[CaseEntry],
        eligible: Sequence[CaseEntry],
    ) -> str:
        selected_case = next((entry for entry in primary if entry.module_key == selected_key), None) if selected_key else None
        selected_recipes = modules.recipes_for(selected_key)
        candidates = (
            selected_case.path_id if selected_case else "",
            selected_recipes[0].path_id if selected_recipes else "",
            draft.path_id if draft else "",
            assigned_next.path_id if assigned_next else "",
            eligible[0].path_id if eligible else "",
            primary[0].path_id if primary else "",
            modules.first_path_id(),
        )
        return next((candidate for candidate in candidates if candidate), DEFAULT_PATH_ID)

    def _module_options(
        self,
        source: Sequence[CaseEntry],
        modules: ModuleIndex,
        current_path_id: str,
    ) -> List[ModuleOption]:
        candidates: Dict[str, _ModuleCandidate] = {}
        for entry in source:
            if entry.path_id != current_path_id or not entry.module_key:
                continue
            existing = candidates.get(entry.module_key)
            if existing is None or entry.updated_at > existing.updated_at:
                candidates[entry.module_key] = _ModuleCandidate(
                    module_key=entry.module_key,
                    label=MODULE_LABELS.get(entry.module_key) or get_module_label(entry.record),
                    description=clean_text(entry.record.path_description),
                    updated_at=entry.updated_at,
                )
        for recipe in modules.entries:
            if recipe.path_id != current_path_id or not recipe.module_key or recipe.module_key in candidates:
                continue
            candidates[recipe.module_key] = _ModuleCandidate(
                module_key=recipe.module_key,
                label=module_label_for_recipe(recipe.recipe),
                description=clean_text(recipe.recipe.path_description),
                updated_at=0.0,
            )

        ordered = sorted(
            candidates.values(),
            key=lambda candidate: (-candidate.updated_at, candidate.label.casefold(), candidate.label),
        )
        return [
            ModuleOption(value=candidate.module_key, label=candidate.label, description=candidate.description)
            for candidate in ordered[: self._options.module_option_limit]
        ]

    @staticmethod
    def _available_modules(
        modules: ModuleIndex,
        completion: CompletionIndex,
        current_path_id: str,
        preferred_key: str,
    ) -> List[RecipeEntry]:
        open_in_path = [
            entry
            for entry in modules.entries
            if entry.module_id
            and entry.path_id == current_path_id
            and not completion.is_module_completed(entry.module_id)
        ]
        preferred = [entry for entry in open_in_path if entry.module_key == preferred_key] if preferred_key else []
        return preferred or open_in_path

    # -- aggregation ---------------------------------------------------------

    @staticmethod
    def _skill_progress(
        resolution: _ActionResolution,
        primary: Sequence[CaseEntry],
        modules: ModuleIndex,
    ) -> Optional[SkillProgress]:
        if resolution.case is not None:
            base, module_key = resolution.case.skill_base, resolution.case.module_key
        elif resolution.recipe is not None:
            base, module_key = skill_base(resolution.recipe.recipe), resolution.recipe.module_key
        else:
            return None
        if not base or not module_key:
            return None

        module_cases = [entry for entry in primary if entry.module_key == module_key and entry.skill_key]
        case_keys = {entry.skill_key for entry in module_cases}
        completed_keys = {entry.skill_key for entry in module_cases if entry.completed}
        universe = modules.skill_keys_for(module_key) or case_keys
        matching = {key for key in universe if skill_key_matches(key, base)}
        if not matching:
            return None
        return SkillProgress(label=base, done=len(matching & completed_keys), total=len(matching))

    @staticmethod
    def _program_path(
        membership: TierMembership,
        path_id: str,
        hero_case: Optional[CaseEntry],
        primary: Sequence[CaseEntry],
        modules: ModuleIndex,
    ) -> ProgramPath:
        stats = membership.stats_for(path_id)
        # A case in a locked tier can still be the hero (assigned or drafted);
        # it never makes that tier active.
        if hero_case is not None and membership.is_tier_unlocked(path_id, hero_case.tier):
            active_tier = hero_case.tier
        else:
            active_tier = membership.current_tier(path_id)
        states: Dict[str, TierState] = {}
        for tier in TIER_ORDER:
            completed = membership.is_tier_complete(path_id, tier)
            if completed:
                status = "completed"
            elif tier == active_tier:
                status = "active"
            else:
                status = "upcoming"
            states[tier] = TierState(
                status=status,
                completed=completed,
                eligible=membership.is_tier_unlocked(path_id, tier),
                done=stats[tier].done,
                total=stats[tier].total,
            )
        titles = [hero_case.record.path_title] if hero_case is not None else []
        titles.extend(entry.record.path_title for entry in primary if entry.path_id == path_id)
        titles.extend(entry.recipe.path_title for entry in modules.entries if entry.path_id == path_id)
        path_title = next((title for title in titles if clean_text(title)), None)
        return ProgramPath(
            path_id=path_id,
            path_label=get_path_label(path_id, path_title),
            tier_stats=stats,
            tier_states=states,
            active_tier=active_tier,
        )

    @staticmethod
    def _module_journey(primary: Sequence[CaseEntry], modules: ModuleIndex) -> List[ModuleJourneyEntry]:
        journey: List[ModuleJourneyEntry] = []
        for module_key, label in MODULE_LABELS.items():
            module_cases = [entry for entry in primary if entry.module_key == module_key]
            recipes = modules.recipes_for(module_key)
            case_skills = {entry.skill_key for entry in module_cases if entry.skill_key}
            completed_skills = {entry.skill_key for entry in module_cases if entry.skill_key and entry.completed}
            universe = modules.skill_keys_for(module_key) or case_skills
            total = len(universe)
            done = len(completed_skills & universe)

            next_case = first_for_next(entry for entry in module_cases if not entry.completed)
            if next_case is not None:
                next_label = get_skill_label(next_case.record)
            elif recipes:
                first = recipes[0].recipe
                next_label = clean_text(first.primary_skill) or clean_text(first.title) or clean_text(first.module_title)
            else:
                next_label = ""

            journey.append(
                ModuleJourneyEntry(
                    module_id=module_key,
                    label=label,
                    total_skills=total,
                    completed_skills=done,
                    progress_percent=_round_percent(done, total),
                    next_skill_label=next_label,
                )
            )
        return journey

    # -- data quality ----------------------------------------------------------

    @staticmethod
    def _flag_legacy_tier_paths(entries: Sequence[CaseEntry], recipes: Sequence[RecipeEntry]) -> None:
        flagged: List[Tuple[str, str, str]] = [
            ("case", entry.record.id, clean_text(entry.record.path_id))
            for entry in entries
            if uses_legacy_tier_path(entry.record)
        ]
        flagged.extend(
            ("recipe", entry.recipe.id, clean_text(entry.recipe.path_id))
            for entry in recipes
            if uses_legacy_tier_path(entry.recipe)
        )
        if not flagged:
            return
        logger.info(
            "Tier resolved from pathId for %d record(s); these pathIds name a tier, not a path",
            len(flagged),
        )
        emit_event(
            "progression_legacy_tier_path",
            record_count=len(flagged),
            records=[
                {"kind": kind, "id": record_id, "path_id": path_id}
                for kind, record_id, path_id in flagged[:MAX_FLAGGED_RECORDS]
            ],
        )


def _round_percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(math.floor(done * 100 / total + 0.5))


def _as_case(item: CaseInput) -> CaseRecord:
    return item if isinstance(item, CaseRecord) else CaseRecord.model_validate(item)


def _as_recipe(item: RecipeInput) -> ModuleCatalogEntry:
    return item if isinstance(item, ModuleCatalogEntry) else ModuleCatalogEntry.model_validate(item)


def compute_progression_view(
    cases: Iterable[CaseInput],
    recipes: Iterable[RecipeInput],
    selected_module_id: Optional[str] = None,
    *,
    options: Optional[EngineOptions] = None,
) -> ProgressionView:
    """Evaluate a trainee's progression from attempts and the module catalog."""
    engine = ProgressionEngine(options or EngineOptions.from_settings())
    return engine.compute(cases, recipes, selected_module_id)


__all__ = [
    "DEFAULT_MODULE_OPTION_LIMIT",
    "EngineOptions",
    "ProgressionEngine",
    "compute_progression_view",
]
