"""Tests for the curriculum progression engine."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from audit_coach.progression_engine import EngineOptions, ProgressionEngine, compute_progression_view
from audit_coach.progression_models import (
    AssignedAction,
    EmptyModuleAction,
    ProgressionView,
    RecommendedAction,
    ResumeDraftAction,
    StartModuleAction,
)
from audit_coach.telemetry import capture_events

DONE = {"hasSuccessfulAttempt": True}


def _compute(
    cases: List[Dict[str, Any]],
    recipes: Optional[List[Dict[str, Any]]] = None,
    selected: Optional[str] = None,
    **options: Any,
) -> ProgressionView:
    engine = ProgressionEngine(EngineOptions(**options))
    return engine.compute(cases, recipes or [], selected)


def _journey_entry(view: ProgressionView, module_id: str):
    return next(entry for entry in view.module_journey if entry.module_id == module_id)


def test_fresh_trainee_is_offered_the_first_module() -> None:
    recipe = {"id": "m1", "auditArea": "payables", "tier": "foundations"}
    view = _compute([], [recipe])

    assert isinstance(view.current_action, StartModuleAction)
    assert view.current_action.recipe.id == "m1"
    assert view.hero_recipe is not None and view.hero_recipe.id == "m1"
    assert view.program_path.tier_states["foundations"].status == "active"
    assert view.current_tier == "foundations"
    assert [option.value for option in view.module_options] == ["payables"]
    assert view.module_options[0].label == "Accounts Payable"

    payload = view.model_dump(by_alias=True)
    assert payload["currentAction"]["type"] == "startModule"
    assert payload["programPath"]["tierStates"]["foundations"]["status"] == "active"


def test_completed_foundations_unlocks_core() -> None:
    cases = [
        {"id": "f1", "pathId": "general", "tier": "foundations", "title": "Bank rec", "progress": DONE},
        {"id": "f2", "pathId": "general", "tier": "foundations", "title": "Vouching", "progress": DONE},
        {"id": "c1", "pathId": "general", "tier": "core", "title": "Search for liabilities"},
    ]
    view = _compute(cases)

    assert view.program_path.tier_states["core"].eligible is True
    assert view.program_path.tier_states["foundations"].status == "completed"
    assert view.recommended_case is not None and view.recommended_case.id == "c1"
    assert isinstance(view.current_action, RecommendedAction)
    assert view.current_tier == "core"
    assert [case.id for case in view.eligible_cases] == ["c1"]


def test_draft_beats_assigned() -> None:
    cases = [
        {"id": "a1", "auditArea": "payables", "status": "assigned", "orderIndex": 0},
        {
            "id": "d1",
            "auditArea": "payables",
            "status": "in_progress",
            "orderIndex": 5,
            "progress": {"activeAttempt": {"step": "testing"}},
        },
    ]
    view = _compute(cases)

    assert isinstance(view.current_action, ResumeDraftAction)
    assert view.current_action.case_data.id == "d1"
    assert view.draft_case is not None and view.draft_case.id == "d1"
    assert view.hero_case is not None and view.hero_case.id == "d1"


def test_module_key_aliases_merge_into_one_journey_entry() -> None:
    cases = [
        {"id": "c1", "auditArea": "Accounts Payable", "primarySkill": "Cutoff", "progress": DONE},
        {"id": "c2", "auditArea": "ap", "primarySkill": "Accruals"},
    ]
    view = _compute(cases)

    payables = _journey_entry(view, "payables")
    assert payables.label == "Accounts Payable"
    assert payables.total_skills == 2
    assert payables.completed_skills == 1
    assert payables.progress_percent == 50
    assert payables.next_skill_label == "Accruals"
    assert [entry.module_id for entry in view.module_journey] == ["payables", "cash", "fixed_assets"]
    assert _journey_entry(view, "cash").total_skills == 0


def test_completing_work_never_regresses_progress() -> None:
    cases = [
        {"id": "f1", "tier": "foundations"},
        {"id": "f2", "tier": "foundations"},
        {"id": "c1", "tier": "core"},
    ]
    before = _compute(cases)
    cases[0]["progress"] = DONE
    middle = _compute(cases)
    cases[1]["progress"] = DONE
    after = _compute(cases)

    assert set(before.module_completion_by_id) <= set(middle.module_completion_by_id)
    assert set(middle.module_completion_by_id) <= set(after.module_completion_by_id)
    for tier in ("foundations", "core", "advanced"):
        assert before.program_path.tier_stats[tier].done <= middle.program_path.tier_stats[tier].done
        assert middle.program_path.tier_stats[tier].done <= after.program_path.tier_stats[tier].done
    assert not middle.program_path.tier_states["core"].eligible
    assert after.program_path.tier_states["core"].eligible


def test_empty_foundations_tier_keeps_core_locked() -> None:
    view = _compute([{"id": "c1", "tier": "core"}, {"id": "c2", "tier": "core"}])

    assert view.program_path.tier_states["core"].eligible is False
    assert view.eligible_cases == []
    assert view.current_tier == "foundations"
    assert view.recommended_case is None


def test_complete_core_unlocks_advanced_without_foundations_content() -> None:
    view = _compute(
        [
            {"id": "c1", "tier": "core", "progress": DONE},
            {"id": "a1", "tier": "advanced", "title": "Going concern"},
        ]
    )

    states = view.program_path.tier_states
    assert states["core"].completed is True
    assert states["advanced"].eligible is True
    assert states["advanced"].status == "active"
    assert [case.id for case in view.eligible_cases] == ["a1"]
    assert view.recommended_case is not None and view.recommended_case.id == "a1"


def test_assigned_case_in_locked_tier_does_not_activate_it() -> None:
    view = _compute(
        [
            {"id": "f1", "tier": "foundations", "title": "Bank rec"},
            {"id": "c1", "tier": "core", "status": "assigned", "title": "Search for liabilities"},
        ]
    )

    assert isinstance(view.current_action, AssignedAction)
    assert view.current_action.case_data.id == "c1"
    states = view.program_path.tier_states
    assert (states["foundations"].done, states["foundations"].total) == (0, 1)
    assert states["core"].eligible is False
    assert states["core"].status == "upcoming"
    assert states["foundations"].status == "active"
    assert view.program_path.active_tier == "foundations"


def test_program_path_label_prefers_authored_title() -> None:
    titled = _compute(
        [],
        [{"id": "m1", "pathId": "audit_basics", "pathTitle": "Audit Foundations", "auditArea": "cash"}],
    )
    assert titled.program_path.path_id == "audit_basics"
    assert titled.program_path.path_label == "Audit Foundations"

    untitled = _compute([{"id": "c1", "pathId": "audit_basics"}])
    assert untitled.program_path.path_label == "Audit Basics"
    assert _compute([]).program_path.path_label == "General"


def test_evaluation_is_repeatable() -> None:
    cases = [
        {"id": "a1", "auditArea": "cash", "status": "assigned", "updatedAt": "2024-01-02T00:00:00Z"},
        {"id": "b1", "auditArea": "payables", "progress": DONE},
        {"id": "b2", "moduleId": "b1", "auditArea": "payables", "progress": {"state": "in_progress"}},
    ]
    recipes = [{"id": "r1", "auditArea": "fixed assets", "primarySkill": "Additions"}]

    first = _compute(cases, recipes)
    second = _compute(cases, recipes)
    assert first.model_dump() == second.model_dump()
    assert [case.id for case in first.retake_cases] == ["b2"]


def test_unknown_selected_module_yields_empty_module_action() -> None:
    cases = [{"id": "c1", "auditArea": "payables", "status": "assigned"}]
    view = _compute(cases, selected="Inventory")

    assert isinstance(view.current_action, EmptyModuleAction)
    assert view.current_action.module_id == "inventory"
    assert view.hero_case is None
    assert view.skill_progress is None


def test_start_module_only_reopens_completed_module_when_selected() -> None:
    cases = [{"id": "c1", "moduleId": "r1", "auditArea": "payables", "progress": DONE}]
    recipes = [{"id": "r1", "auditArea": "payables", "primarySkill": "Cutoff"}]

    inferred = _compute(cases, recipes)
    assert inferred.active_module_id == "payables"
    assert inferred.current_action is None

    selected = _compute(cases, recipes, selected="AP")
    assert isinstance(selected.current_action, StartModuleAction)
    assert selected.current_action.recipe.id == "r1"


def test_start_module_prefers_an_open_recipe() -> None:
    cases = [{"id": "c1", "moduleId": "r1", "auditArea": "payables", "progress": DONE}]
    recipes = [
        {"id": "r1", "auditArea": "payables", "primarySkill": "Cutoff"},
        {"id": "r2", "auditArea": "payables", "primarySkill": "Accruals"},
    ]
    view = _compute(cases, recipes, selected="payables")

    assert isinstance(view.current_action, StartModuleAction)
    assert view.current_action.recipe.id == "r2"
    assert [recipe.id for recipe in view.available_modules] == ["r2"]


def _spread_cases() -> List[Dict[str, Any]]:
    areas = ["payables", "cash", "fixed_assets", "inventory", "revenue", "payroll", "equity", "debt"]
    return [
        {
            "id": f"case-{area}",
            "pathId": "general",
            "auditArea": area,
            "updatedAt": f"2024-01-{index + 1:02d}T00:00:00Z",
        }
        for index, area in enumerate(areas)
    ]


def test_module_options_are_capped_and_ranked_by_activity() -> None:
    view = _compute(_spread_cases())
    assert len(view.module_options) == 6
    assert [option.value for option in view.module_options[:3]] == ["debt", "equity", "payroll"]
    assert view.active_module_id == "debt"

    narrow = _compute(_spread_cases(), module_option_limit=3)
    assert [option.label for option in narrow.module_options] == ["Debt", "Equity", "Payroll"]


def test_selected_module_becomes_active_when_offered() -> None:
    view = _compute(_spread_cases(), selected="Fixed Assets")
    assert view.active_module_id == "fixed_assets"
    assert view.recommended_case is not None
    assert view.recommended_case.id == "case-fixed_assets"


def _skill_fixture() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "recipes": [
            {"id": "r1", "auditArea": "payables", "primarySkill": "Cutoff", "tier": "foundations"},
            {"id": "r2", "auditArea": "payables", "primarySkill": "Cutoff", "tier": "core"},
            {"id": "r3", "auditArea": "payables", "primarySkill": "Accruals", "tier": "foundations"},
        ],
        "cases": [
            {"id": "c1", "moduleId": "r1", "auditArea": "payables", "primarySkill": "Cutoff", "progress": DONE},
            {
                "id": "c2",
                "moduleId": "r2",
                "auditArea": "payables",
                "primarySkill": "Cutoff",
                "tier": "core",
                "status": "assigned",
            },
        ],
    }


def test_skill_progress_counts_depths_of_the_hero_skill() -> None:
    fixture = _skill_fixture()
    view = _compute(fixture["cases"], fixture["recipes"])

    assert isinstance(view.current_action, AssignedAction)
    assert view.current_action.case_data.id == "c2"
    assert view.skill_progress is not None
    assert view.skill_progress.label == "Cutoff"
    assert (view.skill_progress.done, view.skill_progress.total) == (1, 2)
    # Accruals is still open, so the assigned core case does not activate core.
    assert view.program_path.active_tier == "foundations"


def test_journey_percent_rounds_to_whole_numbers() -> None:
    fixture = _skill_fixture()
    view = _compute(fixture["cases"], fixture["recipes"])

    payables = _journey_entry(view, "payables")
    assert (payables.completed_skills, payables.total_skills) == (1, 3)
    assert payables.progress_percent == 33
    assert payables.next_skill_label == "Cutoff"


def test_legacy_tier_path_is_flagged() -> None:
    cases = [{"id": "legacy-1", "pathId": "Core", "tier": "foundations"}]
    with capture_events("progression_legacy_tier_path") as events:
        view = _compute(cases)

    assert view.primary_cases[0].path_id == "Core"
    assert len(events) == 1
    assert events[0].payload["record_count"] == 1
    assert events[0].payload["records"] == [{"kind": "case", "id": "legacy-1", "path_id": "Core"}]

    with capture_events("progression_legacy_tier_path") as quiet:
        _compute(cases, flag_legacy_tier_paths=False)
    assert quiet == []


def test_malformed_records_degrade_instead_of_failing() -> None:
    cases = [
        {
            "id": 5,
            "orderIndex": "abc",
            "progress": "bad",
            "secondarySkills": "x",
            "createdAt": "not a date",
            "tier": 3,
        },
        {"title": None, "progress": {"percentComplete": "n/a", "hasSuccessfulAttempt": "yes"}},
    ]
    recipes = [{"id": None, "isActive": "yes", "tier": ["core"]}]
    view = _compute(cases, recipes)

    assert [case.id for case in view.primary_cases] == ["5", ""]
    assert view.primary_cases[0].progress is None
    assert view.primary_cases[0].secondary_skills == []
    assert view.module_completion_by_id == []
    assert view.current_path_id == "general"


def test_draft_selection_is_scoped_to_selected_module() -> None:
    cases = [
        {"id": "d1", "auditArea": "cash", "status": "in_progress", "progress": {"activeAttempt": {"step": "testing"}}},
        {"id": "a1", "auditArea": "payables", "status": "assigned"},
    ]
    scoped = _compute(cases, selected="payables")
    assert scoped.draft_case is None
    assert isinstance(scoped.current_action, AssignedAction)
    assert scoped.current_action.case_data.id == "a1"

    unscoped = _compute(cases)
    assert isinstance(unscoped.current_action, ResumeDraftAction)
    assert unscoped.current_action.case_data.id == "d1"


def test_latest_draft_wins() -> None:
    cases = [
        {"id": "old", "progress": {"activeAttempt": {"step": "a", "updatedAt": "2024-01-01T00:00:00Z"}}},
        {"id": "new", "progress": {"activeAttempt": {"step": "b", "updatedAt": "2024-02-01T00:00:00Z"}}},
    ]
    view = _compute(cases)
    assert view.draft_case is not None and view.draft_case.id == "new"


def test_assigned_cases_follow_order_index() -> None:
    cases = [
        {"id": "later", "status": "assigned", "orderIndex": 2, "title": "B"},
        {"id": "first", "status": "Assigned", "orderIndex": 1, "title": "A"},
        {"id": "done", "status": "assigned", "orderIndex": 0, "progress": DONE},
    ]
    view = _compute(cases)
    assert isinstance(view.current_action, AssignedAction)
    assert view.current_action.case_data.id == "first"
    assert [case.id for case in view.assigned_cases] == ["later", "first"]


def test_computed_event_summarizes_the_evaluation() -> None:
    cases = [{"id": "a1", "status": "assigned"}, {"id": "b1", "progress": DONE}]
    with capture_events("progression_view_computed") as events:
        compute_progression_view(cases, [], options=EngineOptions())

    assert len(events) == 1
    payload = events[0].payload
    assert payload["case_count"] == 2
    assert payload["recipe_count"] == 0
    assert payload["action"] == "assigned"
    assert payload["path_id"] == "general"
    assert payload["tier"] == "foundations"
    assert payload["selected_module_id"] is None
