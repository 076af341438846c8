"""Tests for progression key resolution and display helpers."""

from __future__ import annotations

import pytest

from audit_coach.progression_keys import (
    DEFAULT_PATH_ID,
    get_module_label,
    get_path_label,
    get_skill_label,
    humanize_token,
    module_key_for_recipe,
    next_case_sort_key,
    normalize_module_key,
    path_key,
    program_tier,
    progress_updated_at,
    skill_key,
    uses_legacy_tier_path,
)
from audit_coach.progression_models import CaseRecord, ModuleCatalogEntry


@pytest.mark.parametrize(
    "raw",
    ["Accounts Payable", "ap", " AP ", "accounts-payable", "accounts_payable", "payables"],
)
def test_payables_aliases_share_module_key(raw: str) -> None:
    assert normalize_module_key(raw) == "payables"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Fixed Assets", "fixed_assets"),
        ("fixed-assets", "fixed_assets"),
        ("Cash", "cash"),
        ("Inventory", "inventory"),
        ("", ""),
        ("   ", ""),
        (None, ""),
        (42, ""),
    ],
)
def test_normalize_module_key_degrades_quietly(raw: object, expected: str) -> None:
    assert normalize_module_key(raw) == expected


def test_program_tier_prefers_tier_literal_in_path_id() -> None:
    legacy = CaseRecord(id="c1", path_id="Core", tier="advanced")
    assert program_tier(legacy) == "core"
    assert uses_legacy_tier_path(legacy)

    modern = CaseRecord(id="c2", path_id="audit-track", tier="advanced")
    assert program_tier(modern) == "advanced"
    assert not uses_legacy_tier_path(modern)

    assert program_tier(CaseRecord(id="c3", tier="expert")) == "foundations"


def test_path_key_fallback_order() -> None:
    assert path_key(CaseRecord(id="a", path_id=" audit ", audit_area="cash")) == "audit"
    assert path_key(CaseRecord(id="b", path_id="  ", audit_area="cash")) == "cash"
    assert path_key(CaseRecord(id="c")) == DEFAULT_PATH_ID


def test_skill_key_combines_base_and_depth() -> None:
    assert skill_key(CaseRecord(id="a", primary_skill="Cutoff", case_level="Advanced")) == "Cutoff::advanced"
    assert skill_key(CaseRecord(id="b", title="Vendor review", tier="core")) == "Vendor review::intermediate"
    assert skill_key(CaseRecord(id="c", case_name="Bank rec")) == "Bank rec::basic"
    assert skill_key(CaseRecord(id="d", module_id="mod-7")) == "mod-7"
    assert skill_key(CaseRecord(id="e")) == "e"


def test_recipe_module_key_falls_back_to_module_id() -> None:
    assert module_key_for_recipe(ModuleCatalogEntry(id="r1", audit_area="AP")) == "payables"
    assert module_key_for_recipe(ModuleCatalogEntry(id="Fixed-Assets")) == "fixed_assets"


def test_next_case_sort_key_puts_unordered_cases_last() -> None:
    cases = [
        CaseRecord(id="late", title="Alpha"),
        CaseRecord(id="second", title="beta", order_index=2),
        CaseRecord(id="first-b", title="Bravo", order_index=1),
        CaseRecord(id="first-a", title="alpha", order_index=1),
    ]
    ordered = sorted(cases, key=next_case_sort_key)
    assert [case.id for case in ordered] == ["first-a", "first-b", "second", "late"]


def test_progress_updated_at_fallback_chain() -> None:
    case = CaseRecord.model_validate(
        {
            "id": "c1",
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-02-01T00:00:00Z",
            "progress": {
                "updatedAt": "2024-03-01T00:00:00Z",
                "lastAttemptAt": "2024-04-01T00:00:00Z",
                "activeAttempt": {"updatedAt": "2024-05-01T00:00:00Z"},
            },
        }
    )
    assert progress_updated_at(case) == CaseRecord.model_validate(
        {"id": "x", "createdAt": "2024-05-01T00:00:00Z"}
    ).created_at.timestamp()

    bare = CaseRecord.model_validate({"id": "c2", "createdAt": "2024-01-01T00:00:00Z"})
    assert progress_updated_at(bare) == bare.created_at.timestamp()
    assert progress_updated_at(CaseRecord(id="c3")) == 0.0


def test_display_labels() -> None:
    assert humanize_token("fixed_assets") == "Fixed Assets"
    assert humanize_token("sales-cutoff") == "Sales Cutoff"
    assert get_path_label("audit_basics") == "Audit Basics"
    assert get_path_label("audit_basics", " Audit Foundations ") == "Audit Foundations"
    assert get_path_label(None) == "General"
    assert get_module_label(CaseRecord(id="a", audit_area="ap")) == "Accounts Payable"
    assert get_module_label(CaseRecord(id="b", audit_area="inventory_counts")) == "Inventory Counts"
    assert get_module_label(CaseRecord(id="c")) == "General"
    assert get_skill_label(CaseRecord(id="d", case_name="Bank rec")) == "Bank rec"
    assert get_skill_label(CaseRecord(id="e")) == "Skill"
