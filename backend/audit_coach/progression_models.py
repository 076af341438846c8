"""Pydantic models for trainee case records, catalog recipes, and the progression view.

Input records are lenient: case documents arrive from several generations of
authoring tools, so unknown fields are ignored and malformed optional scalars
degrade to ``None`` instead of rejecting the record. Every model accepts both
the camelCase keys used by stored documents and snake_case attribute names.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

Tier = Literal["foundations", "core", "advanced"]
TierStatus = Literal["completed", "active", "upcoming"]

# Epoch values above this are treated as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 1e11


def coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return str(value)
    return None


def coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Parse datetimes, ISO strings, epoch numbers and Firestore-style dicts."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        seconds = value / 1000.0 if abs(value) > _EPOCH_MILLIS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = f"{raw[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        base = coerce_number(seconds)
        if base is None:
            return None
        extra = coerce_number(nanos) or 0.0
        return coerce_timestamp(base + extra / 1e9)
    return None


class _RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ActiveAttempt(_RecordModel):
    draft: Optional[Dict[str, Any]] = None
    step: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("draft", mode="before")
    @classmethod
    def _coerce_draft(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("step", mode="before")
    @classmethod
    def _coerce_step(cls, value: Any) -> Any:
        return coerce_text(value)

    @field_validator("started_at", "updated_at", mode="before")
    @classmethod
    def _coerce_times(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class ProgressRecord(_RecordModel):
    """A trainee's accumulated state for one case."""

    has_successful_attempt: Optional[bool] = None
    percent_complete: float = 0.0
    state: Optional[str] = None
    active_attempt: Optional[ActiveAttempt] = None
    last_attempt_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("has_successful_attempt", mode="before")
    @classmethod
    def _strict_flag(cls, value: Any) -> Any:
        # Only a real boolean is authoritative; anything else means "absent".
        return value if isinstance(value, bool) else None

    @field_validator("percent_complete", mode="before")
    @classmethod
    def _coerce_percent(cls, value: Any) -> Any:
        return coerce_number(value) or 0.0

    @field_validator("state", mode="before")
    @classmethod
    def _coerce_state(cls, value: Any) -> Any:
        return coerce_text(value)

    @field_validator("active_attempt", mode="before")
    @classmethod
    def _coerce_attempt(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, ActiveAttempt)) else None

    @field_validator("last_attempt_at", "updated_at", mode="before")
    @classmethod
    def _coerce_times(cls, value: Any) -> Any:
        return coerce_timestamp(value)


_CASE_TEXT_FIELDS = (
    "id",
    "module_id",
    "recipe_id",
    "audit_area",
    "title",
    "case_name",
    "path_id",
    "path_title",
    "path_description",
    "tier",
    "case_level",
    "primary_skill",
    "module_title",
    "status",
)


class CaseRecord(_RecordModel):
    """One trainee-facing unit of work with its progress merged in."""

    id: str = ""
    module_id: Optional[str] = None
    recipe_id: Optional[str] = None
    audit_area: Optional[str] = None
    title: Optional[str] = None
    case_name: Optional[str] = None
    path_id: Optional[str] = None
    path_title: Optional[str] = None
    path_description: Optional[str] = None
    tier: Optional[str] = None
    case_level: Optional[str] = None
    primary_skill: Optional[str] = None
    secondary_skills: List[str] = Field(default_factory=list)
    module_title: Optional[str] = None
    status: Optional[str] = None
    order_index: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    progress: Optional[ProgressRecord] = None

    @field_validator(*_CASE_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text_fields(cls, value: Any, info: ValidationInfo) -> Any:
        text = coerce_text(value)
        if info.field_name == "id":
            return text or ""
        return text

    @field_validator("secondary_skills", mode="before")
    @classmethod
    def _coerce_skills(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in (coerce_text(entry) for entry in value) if item]

    @field_validator("order_index", mode="before")
    @classmethod
    def _coerce_order(cls, value: Any) -> Any:
        return coerce_number(value)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _coerce_times(cls, value: Any) -> Any:
        return coerce_timestamp(value)

    @field_validator("progress", mode="before")
    @classmethod
    def _coerce_progress(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, ProgressRecord)) else None


_RECIPE_TEXT_FIELDS = (
    "id",
    "module_id",
    "audit_area",
    "path_id",
    "path_title",
    "path_description",
    "tier",
    "case_level",
    "primary_skill",
    "title",
    "module_title",
)


class ModuleCatalogEntry(_RecordModel):
    """Catalog ("recipe") description of a module, independent of any attempt."""

    id: str = ""
    module_id: Optional[str] = None
    audit_area: Optional[str] = None
    path_id: Optional[str] = None
    path_title: Optional[str] = None
    path_description: Optional[str] = None
    tier: Optional[str] = None
    case_level: Optional[str] = None
    primary_skill: Optional[str] = None
    secondary_skills: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    module_title: Optional[str] = None
    is_active: bool = True

    @field_validator(*_RECIPE_TEXT_FIELDS, mode="before")
    @classmethod
    def _coerce_text_fields(cls, value: Any, info: ValidationInfo) -> Any:
        text = coerce_text(value)
        if info.field_name == "id":
            return text or ""
        return text

    @field_validator("secondary_skills", mode="before")
    @classmethod
    def _coerce_skills(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in (coerce_text(entry) for entry in value) if item]

    @field_validator("is_active", mode="before")
    @classmethod
    def _coerce_active(cls, value: Any) -> Any:
        return value if isinstance(value, bool) else True


class TierStat(_RecordModel):
    done: int = 0
    total: int = 0


class TierState(_RecordModel):
    status: TierStatus
    completed: bool
    eligible: bool
    done: int
    total: int


class ProgramPath(_RecordModel):
    path_id: str
    path_label: str = ""
    tier_stats: Dict[str, TierStat]
    tier_states: Dict[str, TierState]
    active_tier: Tier


class ModuleOption(_RecordModel):
    value: str
    label: str
    description: str = ""


class SkillProgress(_RecordModel):
    label: str
    done: int
    total: int


class ModuleJourneyEntry(_RecordModel):
    module_id: str
    label: str
    total_skills: int
    completed_skills: int
    progress_percent: int
    next_skill_label: str = ""


class ResumeDraftAction(_RecordModel):
    type: Literal["resumeDraft"] = "resumeDraft"
    case_data: CaseRecord


class AssignedAction(_RecordModel):
    type: Literal["assigned"] = "assigned"
    case_data: CaseRecord


class RecommendedAction(_RecordModel):
    type: Literal["recommended"] = "recommended"
    case_data: CaseRecord


class StartModuleAction(_RecordModel):
    type: Literal["startModule"] = "startModule"
    recipe: ModuleCatalogEntry


class EmptyModuleAction(_RecordModel):
    type: Literal["emptyModule"] = "emptyModule"
    module_id: str


CurrentAction = Annotated[
    Union[ResumeDraftAction, AssignedAction, RecommendedAction, StartModuleAction, EmptyModuleAction],
    Field(discriminator="type"),
]


class ProgressionView(_RecordModel):
    """Everything a trainee dashboard needs from one evaluation pass."""

    primary_cases: List[CaseRecord] = Field(default_factory=list)
    retake_cases: List[CaseRecord] = Field(default_factory=list)
    module_completion_by_id: List[str] = Field(default_factory=list)
    draft_case: Optional[CaseRecord] = None
    assigned_cases: List[CaseRecord] = Field(default_factory=list)
    eligible_cases: List[CaseRecord] = Field(default_factory=list)
    current_path_id: str
    current_tier: Tier
    module_options: List[ModuleOption] = Field(default_factory=list)
    active_module_id: str = ""
    recommended_case: Optional[CaseRecord] = None
    current_action: Optional[CurrentAction] = None
    hero_case: Optional[CaseRecord] = None
    hero_recipe: Optional[ModuleCatalogEntry] = None
    skill_progress: Optional[SkillProgress] = None
    program_path: ProgramPath
    module_journey: List[ModuleJourneyEntry] = Field(default_factory=list)
    available_modules: List[ModuleCatalogEntry] = Field(default_factory=list)


__all__ = [
    "ActiveAttempt",
    "AssignedAction",
    "CaseRecord",
    "CurrentAction",
    "EmptyModuleAction",
    "ModuleCatalogEntry",
    "ModuleJourneyEntry",
    "ModuleOption",
    "ProgramPath",
    "ProgressRecord",
    "ProgressionView",
    "RecommendedAction",
    "ResumeDraftAction",
    "SkillProgress",
    "StartModuleAction",
    "Tier",
    "TierStat",
    "TierState",
    "coerce_number",
    "coerce_text",
    "coerce_timestamp",
]
