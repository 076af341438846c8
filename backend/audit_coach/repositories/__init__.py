"""Collaborators that load trainee cases and the module catalog."""

from __future__ import annotations

from typing import List, Protocol

from sqlalchemy.orm import Session

from ..progression_models import CaseRecord, ModuleCatalogEntry
from .curriculum_recipes import CurriculumRecipeRepository, curriculum_recipes
from .training_cases import TrainingCaseRepository, training_cases


class CaseRepository(Protocol):
    def list_cases_for_trainee(self, session: Session, trainee_id: str) -> List[CaseRecord]:  # pragma: no cover - protocol definition
        ...


class ModuleCatalog(Protocol):
    def list_recipes(self, session: Session) -> List[ModuleCatalogEntry]:  # pragma: no cover - protocol definition
        ...


__all__ = [
    "CaseRepository",
    "CurriculumRecipeRepository",
    "ModuleCatalog",
    "TrainingCaseRepository",
    "curriculum_recipes",
    "training_cases",
]
