"""REST endpoints that evaluate a trainee's curriculum progression."""

from __future__ import annotations

import logging
from typing import Generator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db.session import get_session_dependency
from .progression_engine import compute_progression_view
from .progression_models import CaseRecord, ModuleCatalogEntry, ProgressionView
from .repositories import CaseRepository, ModuleCatalog, curriculum_recipes, training_cases

router = APIRouter(prefix="/api/progression", tags=["progression"])
logger = logging.getLogger(__name__)


class ProgressionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cases: List[CaseRecord] = Field(default_factory=list)
    recipes: List[ModuleCatalogEntry] = Field(default_factory=list)
    selected_module_id: Optional[str] = Field(default=None, max_length=128)


def get_case_repository() -> CaseRepository:
    return training_cases


def get_module_catalog() -> ModuleCatalog:
    return curriculum_recipes


def _database_session() -> Generator[Session, None, None]:
    try:
        yield from get_session_dependency()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/view", response_model=ProgressionView, status_code=status.HTTP_200_OK)
def compute_view(request: ProgressionRequest) -> ProgressionView:
    return compute_progression_view(request.cases, request.recipes, request.selected_module_id)


@router.get("/{trainee_id}", response_model=ProgressionView, status_code=status.HTTP_200_OK)
def get_trainee_progression(
    trainee_id: str,
    selected_module_id: Optional[str] = Query(
        default=None,
        alias="selectedModuleId",
        max_length=128,
        description="Module key the trainee picked on the dashboard, if any.",
    ),
    session: Session = Depends(_database_session),
    cases_repository: CaseRepository = Depends(get_case_repository),
    catalog: ModuleCatalog = Depends(get_module_catalog),
) -> ProgressionView:
    try:
        cases = cases_repository.list_cases_for_trainee(session, trainee_id)
        recipes = catalog.list_recipes(session)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to load cases for trainee %s", trainee_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to load training cases. Try again shortly.",
        ) from exc
    return compute_progression_view(cases, recipes, selected_module_id)


__all__ = ["ProgressionRequest", "get_case_repository", "get_module_catalog", "router"]
