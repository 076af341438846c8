"""Database-backed case repository with per-trainee progress merged in."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..case_merge import merge_case_documents
from ..db.models import CaseProgressModel, TrainingCaseModel
from ..progression_keys import clean_text
from ..progression_models import CaseRecord
from .curriculum_recipes import CurriculumRecipeRepository, curriculum_recipes

ARCHIVED_STATUS = "archived"


def _normalize_id(value: Any, label: str) -> str:
    normalized = clean_text(value)
    if not normalized:
        raise ValueError(f"{label} cannot be empty.")
    return normalized


class TrainingCaseRepository:
    """Lists the cases a trainee can see, each carrying that trainee's progress."""

    def __init__(self, catalog: Optional[CurriculumRecipeRepository] = None) -> None:
        self._catalog = catalog or curriculum_recipes

    def save_case(
        self,
        session: Session,
        document: Mapping[str, Any],
        *,
        visible_to_all: bool = True,
        assigned_trainee_ids: Optional[Iterable[str]] = None,
    ) -> None:
        case_id = _normalize_id(document.get("id"), "Case id")
        model = session.get(TrainingCaseModel, case_id)
        if model is None:
            model = TrainingCaseModel(id=case_id)
            session.add(model)
        model.document = {key: value for key, value in document.items() if key not in ("id", "progress")}
        model.status = clean_text(document.get("status")).lower()
        model.visible_to_all = visible_to_all
        model.assigned_trainee_ids = sorted(
            {trainee for trainee in (clean_text(item) for item in assigned_trainee_ids or ()) if trainee}
        )
        session.flush()

    def save_progress(
        self,
        session: Session,
        trainee_id: str,
        case_id: str,
        progress: Mapping[str, Any],
    ) -> None:
        trainee = _normalize_id(trainee_id, "Trainee id")
        case = _normalize_id(case_id, "Case id")
        stmt = select(CaseProgressModel).where(
            CaseProgressModel.trainee_id == trainee,
            CaseProgressModel.case_id == case,
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            model = CaseProgressModel(trainee_id=trainee, case_id=case)
            session.add(model)
        model.payload = dict(progress)
        session.flush()

    def list_cases_for_trainee(self, session: Session, trainee_id: str) -> List[CaseRecord]:
        trainee = _normalize_id(trainee_id, "Trainee id")
        stmt = (
            select(TrainingCaseModel)
            .where(TrainingCaseModel.status != ARCHIVED_STATUS)
            .order_by(TrainingCaseModel.created_at, TrainingCaseModel.id)
        )
        documents: List[Dict[str, Any]] = []
        for model in session.execute(stmt).scalars():
            if not model.visible_to_all and trainee not in (model.assigned_trainee_ids or []):
                continue
            documents.append(self._case_document(model))

        progress_stmt = select(CaseProgressModel).where(CaseProgressModel.trainee_id == trainee)
        progress_by_case_id = {
            model.case_id: self._progress_document(model) for model in session.execute(progress_stmt).scalars()
        }
        return merge_case_documents(documents, progress_by_case_id, self._catalog.list_recipes(session))

    @staticmethod
    def _case_document(model: TrainingCaseModel) -> Dict[str, Any]:
        document = dict(model.document or {})
        document["id"] = model.id
        if model.status:
            document["status"] = model.status
        document.setdefault("createdAt", model.created_at.isoformat() if model.created_at else None)
        document.setdefault("updatedAt", model.updated_at.isoformat() if model.updated_at else None)
        return document

    @staticmethod
    def _progress_document(model: CaseProgressModel) -> Dict[str, Any]:
        document = dict(model.payload or {})
        document.setdefault("updatedAt", model.updated_at.isoformat() if model.updated_at else None)
        return document


training_cases = TrainingCaseRepository()

__all__ = ["ARCHIVED_STATUS", "TrainingCaseRepository", "training_cases"]
