"""Database-backed module catalog ("recipes")."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..case_merge import normalize_recipe_document
from ..db.models import CurriculumRecipeModel
from ..progression_keys import clean_text
from ..progression_models import ModuleCatalogEntry


def _normalize_recipe_id(recipe_id: Any) -> str:
    normalized = clean_text(recipe_id)
    if not normalized:
        raise ValueError("Recipe id cannot be empty.")
    return normalized


class CurriculumRecipeRepository:
    """Stores published curriculum modules and lists the active ones."""

    def save_recipe(self, session: Session, document: Mapping[str, Any]) -> ModuleCatalogEntry:
        recipe_id = _normalize_recipe_id(document.get("id"))
        is_active = document.get("isActive")
        model = session.get(CurriculumRecipeModel, recipe_id)
        if model is None:
            model = CurriculumRecipeModel(id=recipe_id)
            session.add(model)
        model.document = {key: value for key, value in document.items() if key != "id"}
        model.is_active = is_active if isinstance(is_active, bool) else True
        session.flush()
        return self._to_domain(model)

    def get(self, session: Session, recipe_id: str) -> Optional[ModuleCatalogEntry]:
        model = session.get(CurriculumRecipeModel, _normalize_recipe_id(recipe_id))
        return self._to_domain(model) if model is not None else None

    def list_recipes(self, session: Session) -> List[ModuleCatalogEntry]:
        stmt = (
            select(CurriculumRecipeModel)
            .where(CurriculumRecipeModel.is_active.is_(True))
            .order_by(CurriculumRecipeModel.created_at, CurriculumRecipeModel.id)
        )
        return [self._to_domain(model) for model in session.execute(stmt).scalars()]

    @staticmethod
    def _to_domain(model: CurriculumRecipeModel) -> ModuleCatalogEntry:
        document = dict(model.document or {})
        document["isActive"] = model.is_active
        return normalize_recipe_document(model.id, document)


curriculum_recipes = CurriculumRecipeRepository()

__all__ = ["CurriculumRecipeRepository", "curriculum_recipes"]
