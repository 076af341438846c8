"""ORM models for training cases, trainee progress, and curriculum recipes."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class TrainingCaseModel(TimestampMixin, Base):
    __tablename__ = "training_cases"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    visible_to_all: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    assigned_trainee_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)


class CaseProgressModel(TimestampMixin, Base):
    __tablename__ = "case_progress"
    __table_args__ = (
        UniqueConstraint("trainee_id", "case_id", name="uq_case_progress_trainee_case"),
        Index("ix_case_progress_trainee", "trainee_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trainee_id: Mapped[str] = mapped_column(String(128), nullable=False)
    case_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)


class CurriculumRecipeModel(TimestampMixin, Base):
    __tablename__ = "curriculum_recipes"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)


__all__ = ["CaseProgressModel", "CurriculumRecipeModel", "TrainingCaseModel"]
