from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database.models.base import Base
from utils.typed_values import VALUE_TYPES


class Project(Base):
    """A tracked on-chain project whose metrics live in its attribute bag."""

    __tablename__ = "project"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    contract_address: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    attributes: Mapped[List["ProjectAttribute"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )


_VALUE_TYPE_LIST = ", ".join(f"'{t}'" for t in VALUE_TYPES)


class ProjectAttribute(Base):
    """One typed key/value pair of a project; unique per (project_id, key)."""

    __tablename__ = "project_attribute"
    __table_args__ = (
        CheckConstraint(
            f"value_type IN ({_VALUE_TYPE_LIST})", name="ck_project_attribute_type"
        ),
    )

    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("project.id", ondelete="CASCADE"), primary_key=True
    )
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    value_type: Mapped[str] = mapped_column(String(16), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    project: Mapped[Project] = relationship(back_populates="attributes")
