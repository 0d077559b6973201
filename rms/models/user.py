"""User and UserBranchRole models — RMS provisioning of portal identities."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rms.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from rms.models.enums import RmsRole


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    portal_user_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    branch_roles: Mapped[list[UserBranchRole]] = relationship(
        "UserBranchRole", back_populates="user", lazy="noload", cascade="all, delete-orphan"
    )


class UserBranchRole(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "user_branch_roles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[RmsRole] = mapped_column(nullable=False)

    user: Mapped[User] = relationship("User", back_populates="branch_roles", lazy="noload")

    __table_args__ = (
        UniqueConstraint("user_id", "branch_id", name="uq_user_branch_roles_user_branch"),
        Index("ix_user_branch_roles_branch_id", "branch_id"),
    )
