"""Database model for package versions."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import GUID, Base, TimestampMixin, enum_values


class LatestKind(str, Enum):
    """Why a version is currently tracked. ``None`` on the row means historical."""

    RELEASE = "release"
    PRE_RELEASE = "pre_release"
    DEFAULT_BRANCH = "default_branch"


class Version(TimestampMixin, Base):
    """A package version; only versions with a ``latest`` kind get built."""

    __tablename__ = "versions"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    package_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    latest: Mapped[LatestKind | None] = mapped_column(
        SAEnum(
            LatestKind,
            name="latest_kind",
            native_enum=False,
            length=20,
            values_callable=enum_values,
        ),
        nullable=True,
        index=True,
    )
    package_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    package: Mapped["Package"] = relationship(back_populates="versions")  # noqa: F821
    builds: Mapped[list["Build"]] = relationship(  # noqa: F821
        back_populates="version",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


__all__ = ["LatestKind", "Version"]
