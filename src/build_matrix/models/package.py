"""Database model for indexed packages."""

from __future__ import annotations

import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import GUID, Base, TimestampMixin


class Package(TimestampMixin, Base):
    """An indexed package. Only its identity matters to the build trigger."""

    __tablename__ = "packages"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    url: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)

    versions: Mapped[list["Version"]] = relationship(  # noqa: F821
        back_populates="package",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


__all__ = ["Package"]
