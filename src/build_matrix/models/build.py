"""Database model for build matrix cells submitted to the pipeline."""

from __future__ import annotations

import uuid
from enum import Enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db import GUID, Base, TimestampMixin, enum_values
from ..matrix import BuildPair, CompilerVersion, Platform


class BuildStatus(str, Enum):
    """Lifecycle states reported for a build job."""

    TRIGGERED = "triggered"
    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


class Build(TimestampMixin, Base):
    """One (version, platform, compiler major.minor) cell and its pipeline job.

    The id is the job id handed to the pipeline; it is never updated in place.
    """

    __tablename__ = "builds"
    __table_args__ = (
        UniqueConstraint(
            "version_id",
            "platform",
            "compiler_major",
            "compiler_minor",
            name="builds_version_cell_key",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    version_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    platform: Mapped[Platform] = mapped_column(
        SAEnum(
            Platform,
            name="build_platform",
            native_enum=False,
            length=32,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    compiler_version: Mapped[str] = mapped_column(String(32), nullable=False)
    compiler_major: Mapped[int] = mapped_column(Integer, nullable=False)
    compiler_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BuildStatus] = mapped_column(
        SAEnum(
            BuildStatus,
            name="build_status",
            native_enum=False,
            length=32,
            values_callable=enum_values,
        ),
        nullable=False,
        server_default=BuildStatus.TRIGGERED.value,
        index=True,
    )
    job_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    build_command: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped["Version"] = relationship(back_populates="builds")  # noqa: F821

    @classmethod
    def for_pair(
        cls,
        *,
        id: uuid.UUID,
        version_id: uuid.UUID,
        pair: BuildPair,
        status: BuildStatus,
        job_url: str | None = None,
        build_command: str | None = None,
    ) -> Build:
        return cls(
            id=id,
            version_id=version_id,
            platform=pair.platform,
            compiler_version=str(pair.compiler_version),
            compiler_major=pair.compiler_version.major,
            compiler_minor=pair.compiler_version.minor,
            status=status,
            job_url=job_url,
            build_command=build_command,
        )

    @property
    def pair(self) -> BuildPair:
        try:
            patch = CompilerVersion.parse(self.compiler_version).patch
        except ValueError:
            patch = 0
        version = CompilerVersion(self.compiler_major, self.compiler_minor, patch)
        return BuildPair(Platform(self.platform), version)


__all__ = ["BuildStatus", "Build"]
