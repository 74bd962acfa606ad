from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from takelog.models.base import Base, StringIdMixin, TimestampMixin


class ProjectRecord(Base, StringIdMixin, TimestampMixin):
    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ProjectSettings as JSON (camera_configuration, crew names)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    log_sheets: Mapped[list["LogSheetRecord"]] = relationship(  # noqa: F821
        "LogSheetRecord", back_populates="project", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<ProjectRecord {self.name}>"
