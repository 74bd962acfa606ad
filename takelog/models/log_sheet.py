from typing import Any

from sqlalchemy import JSON, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from takelog.models.base import Base, StringIdMixin, TimestampMixin


class LogSheetRecord(Base, StringIdMixin, TimestampMixin):
    """One stored take.

    The uniqueness key is mirrored in columns so the database enforces it too;
    everything else lives in ``payload`` (the LogSheet schema as JSON).
    """

    __tablename__ = "log_sheets"
    __table_args__ = (
        UniqueConstraint("project_id", "scene", "take_number", "camera_id", name="uq_log_sheets_take_key"),
    )

    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scene: Mapped[str] = mapped_column(String(64), nullable=False)
    take_number: Mapped[int] = mapped_column(Integer, nullable=False)
    camera_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    project: Mapped["ProjectRecord"] = relationship(  # noqa: F821
        "ProjectRecord", back_populates="log_sheets"
    )

    def __repr__(self) -> str:
        return f"<LogSheetRecord {self.scene}/{self.take_number} cam{self.camera_id}>"
