"""Task and task dependency models."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktrack.db.base import Base, BaseModel


class Task(BaseModel):
    """A personal task owned by a single user."""

    __tablename__ = "tasks"

    # Basic info
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Status and priority
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="not_done", index=True
    )  # not_done, in_progress, done
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="medium", index=True
    )  # low, medium, high

    # Ownership
    owner_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    # Timeline
    due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    recurrence_pattern: Mapped[str] = mapped_column(
        String(20), nullable=False, default="none"
    )  # none, daily, weekly, monthly
    last_recurrence: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_recurrence: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    # Series task this instance was spawned from (if any)
    recurrence_source_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    dependency_links: Mapped[list["TaskDependency"]] = relationship(
        "TaskDependency",
        foreign_keys="TaskDependency.task_id",
        back_populates="task",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def dependency_ids(self) -> list[UUID]:
        return [link.depends_on_id for link in self.dependency_links]

    def __repr__(self) -> str:
        try:
            return f"<Task {self.title[:30]}>"
        except Exception:
            return "<Task detached>"


class TaskDependency(Base):
    """Directed edge: ``task_id`` cannot be completed before ``depends_on_id``."""

    __tablename__ = "task_dependencies"

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # RESTRICT backs the deletion gate if a concurrent request slips past it
    depends_on_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )

    task: Mapped["Task"] = relationship(
        "Task", foreign_keys=[task_id], back_populates="dependency_links"
    )

    def __repr__(self) -> str:
        return f"<TaskDependency {self.task_id} -> {self.depends_on_id}>"
