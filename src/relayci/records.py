# records.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    selectinload,
    sessionmaker,
)

from .model import RunResult
from .reporter import RunSink


class Base(DeclarativeBase):
    pass


class RunRecord(Base):
    __tablename__ = "runs"
    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    pipeline: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    event_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    ref: Mapped[str] = mapped_column(sa.Text, nullable=False)
    sha: Mapped[str] = mapped_column(sa.Text, nullable=False)
    actor: Mapped[str] = mapped_column(sa.Text, nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(sa.JSON, nullable=False, default=dict)

    jobs: Mapped[list["JobRecord"]] = relationship(back_populates="run", cascade="all, delete-orphan")


class JobRecord(Base):
    __tablename__ = "run_jobs"
    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(sa.ForeignKey("runs.id", ondelete="CASCADE"), nullable=False)
    job_name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    optional: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    run: Mapped[RunRecord] = relationship(back_populates="jobs")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlRunSink(RunSink):
    """Stores each run in a SQL database (any SQLAlchemy URL, e.g. sqlite:///runs.db)."""

    def __init__(self, database_url: str):
        self.engine = sa.create_engine(database_url, pool_pre_ping=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(self.engine, class_=Session, expire_on_commit=False)

    def write(self, result: RunResult) -> None:
        with self.Session() as s:
            with s.begin():
                run = RunRecord(
                    id=result.run_id,
                    pipeline=result.pipeline,
                    status=result.status.value,
                    event_name=result.event.name,
                    ref=result.event.ref,
                    sha=result.event.sha,
                    actor=result.event.actor,
                    started_at=_parse_ts(result.started_at),
                    finished_at=_parse_ts(result.finished_at),
                    payload_json=result.to_dict(),
                )
                for job in result.jobs.values():
                    run.jobs.append(
                        JobRecord(
                            job_name=job.name,
                            status=job.status.value,
                            optional=job.optional,
                            error=job.error,
                        )
                    )
                s.add(run)

    def get(self, run_id: str) -> Optional[RunRecord]:
        with self.Session() as s:
            return s.get(RunRecord, run_id, options=[selectinload(RunRecord.jobs)])
