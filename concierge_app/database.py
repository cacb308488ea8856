from __future__ import annotations

import datetime
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from config import DATABASE_URL, ensure_data_dir


COLOR_CHOICES: Dict[str, tuple[str, str]] = {
    "BLUE": ("#3498db", "Blue"),
    "PURPLE": ("#9b59b6", "Purple"),
    "GREEN": ("#2ecc71", "Green"),
    "RED": ("#e74c3c", "Red"),
    "ORANGE": ("#e67e22", "Orange"),
    "YELLOW": ("#f39c12", "Yellow"),
    "PINK": ("#e91e63", "Pink"),
    "TEAL": ("#1abc9c", "Teal"),
    "INDIGO": ("#6610f2", "Indigo"),
    "CYAN": ("#17a2b8", "Cyan"),
}
SHIFT_TYPES: Dict[str, tuple[str, str]] = {
    "FULL_DAY": ("24 Hours", "Full Day Shift"),
}
DEFAULT_SHIFT_TYPE = "FULL_DAY"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def color_hex(color: str) -> str:
    return COLOR_CHOICES.get(color, ("#6c757d", color))[0]


class Base(DeclarativeBase):
    """Metadata for every table living in concierge.db."""

    pass


class Concierge(Base):
    __tablename__ = "concierges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="BLUE")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    assignments: Mapped[List["ShiftAssignment"]] = relationship(back_populates="concierge")

    @property
    def color_hex(self) -> str:
        return color_hex(self.color)

    def __repr__(self) -> str:
        return f"Concierge(id={self.id}, name={self.name!r}, color={self.color}, active={self.active})"


# Names are unique regardless of case, deleted rows included.
Index("uq_concierges_name_lower", func.lower(Concierge.name), unique=True)


class ShiftAssignment(Base):
    __tablename__ = "shift_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shift_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    concierge_id: Mapped[int] = mapped_column(ForeignKey("concierges.id"), nullable=False)
    shift_type: Mapped[str] = mapped_column(String(20), nullable=False, default=DEFAULT_SHIFT_TYPE)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    concierge: Mapped[Concierge] = relationship(back_populates="assignments", lazy="joined")

    __table_args__ = (
        # One active assignment per day; deleted rows are tombstones and do not count.
        Index(
            "uq_shift_assignments_active_date",
            "shift_date",
            unique=True,
            sqlite_where=text("deleted = 0"),
            postgresql_where=text("deleted = false"),
        ),
        Index("idx_shift_assignments_date", "shift_date"),
        Index("idx_shift_assignments_concierge", "concierge_id"),
    )

    def __repr__(self) -> str:
        name = self.concierge.name if self.concierge is not None else None
        return f"ShiftAssignment(id={self.id}, shift_date={self.shift_date}, concierge={name!r})"


class MonthSnapshot(Base):
    __tablename__ = "month_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_json: Mapped[str] = mapped_column(Text, nullable=False, default="")
    snapshot_date: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    total_shifts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # A single row per period; deleted rows are reactivated instead of duplicated.
    __table_args__ = (UniqueConstraint("year", "month", name="uq_month_history_year_month"),)

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="ShiftAssignment")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


def create_database_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine; SQLite engines get real BEGIN/SAVEPOINT handling."""
    engine = create_engine(url, echo=False, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        # pysqlite opens transactions lazily, which breaks nested savepoints.
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn) -> None:
            conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


if DATABASE_URL.startswith("sqlite:///"):
    ensure_data_dir()
engine = create_database_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


def init_database(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind or engine)


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "ShiftAssignment",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    session.commit()
    return log
