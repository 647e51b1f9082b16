from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    # Python-side timestamps keep attributes loaded after flush under async sessions.
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Team(Base):
    __tablename__ = "teams"

    # Owning teams are issued by the identity system; only the name is needed here.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(63), unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )


class Blueprint(Base):
    __tablename__ = "blueprints"
    __table_args__ = (Index("ix_blueprints_provider", "provider"),)

    # Blueprints are write-once: no column here has an update path.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(63), unique=True)
    provider: Mapped[str] = mapped_column(String(63))
    # Multi-document manifest template with {{ .Field }} placeholders.
    manifests: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class Tier(Base):
    __tablename__ = "tiers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(63), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    # Nullable only for rows created before blueprints existed; set once otherwise.
    blueprint_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("blueprints.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    destruction_strategy: Mapped[str] = mapped_column(String(32), default="hard_delete")
    backup_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )


class Database(Base):
    __tablename__ = "databases"
    __table_args__ = (
        # Names are unique among live rows only so soft-deleted names can be reused.
        Index(
            "uq_databases_name_active",
            "name",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_databases_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(63))
    owner_team_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("teams.id", ondelete="RESTRICT"), index=True
    )
    # Set at creation and never changed.
    tier_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tiers.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    purpose: Mapped[str] = mapped_column(Text, default="")
    namespace: Mapped[str] = mapped_column(String(63))
    cluster_name: Mapped[str] = mapped_column(String(128))
    pooler_name: Mapped[str] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(32), default="provisioning")
    # Connection metadata is only populated while status is ready.
    host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    secret_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), onupdate=_utc_now
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
