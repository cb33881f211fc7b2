"""Event and photo records the lucky draw reads from."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    Text,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE
from ..db.utils import dt_iso

if TYPE_CHECKING:
    from .draw import DrawConfiguration, Entry

LUCKY_DRAW_FEATURE = "lucky_draw_enabled"


class Event(Base):
    """An organizer's event inside one tenant."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    """Free form event settings; ``settings["features"]`` toggles optional features."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    photos: Mapped[list["Photo"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )
    draw_configurations: Mapped[list["DrawConfiguration"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )
    entries: Mapped[list["Entry"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )

    def __init__(
        self,
        *,
        tenant_id: str,
        name: str,
        settings: Optional[dict] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.name = name
        self.settings = settings
        if created_at is not None:
            self.created_at = created_at

    def feature_enabled(self, feature: str, default: bool = True) -> bool:
        """Return whether ``feature`` is switched on for this event.

        Features missing from ``settings`` fall back to ``default``.
        """
        features = (self.settings or {}).get("features") or {}
        value = features.get(feature)
        return default if value is None else bool(value)

    @property
    def lucky_draw_enabled(self) -> bool:
        return self.feature_enabled(LUCKY_DRAW_FEATURE)

    @classmethod
    def get_for_tenant(
        cls, session: Session, tenant_id: str, event_id: int
    ) -> Optional["Event"]:
        """Return the event only if it belongs to ``tenant_id``."""

        return session.scalar(
            select(cls).where(cls.id == event_id, cls.tenant_id == tenant_id)
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "settings": self.settings or {},
            "created_at": dt_iso(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Event(id={self.id}, tenant_id='{self.tenant_id}', name='{self.name}')>"


class Photo(Base):
    """Guest upload; an approved photo can back a lucky draw entry."""

    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    contributor_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    full_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    event: Mapped["Event"] = relationship(back_populates="photos")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','rejected')", name="status_enum"
        ),
    )

    def __init__(
        self,
        *,
        event: Optional[Event] = None,
        event_id: Optional[int] = None,
        status: str = "pending",
        contributor_name: Optional[str] = None,
        full_url: Optional[str] = None,
    ) -> None:
        if event is not None:
            self.event = event
        if event_id is not None:
            self.event_id = event_id
        self.status = status
        self.contributor_name = contributor_name
        self.full_url = full_url

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "status": self.status,
            "contributor_name": self.contributor_name,
            "full_url": self.full_url,
            "created_at": dt_iso(self.created_at),
        }
