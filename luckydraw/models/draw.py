"""Database models for the lucky draw subsystem."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE
from ..db.utils import dt_iso

if TYPE_CHECKING:
    from .event import Event, Photo


TIER_IDENTIFIERS = ("grand", "first", "second", "third", "consolation")
"""Prize tier identifiers accepted in a configuration."""


class DrawStatus(str, enum.Enum):
    """Lifecycle of a :class:`DrawConfiguration`."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    def can_transition_to(self, target: "DrawStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[DrawStatus, frozenset[DrawStatus]] = {
    DrawStatus.SCHEDULED: frozenset({DrawStatus.IN_PROGRESS, DrawStatus.ARCHIVED}),
    DrawStatus.IN_PROGRESS: frozenset({DrawStatus.COMPLETED}),
    DrawStatus.COMPLETED: frozenset({DrawStatus.ARCHIVED}),
    DrawStatus.ARCHIVED: frozenset(),
}

ACTIVE_STATUSES = (DrawStatus.SCHEDULED.value, DrawStatus.COMPLETED.value)


class WinnerStatus(str, enum.Enum):
    DRAWN = "drawn"
    CLAIMED = "claimed"
    FORFEITED = "forfeited"


@dataclass(frozen=True)
class PrizeTier:
    """One prize tier embedded in a configuration's ``prize_tiers`` list.

    Attributes
    ----------
    tier : str
        Tier identifier, one of :data:`TIER_IDENTIFIERS`.
    name : str
        Display name of the prize.
    count : int
        Number of winners to select for this tier.
    rank : int
        Ordinal used for draw order; lower ranks are drawn first.
    description : Optional[str]
        Optional prize description shown to viewers.
    """

    tier: str
    name: str
    count: int
    rank: int
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "name": self.name,
            "count": self.count,
            "rank": self.rank,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, default_rank: int) -> "PrizeTier":
        rank = data.get("rank")
        return cls(
            tier=data["tier"],
            name=data["name"],
            count=int(data["count"]),
            rank=default_rank if rank is None else int(rank),
            description=data.get("description"),
        )


class DrawConfiguration(Base):
    """Prize schedule and rules for one event's lucky draw."""

    __tablename__ = "draw_configurations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    """Event the draw belongs to."""

    prize_tiers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    """Ordered list of serialized :class:`PrizeTier` dicts."""

    max_entries_per_participant: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )
    """Cap on entries held by a single participant fingerprint."""

    prevent_duplicate_winners: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    """When set, a participant can hold at most one non-forfeited win."""

    require_photo_upload: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    """When set, each entry must reference an approved photo of the event."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DrawStatus.SCHEDULED.value
    )
    """Lifecycle status, see :class:`DrawStatus`."""

    scheduled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Planned draw time shown to viewers; ``None`` means draw on demand."""

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    presentation: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    """Opaque client presentation preferences (animation, sound, confetti)."""

    total_entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Denormalized entry count refreshed whenever entries are added."""

    created_by: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    event: Mapped["Event"] = relationship(back_populates="draw_configurations")
    entries: Mapped[list["Entry"]] = relationship(
        back_populates="configuration", cascade="all, delete-orphan"
    )
    winners: Mapped[list["Winner"]] = relationship(
        back_populates="configuration", cascade="all, delete-orphan"
    )
    executions: Mapped[list["DrawExecution"]] = relationship(
        back_populates="configuration", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled','in_progress','completed','archived')",
            name="status_enum",
        ),
        CheckConstraint(
            "max_entries_per_participant >= 1", name="max_entries_positive"
        ),
        Index("ix_draw_configurations_event_status", "event_id", "status"),
    )

    def __init__(
        self,
        *,
        event: Optional["Event"] = None,
        event_id: Optional[int] = None,
        prize_tiers: Optional[list[PrizeTier]] = None,
        max_entries_per_participant: int = 1,
        prevent_duplicate_winners: bool = True,
        require_photo_upload: bool = True,
        status: DrawStatus = DrawStatus.SCHEDULED,
        scheduled_at: Optional[datetime] = None,
        presentation: Optional[dict] = None,
        created_by: Optional[int] = None,
    ) -> None:
        if event is not None:
            self.event = event
        if event_id is not None:
            self.event_id = event_id
        self.set_tiers(prize_tiers or [])
        self.max_entries_per_participant = max_entries_per_participant
        self.prevent_duplicate_winners = prevent_duplicate_winners
        self.require_photo_upload = require_photo_upload
        self.status = DrawStatus(status).value
        self.scheduled_at = scheduled_at
        self.presentation = presentation
        self.created_by = created_by
        self.total_entries = 0

    @property
    def draw_status(self) -> DrawStatus:
        return DrawStatus(self.status)

    @property
    def tiers(self) -> list[PrizeTier]:
        """Prize tiers in draw order (by rank, ties keep declared order)."""

        parsed = [
            PrizeTier.from_dict(raw, default_rank=position)
            for position, raw in enumerate(self.prize_tiers or [], start=1)
        ]
        return sorted(parsed, key=lambda tier: tier.rank)

    def set_tiers(self, tiers: list[PrizeTier]) -> None:
        # Reassign so the JSON column is flagged dirty.
        self.prize_tiers = [tier.to_dict() for tier in tiers]

    def get_tier(self, tier_id: str) -> Optional[PrizeTier]:
        for tier in self.tiers:
            if tier.tier == tier_id:
                return tier
        return None

    @property
    def total_prizes(self) -> int:
        return sum(tier.count for tier in self.tiers)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "prize_tiers": [tier.to_dict() for tier in self.tiers],
            "max_entries_per_participant": self.max_entries_per_participant,
            "prevent_duplicate_winners": self.prevent_duplicate_winners,
            "require_photo_upload": self.require_photo_upload,
            "status": self.status,
            "scheduled_at": dt_iso(self.scheduled_at),
            "completed_at": dt_iso(self.completed_at),
            "presentation": self.presentation or {},
            "total_entries": self.total_entries,
            "created_by": self.created_by,
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<DrawConfiguration(id={id}, event_id={event}, status={status})>".format(
            id=self.id, event=self.event_id, status=self.status
        )


class Entry(Base):
    """One ticket in a draw. A participant may hold several, up to the cap."""

    __tablename__ = "draw_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    configuration_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("draw_configurations.id", ondelete="CASCADE"),
        nullable=False,
    )
    participant_fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)
    """Opaque, stable participant identity; guests are identified by device fingerprint."""

    participant_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    photo_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("photos.id", ondelete="SET NULL"), nullable=True
    )
    contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="photo")
    """How the entry was created: ``"photo"`` (guest upload) or ``"manual"``."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    event: Mapped["Event"] = relationship(back_populates="entries")
    configuration: Mapped["DrawConfiguration"] = relationship(back_populates="entries")
    photo: Mapped[Optional["Photo"]] = relationship("Photo")
    winners: Mapped[list["Winner"]] = relationship(back_populates="entry")

    __table_args__ = (
        Index(
            "ix_draw_entries_configuration_fingerprint",
            "configuration_id",
            "participant_fingerprint",
        ),
        CheckConstraint("source IN ('photo','manual')", name="source_enum"),
    )

    def __init__(
        self,
        *,
        event_id: int,
        configuration_id: int,
        participant_fingerprint: str,
        participant_name: Optional[str] = None,
        photo_id: Optional[int] = None,
        contact: Optional[str] = None,
        source: str = "photo",
        created_at: Optional[datetime] = None,
    ) -> None:
        self.event_id = event_id
        self.configuration_id = configuration_id
        self.participant_fingerprint = participant_fingerprint
        self.participant_name = participant_name
        self.photo_id = photo_id
        self.contact = contact
        self.source = source
        if created_at is not None:
            self.created_at = created_at

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "configuration_id": self.configuration_id,
            "participant_fingerprint": self.participant_fingerprint,
            "participant_name": self.participant_name,
            "photo_id": self.photo_id,
            "source": self.source,
            "created_at": dt_iso(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Entry(id={id}, configuration_id={cfg}, fingerprint={fp})>".format(
            id=self.id, cfg=self.configuration_id, fp=self.participant_fingerprint
        )


class DrawExecution(Base):
    """Audit record of one draw or redraw run."""

    __tablename__ = "draw_executions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    configuration_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("draw_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False, default="draw")
    executed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    statistics: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    configuration: Mapped["DrawConfiguration"] = relationship(back_populates="executions")
    winners: Mapped[list["Winner"]] = relationship(back_populates="execution")

    __table_args__ = (
        CheckConstraint("kind IN ('draw','redraw')", name="kind_enum"),
    )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "configuration_id": self.configuration_id,
            "kind": self.kind,
            "executed_by": self.executed_by,
            "started_at": dt_iso(self.started_at),
            "completed_at": dt_iso(self.completed_at),
            "statistics": self.statistics or {},
        }


class Winner(Base):
    """A selected entry for one prize tier.

    Rows are append-only; only the claimed/forfeited status fields change.
    """

    __tablename__ = "draw_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    configuration_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("draw_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    execution_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_executions.id", ondelete="SET NULL"), nullable=True
    )
    entry_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draw_entries.id", ondelete="CASCADE"), nullable=False
    )
    tier: Mapped[str] = mapped_column(String(20), nullable=False)
    prize_name: Mapped[str] = mapped_column(String(255), nullable=False)
    prize_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tier_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    """Numeric tier rank broadcast to viewers."""

    selection_order: Mapped[int] = mapped_column(Integer, nullable=False)
    """1-based order in which winners were drawn within the configuration."""

    participant_name: Mapped[str] = mapped_column(String(100), nullable=False)
    selfie_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WinnerStatus.DRAWN.value
    )
    forfeit_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    forfeited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    replaced_by_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("draw_winners.id", ondelete="SET NULL"), nullable=True
    )
    drawn_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    configuration: Mapped["DrawConfiguration"] = relationship(back_populates="winners")
    execution: Mapped[Optional["DrawExecution"]] = relationship(back_populates="winners")
    entry: Mapped["Entry"] = relationship(back_populates="winners")
    replaced_by: Mapped[Optional["Winner"]] = relationship(
        "Winner", remote_side="Winner.id", post_update=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('drawn','claimed','forfeited')", name="status_enum"
        ),
        Index("ix_draw_winners_configuration_tier", "configuration_id", "tier"),
    )

    @property
    def is_forfeited(self) -> bool:
        return self.status == WinnerStatus.FORFEITED.value

    @property
    def is_claimed(self) -> bool:
        return self.status == WinnerStatus.CLAIMED.value

    @classmethod
    def next_selection_order(cls, session: Session, configuration_id: int) -> int:
        """Return the selection order to assign to the next winner."""

        orders = session.scalars(
            select(cls.selection_order).where(cls.configuration_id == configuration_id)
        ).all()
        return max(orders, default=0) + 1

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "configuration_id": self.configuration_id,
            "execution_id": self.execution_id,
            "entry_id": self.entry_id,
            "tier": self.tier,
            "prize_name": self.prize_name,
            "prize_description": self.prize_description,
            "tier_rank": self.tier_rank,
            "selection_order": self.selection_order,
            "participant_name": self.participant_name,
            "selfie_url": self.selfie_url,
            "status": self.status,
            "is_claimed": self.is_claimed,
            "is_forfeited": self.is_forfeited,
            "forfeit_reason": self.forfeit_reason,
            "forfeited_at": dt_iso(self.forfeited_at),
            "claimed_at": dt_iso(self.claimed_at),
            "replaced_by_id": self.replaced_by_id,
            "drawn_by": self.drawn_by,
            "drawn_at": dt_iso(self.drawn_at),
        }

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Winner(id={id}, tier={tier}, entry_id={entry}, status={status})>".format(
            id=self.id, tier=self.tier, entry=self.entry_id, status=self.status
        )


__all__ = [
    "ACTIVE_STATUSES",
    "DrawConfiguration",
    "DrawExecution",
    "DrawStatus",
    "Entry",
    "PrizeTier",
    "TIER_IDENTIFIERS",
    "Winner",
    "WinnerStatus",
]
