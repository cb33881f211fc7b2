"""Draw configuration management: tier validation, upsert and status transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from ..db.utils import as_utc
from ..errors import InvalidState, ValidationError
from ..models import DrawConfiguration, DrawStatus, Event, PrizeTier
from ..models.draw import ACTIVE_STATUSES, TIER_IDENTIFIERS

logger = logging.getLogger(__name__)

TierInput = Union[PrizeTier, Mapping[str, Any]]


@dataclass(frozen=True)
class DrawRules:
    """Draw-wide rules applied to entries and winner selection.

    Attributes
    ----------
    max_entries_per_participant : int
        Maximum number of entries a single fingerprint may hold (>= 1).
    prevent_duplicate_winners : bool
        When ``True`` a participant can win at most one tier.
    require_photo_upload : bool
        When ``True`` every entry must reference an approved event photo.
    scheduled_at : Optional[datetime]
        Planned draw time; informational only.
    """

    max_entries_per_participant: int = 1
    prevent_duplicate_winners: bool = True
    require_photo_upload: bool = True
    scheduled_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DrawRules":
        """Build rules from request values, falling back to defaults."""

        data = data or {}
        if not isinstance(data, Mapping):
            raise ValidationError("Draw rules must be an object")

        def flag(name: str) -> Any:
            value = data.get(name)
            return True if value is None else value

        max_entries = data.get("max_entries_per_participant")
        return cls(
            max_entries_per_participant=1 if max_entries is None else max_entries,
            prevent_duplicate_winners=flag("prevent_duplicate_winners"),
            require_photo_upload=flag("require_photo_upload"),
            scheduled_at=_parse_scheduled_at(data.get("scheduled_at")),
        )

    def validate(self) -> None:
        value = self.max_entries_per_participant
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("max_entries_per_participant must be an integer")
        if value < 1:
            raise ValidationError("max_entries_per_participant must be at least 1")
        for name in ("prevent_duplicate_winners", "require_photo_upload"):
            if not isinstance(getattr(self, name), bool):
                raise ValidationError(f"{name} must be true or false")
        if self.scheduled_at is not None and not isinstance(self.scheduled_at, datetime):
            raise ValidationError("scheduled_at must be a datetime")


def _parse_scheduled_at(value: Any) -> Any:
    """Turn an ISO 8601 string into an aware UTC datetime.

    Other values are returned unchanged for :meth:`DrawRules.validate` to check.
    """

    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.endswith(("Z", "z")):
        # fromisoformat only accepts a trailing Z from Python 3.11 on
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid scheduled_at: {value!r}") from None
    return as_utc(parsed)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def parse_tiers(raw_tiers: Optional[Iterable[TierInput]]) -> list[PrizeTier]:
    """Validate prize tier input and return :class:`PrizeTier` objects.

    Each tier needs a recognised identifier, a non-empty name and a winner
    count of at least one. Ranks default to the 1-based position in the
    declared list; identifiers and ranks must be unique.

    Raises
    ------
    ValidationError
        If the list is empty or any tier violates a constraint.
    """

    if raw_tiers is None:
        raise ValidationError("At least one prize tier is required")
    if isinstance(raw_tiers, (str, bytes, Mapping)) or not isinstance(raw_tiers, Iterable):
        raise ValidationError("Prize tiers must be a list")

    tiers: list[PrizeTier] = []
    seen_ids: set[str] = set()
    seen_ranks: set[int] = set()
    for position, raw in enumerate(raw_tiers, start=1):
        if isinstance(raw, PrizeTier):
            data = raw.to_dict()
        elif isinstance(raw, Mapping):
            data = dict(raw)
        else:
            raise ValidationError(f"Invalid prize tier at position {position}")

        tier_id = data.get("tier")
        if tier_id not in TIER_IDENTIFIERS:
            raise ValidationError(f"Invalid prize tier: {tier_id!r}")
        if tier_id in seen_ids:
            raise ValidationError(f"Duplicate prize tier: {tier_id}")

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"Prize name is required for tier: {tier_id}")

        count = data.get("count")
        if not _is_positive_int(count):
            raise ValidationError(f"Prize count must be positive for tier: {tier_id}")

        rank = data.get("rank", position)
        if rank is None:
            rank = position
        if not _is_positive_int(rank):
            raise ValidationError(f"Prize rank must be a positive integer for tier: {tier_id}")
        if rank in seen_ranks:
            raise ValidationError(f"Duplicate prize rank: {rank}")

        description = data.get("description")
        seen_ids.add(tier_id)
        seen_ranks.add(rank)
        tiers.append(
            PrizeTier(
                tier=tier_id,
                name=name.strip(),
                count=count,
                rank=rank,
                description=description.strip() if isinstance(description, str) else None,
            )
        )

    if not tiers:
        raise ValidationError("At least one prize tier is required")
    return tiers


def get_active_configuration(
    session: Session, event_id: int
) -> Optional[DrawConfiguration]:
    """Return the event's ``scheduled`` or ``completed`` configuration.

    A ``scheduled`` configuration is preferred; among equals the newest wins.
    """

    candidates = session.scalars(
        select(DrawConfiguration)
        .where(
            DrawConfiguration.event_id == event_id,
            DrawConfiguration.status.in_(ACTIVE_STATUSES),
        )
        .order_by(DrawConfiguration.created_at.desc(), DrawConfiguration.id.desc())
    ).all()
    for configuration in candidates:
        if configuration.draw_status is DrawStatus.SCHEDULED:
            return configuration
    return candidates[0] if candidates else None


def get_latest_configuration(
    session: Session, event_id: int
) -> Optional[DrawConfiguration]:
    """Return the active configuration, else the newest one of any status."""

    active = get_active_configuration(session, event_id)
    if active is not None:
        return active
    return session.scalars(
        select(DrawConfiguration)
        .where(DrawConfiguration.event_id == event_id)
        .order_by(DrawConfiguration.created_at.desc(), DrawConfiguration.id.desc())
        .limit(1)
    ).first()


def _has_configuration_in_progress(session: Session, event_id: int) -> bool:
    return (
        session.scalar(
            select(DrawConfiguration.id).where(
                DrawConfiguration.event_id == event_id,
                DrawConfiguration.status == DrawStatus.IN_PROGRESS.value,
            )
        )
        is not None
    )


def create_or_update_configuration(
    session: Session,
    event: Event,
    tiers: Iterable[TierInput],
    rules: Optional[DrawRules] = None,
    *,
    presentation: Optional[Mapping[str, Any]] = None,
    created_by: Optional[int] = None,
) -> DrawConfiguration:
    """Create the event's draw configuration or update the scheduled one.

    An event has at most one active configuration: while it is ``scheduled``
    it is edited in place. Once a draw has run, the completed configuration
    must be archived before a new one can be created.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    event : Event
        Persisted event the draw belongs to.
    tiers : Iterable[TierInput]
        Prize tiers in the order they should be drawn.
    rules : Optional[DrawRules], default: None
        Draw-wide rules; defaults to :class:`DrawRules` defaults.
    presentation : Optional[Mapping[str, Any]], default: None
        Opaque client presentation preferences. Left unchanged on update
        when omitted.
    created_by : Optional[int], default: None
        Id of the user creating the configuration.

    Returns
    -------
    DrawConfiguration
        The created or updated configuration.

    Raises
    ------
    ValidationError
        If the tiers or rules are invalid.
    InvalidState
        If the active configuration has already been drawn or is being drawn.
    """

    if event.id is None:
        raise ValueError("Event must be persisted before configuring a draw")

    parsed_tiers = parse_tiers(tiers)
    rules = rules or DrawRules()
    rules.validate()

    if _has_configuration_in_progress(session, event.id):
        raise InvalidState("A draw is currently in progress for this event")

    configuration = get_active_configuration(session, event.id)
    if configuration is not None and configuration.draw_status is not DrawStatus.SCHEDULED:
        raise InvalidState(
            "The draw for this event has already been completed; archive it before "
            "configuring a new one"
        )

    if configuration is None:
        configuration = DrawConfiguration(
            event_id=event.id,
            prize_tiers=parsed_tiers,
            max_entries_per_participant=rules.max_entries_per_participant,
            prevent_duplicate_winners=rules.prevent_duplicate_winners,
            require_photo_upload=rules.require_photo_upload,
            scheduled_at=rules.scheduled_at,
            presentation=dict(presentation) if presentation is not None else None,
            created_by=created_by,
        )
        session.add(configuration)
        session.flush()
        logger.info(
            "Created draw configuration %s for event %s with %d tier(s)",
            configuration.id,
            event.id,
            len(parsed_tiers),
        )
        return configuration

    configuration.set_tiers(parsed_tiers)
    configuration.max_entries_per_participant = rules.max_entries_per_participant
    configuration.prevent_duplicate_winners = rules.prevent_duplicate_winners
    configuration.require_photo_upload = rules.require_photo_upload
    configuration.scheduled_at = rules.scheduled_at
    if presentation is not None:
        configuration.presentation = dict(presentation)
    configuration.updated_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Updated draw configuration %s for event %s", configuration.id, event.id)
    return configuration


def transition_status(
    session: Session,
    configuration: DrawConfiguration,
    target: DrawStatus,
) -> DrawConfiguration:
    """Move ``configuration`` to ``target`` with a compare-and-swap update.

    The UPDATE only matches while the row still holds the status the caller
    observed, so two concurrent callers cannot both leave ``scheduled``.

    Raises
    ------
    InvalidState
        If the transition is not allowed or another caller changed the status
        first.
    """

    current = configuration.draw_status
    target = DrawStatus(target)
    if not current.can_transition_to(target):
        raise InvalidState(
            f"Cannot move draw from '{current.value}' to '{target.value}'"
        )

    now = datetime.now(timezone.utc)
    values: dict[str, Any] = {"status": target.value, "updated_at": now}
    if target is DrawStatus.COMPLETED:
        values["completed_at"] = now

    result = session.execute(
        update(DrawConfiguration)
        .where(
            DrawConfiguration.id == configuration.id,
            DrawConfiguration.status == current.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidState(
            f"Draw is no longer '{current.value}'; it was changed by another request"
        )

    for key, value in values.items():
        set_committed_value(configuration, key, value)
    logger.debug(
        "Draw configuration %s moved %s -> %s", configuration.id, current.value, target.value
    )
    return configuration


def archive_configuration(
    session: Session, configuration: DrawConfiguration
) -> DrawConfiguration:
    """Retire a scheduled or completed configuration."""

    return transition_status(session, configuration, DrawStatus.ARCHIVED)


__all__ = [
    "DrawRules",
    "archive_configuration",
    "create_or_update_configuration",
    "get_active_configuration",
    "get_latest_configuration",
    "parse_tiers",
    "transition_status",
]
