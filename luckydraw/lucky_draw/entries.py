"""Entry registry: entry creation and eligible pool queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .configuration import get_active_configuration
from .fingerprint import generate_manual_fingerprint, normalize_fingerprint
from ..db.utils import as_utc, dt_iso
from ..errors import InvalidState, LimitExceeded, NotFound, ValidationError
from ..models import DrawConfiguration, DrawStatus, Entry, Event, Photo, Winner
from ..models.draw import WinnerStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Participant:
    """Identity of someone holding entries.

    ``fingerprint`` is an opaque stable identifier; it is not necessarily a
    verified account id since guests enter anonymously.
    """

    fingerprint: str
    display_name: Optional[str] = None
    contact: Optional[str] = None


def _require_open_configuration(session: Session, event: Event) -> DrawConfiguration:
    configuration = get_active_configuration(session, event.id)
    if configuration is None:
        raise NotFound("No active draw configuration found for this event")
    if configuration.draw_status is not DrawStatus.SCHEDULED:
        raise InvalidState("The draw for this event is no longer accepting entries")
    return configuration


def _resolve_photo(
    session: Session,
    event: Event,
    configuration: DrawConfiguration,
    photo_id: Optional[int],
    *,
    required: bool,
) -> Optional[Photo]:
    """Validate the photo backing an entry, if any."""

    if photo_id is None:
        if required:
            raise ValidationError("A photo upload is required to enter this draw")
        return None

    photo = session.get(Photo, photo_id)
    if photo is None:
        raise NotFound("Photo not found")
    if photo.event_id != event.id:
        raise ValidationError("Photo does not belong to this event")
    if configuration.require_photo_upload and not photo.is_approved:
        raise ValidationError("Photo must be approved before it can enter the draw")
    return photo


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned[:100] or None


def count_participant_entries(
    session: Session, configuration_id: int, fingerprint: str
) -> int:
    return session.scalar(
        select(func.count(Entry.id)).where(
            Entry.configuration_id == configuration_id,
            Entry.participant_fingerprint == fingerprint,
        )
    ) or 0


def count_entries(session: Session, configuration: DrawConfiguration) -> int:
    return session.scalar(
        select(func.count(Entry.id)).where(Entry.configuration_id == configuration.id)
    ) or 0


def _refresh_total_entries(session: Session, configuration: DrawConfiguration) -> None:
    session.flush()
    configuration.total_entries = count_entries(session, configuration)


def create_entry(
    session: Session,
    event: Event,
    participant: Participant,
    *,
    photo_id: Optional[int] = None,
    source: str = "photo",
) -> Entry:
    """Record one entry for ``participant`` in the event's scheduled draw.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    event : Event
        Persisted event whose active draw receives the entry.
    participant : Participant
        Who is entering. The fingerprint identifies them across entries.
    photo_id : Optional[int], default: None
        Photo backing the entry; required when the draw demands photo uploads.
    source : str, default: "photo"
        ``"photo"`` for guest uploads, ``"manual"`` for organizer entries.

    Returns
    -------
    Entry
        The persisted entry.

    Raises
    ------
    NotFound
        If the event has no active configuration or the photo does not exist.
    InvalidState
        If the active draw has already been executed.
    ValidationError
        If the fingerprint is blank or the photo requirement is not met.
    LimitExceeded
        If the participant already holds the maximum number of entries.
    """

    configuration = _require_open_configuration(session, event)
    fingerprint = normalize_fingerprint(participant.fingerprint)
    photo = _resolve_photo(
        session, event, configuration, photo_id, required=configuration.require_photo_upload
    )

    existing = count_participant_entries(session, configuration.id, fingerprint)
    if existing >= configuration.max_entries_per_participant:
        raise LimitExceeded("Maximum entries per participant reached")

    name = _clean_name(participant.display_name)
    if name is None and photo is not None:
        name = _clean_name(photo.contributor_name)

    entry = Entry(
        event_id=event.id,
        configuration_id=configuration.id,
        participant_fingerprint=fingerprint,
        participant_name=name,
        photo_id=photo.id if photo is not None else None,
        contact=participant.contact,
        source=source,
    )
    session.add(entry)
    _refresh_total_entries(session, configuration)
    logger.info(
        "Recorded %s entry %s for configuration %s (%d/%d for participant)",
        source,
        entry.id,
        configuration.id,
        existing + 1,
        configuration.max_entries_per_participant,
    )
    return entry


def create_manual_entries(
    session: Session,
    event: Event,
    participant_name: str,
    *,
    fingerprint: Optional[str] = None,
    photo_id: Optional[int] = None,
    contact: Optional[str] = None,
    entry_count: int = 1,
) -> tuple[list[Entry], str]:
    """Add ``entry_count`` organizer-created entries for one participant.

    A participant without a fingerprint receives a generated ``manual_`` one,
    which is returned so further entries can be added for the same person.
    The whole batch is rejected when it would exceed the entry cap.
    """

    configuration = _require_open_configuration(session, event)

    name = _clean_name(participant_name)
    if name is None:
        raise ValidationError("Participant name is required")
    if isinstance(entry_count, bool) or not isinstance(entry_count, int) or entry_count < 1:
        raise ValidationError("entry_count must be a positive integer")

    resolved = (
        normalize_fingerprint(fingerprint)
        if fingerprint is not None
        else generate_manual_fingerprint()
    )
    photo = _resolve_photo(session, event, configuration, photo_id, required=False)

    existing = count_participant_entries(session, configuration.id, resolved)
    if existing + entry_count > configuration.max_entries_per_participant:
        raise LimitExceeded("Maximum entries per participant reached")

    entries = [
        Entry(
            event_id=event.id,
            configuration_id=configuration.id,
            participant_fingerprint=resolved,
            participant_name=name,
            photo_id=photo.id if photo is not None else None,
            contact=contact,
            source="manual",
        )
        for _ in range(entry_count)
    ]
    session.add_all(entries)
    _refresh_total_entries(session, configuration)
    logger.info(
        "Added %d manual entr%s for configuration %s",
        entry_count,
        "y" if entry_count == 1 else "ies",
        configuration.id,
    )
    return entries, resolved


def entries_for_configuration(
    session: Session,
    configuration_id: int,
    exclude_participants: Iterable[str] = (),
) -> list[Entry]:
    """Return all entries of a configuration, oldest first, minus excluded fingerprints."""

    excluded = set(exclude_participants)
    stmt = (
        select(Entry)
        .where(Entry.configuration_id == configuration_id)
        .order_by(Entry.created_at.asc(), Entry.id.asc())
    )
    if excluded:
        stmt = stmt.where(Entry.participant_fingerprint.not_in(excluded))
    return list(session.scalars(stmt).all())


def list_eligible_entries(
    session: Session,
    event_id: int,
    exclude_participants: Iterable[str] = (),
) -> list[Entry]:
    """Return the entries of the event's active configuration.

    Entries held by any fingerprint in ``exclude_participants`` are omitted.
    An event without an active configuration has no eligible entries.
    """

    configuration = get_active_configuration(session, event_id)
    if configuration is None:
        return []
    return entries_for_configuration(session, configuration.id, exclude_participants)


def list_entries(
    session: Session,
    configuration: DrawConfiguration,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[Entry]:
    """Page through a configuration's entries, newest first."""

    stmt = (
        select(Entry)
        .where(Entry.configuration_id == configuration.id)
        .order_by(Entry.created_at.desc(), Entry.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit).offset(max(offset, 0))
    return list(session.scalars(stmt).all())


def summarize_participants(
    session: Session, configuration: DrawConfiguration
) -> list[dict[str, Any]]:
    """Group a configuration's entries by participant.

    Rows are sorted by entry count (highest first), then by first entry time.
    """

    entries = entries_for_configuration(session, configuration.id)
    wins = session.execute(
        select(Entry.participant_fingerprint, Winner.tier)
        .join(Winner, Winner.entry_id == Entry.id)
        .where(
            Winner.configuration_id == configuration.id,
            Winner.status != WinnerStatus.FORFEITED.value,
        )
        .order_by(Winner.selection_order.asc())
    ).all()
    tier_by_fingerprint: dict[str, str] = {}
    for fingerprint, tier in wins:
        tier_by_fingerprint.setdefault(fingerprint, tier)

    grouped: dict[str, list[Entry]] = {}
    for entry in entries:
        grouped.setdefault(entry.participant_fingerprint, []).append(entry)

    rows: list[dict[str, Any]] = []
    for fingerprint, held in grouped.items():
        timestamps = [as_utc(entry.created_at) for entry in held]
        name = next((e.participant_name for e in held if e.participant_name), None)
        rows.append(
            {
                "participant_fingerprint": fingerprint,
                "participant_name": name,
                "entry_count": len(held),
                "is_winner": fingerprint in tier_by_fingerprint,
                "prize_tier": tier_by_fingerprint.get(fingerprint),
                "first_entry_at": min(timestamps),
                "last_entry_at": max(timestamps),
            }
        )

    rows.sort(key=lambda row: (-row["entry_count"], row["first_entry_at"]))
    for row in rows:
        row["first_entry_at"] = dt_iso(row["first_entry_at"])
        row["last_entry_at"] = dt_iso(row["last_entry_at"])
    return rows


def participant_entry_statistics(
    session: Session, event_id: int, fingerprint: str
) -> dict[str, Any]:
    """Return how many entries a participant holds and whether they won."""

    fingerprint = normalize_fingerprint(fingerprint)
    entry_count = session.scalar(
        select(func.count(Entry.id)).where(
            Entry.event_id == event_id,
            Entry.participant_fingerprint == fingerprint,
        )
    ) or 0
    win = session.scalar(
        select(Winner.id)
        .join(Entry, Winner.entry_id == Entry.id)
        .where(
            Entry.event_id == event_id,
            Entry.participant_fingerprint == fingerprint,
            Winner.status != WinnerStatus.FORFEITED.value,
        )
        .limit(1)
    )
    return {"entry_count": entry_count, "has_won": win is not None}


__all__ = [
    "Participant",
    "count_entries",
    "count_participant_entries",
    "create_entry",
    "create_manual_entries",
    "entries_for_configuration",
    "list_eligible_entries",
    "list_entries",
    "participant_entry_statistics",
    "summarize_participants",
]
