"""Winner queries, claiming and draw statistics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import InvalidState, NotFound
from ..models import DrawConfiguration, DrawExecution, Entry, Winner
from ..models.draw import WinnerStatus

logger = logging.getLogger(__name__)


def list_winners(
    session: Session,
    configuration: DrawConfiguration,
    *,
    include_forfeited: bool = True,
) -> list[Winner]:
    """Return the configuration's winners in selection order."""

    stmt = select(Winner).where(Winner.configuration_id == configuration.id)
    if not include_forfeited:
        stmt = stmt.where(Winner.status != WinnerStatus.FORFEITED.value)
    return list(session.scalars(stmt.order_by(Winner.selection_order.asc())).all())


def get_winner(
    session: Session, configuration: DrawConfiguration, winner_id: int
) -> Winner:
    """Return winner ``winner_id`` of ``configuration``.

    Raises
    ------
    NotFound
        If no such winner exists in the configuration.
    """

    winner = session.scalar(
        select(Winner).where(
            Winner.id == winner_id, Winner.configuration_id == configuration.id
        )
    )
    if winner is None:
        raise NotFound("Winner not found")
    return winner


def mark_winner_claimed(session: Session, winner: Winner) -> Winner:
    """Record that ``winner`` collected the prize.

    Claiming twice is a no-op. A forfeited winner cannot claim.
    """

    if winner.is_forfeited:
        raise InvalidState("A forfeited winner cannot claim the prize")
    if winner.is_claimed:
        return winner

    winner.status = WinnerStatus.CLAIMED.value
    winner.claimed_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Winner %s claimed %s prize", winner.id, winner.tier)
    return winner


def list_executions(
    session: Session, configuration: DrawConfiguration
) -> list[DrawExecution]:
    """Return draw and redraw runs of ``configuration``, oldest first."""

    return list(
        session.scalars(
            select(DrawExecution)
            .where(DrawExecution.configuration_id == configuration.id)
            .order_by(DrawExecution.started_at.asc(), DrawExecution.id.asc())
        ).all()
    )


def draw_statistics(session: Session, event_id: int) -> dict[str, Any]:
    """Summarize lucky draw activity across all configurations of an event.

    Returns
    -------
    dict[str, Any]
        ``total_entries``, ``unique_participants``, ``total_draws`` (completed
        draw runs, redraws excluded) and ``total_winners`` (non-forfeited).
    """

    total_entries = session.scalar(
        select(func.count(Entry.id)).where(Entry.event_id == event_id)
    ) or 0
    unique_participants = session.scalar(
        select(func.count(func.distinct(Entry.participant_fingerprint))).where(
            Entry.event_id == event_id
        )
    ) or 0
    total_draws = session.scalar(
        select(func.count(DrawExecution.id))
        .join(DrawConfiguration, DrawExecution.configuration_id == DrawConfiguration.id)
        .where(
            DrawConfiguration.event_id == event_id,
            DrawExecution.kind == "draw",
            DrawExecution.completed_at.is_not(None),
        )
    ) or 0
    total_winners = session.scalar(
        select(func.count(Winner.id)).where(
            Winner.event_id == event_id,
            Winner.status != WinnerStatus.FORFEITED.value,
        )
    ) or 0

    return {
        "total_entries": total_entries,
        "unique_participants": unique_participants,
        "total_draws": total_draws,
        "total_winners": total_winners,
    }


__all__ = [
    "draw_statistics",
    "get_winner",
    "list_executions",
    "list_winners",
    "mark_winner_claimed",
]
