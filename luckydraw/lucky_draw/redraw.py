"""Redraw handler: replaces a forfeited winner with a fresh pick."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .engine import make_winner
from .entries import entries_for_configuration
from .selection import RandomSource, select_random
from ..errors import InvalidState, NoEntries, NotFound, ValidationError
from ..models import DrawConfiguration, DrawExecution, DrawStatus, Entry, Winner
from ..models.draw import WinnerStatus

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Winner unavailable"


@dataclass
class RedrawResult:
    """Outcome of a redraw.

    Attributes
    ----------
    new_winner : Winner
        The replacement winner for the tier.
    previous_winner : Winner
        The forfeited winner, now linked to ``new_winner``.
    """

    new_winner: Winner
    previous_winner: Winner


class RedrawHandler:
    """Forfeits one winner and draws a replacement for the same tier."""

    def __init__(self, session: Session, *, rng: Optional[RandomSource] = None) -> None:
        self._session = session
        self._rng = rng

    def redraw(
        self,
        configuration: DrawConfiguration,
        tier: str,
        previous_winner: Winner,
        reason: Optional[str] = None,
        redrawn_by: Optional[str] = None,
    ) -> RedrawResult:
        """Forfeit ``previous_winner`` and select a replacement.

        Parameters
        ----------
        configuration : DrawConfiguration
            The ``completed`` configuration the winner belongs to.
        tier : str
            Tier identifier being redrawn.
        previous_winner : Winner
            Winner giving up the prize.
        reason : Optional[str], default: None
            Why the prize was forfeited. Defaults to ``"Winner unavailable"``.
        redrawn_by : Optional[str], default: None
            Identifier of the operator performing the redraw.

        Returns
        -------
        RedrawResult
            The new winner and the forfeited one.

        Raises
        ------
        InvalidState
            If the configuration is not ``completed`` or the winner was
            already forfeited or claimed.
        NotFound
            If ``tier`` is not part of the configuration.
        ValidationError
            If the winner belongs to another configuration or tier.
        NoEntries
            If nobody is left to draw from. Nothing is modified in that case.
        """

        session = self._session
        if configuration.draw_status is not DrawStatus.COMPLETED:
            raise InvalidState("Redraw is only possible after the draw has completed")

        prize_tier = configuration.get_tier(tier)
        if prize_tier is None:
            raise NotFound(f"Prize tier not found: {tier}")

        if (
            previous_winner.configuration_id != configuration.id
            or previous_winner.tier != prize_tier.tier
        ):
            raise ValidationError("Winner does not belong to this draw tier")
        if previous_winner.is_forfeited:
            raise InvalidState("Winner has already been forfeited")
        if previous_winner.is_claimed:
            raise InvalidState("Winner has already claimed the prize")

        pool = self._candidate_pool(configuration, prize_tier.tier, previous_winner)
        if not pool:
            raise NoEntries("No eligible entries left for redraw")

        now = datetime.now(timezone.utc)
        previous_winner.status = WinnerStatus.FORFEITED.value
        previous_winner.forfeit_reason = (reason or "").strip() or DEFAULT_REASON
        previous_winner.forfeited_at = now

        execution = DrawExecution(
            configuration_id=configuration.id,
            kind="redraw",
            executed_by=redrawn_by,
            started_at=now,
        )
        session.add(execution)
        session.flush()

        picked = select_random(pool, 1, rng=self._rng)[0]
        new_winner = make_winner(
            session,
            configuration,
            prize_tier,
            picked,
            selection_order=Winner.next_selection_order(session, configuration.id),
            execution=execution,
            drawn_by=redrawn_by,
        )
        session.flush()

        previous_winner.replaced_by_id = new_winner.id
        execution.statistics = {
            "tier": prize_tier.tier,
            "eligible_entries": len(pool),
            "forfeited_winner_id": previous_winner.id,
            "new_winner_id": new_winner.id,
        }
        execution.completed_at = datetime.now(timezone.utc)
        session.flush()

        logger.info(
            "Redrew tier %s of configuration %s: winner %s replaced by %s (%s)",
            prize_tier.tier,
            configuration.id,
            previous_winner.id,
            new_winner.id,
            previous_winner.forfeit_reason,
        )
        return RedrawResult(new_winner=new_winner, previous_winner=previous_winner)

    def _candidate_pool(
        self,
        configuration: DrawConfiguration,
        tier: str,
        previous_winner: Winner,
    ) -> list[Entry]:
        """Entries still eligible to replace ``previous_winner``."""

        session = self._session
        forfeited_entry = session.get(Entry, previous_winner.entry_id)
        excluded_participants: set[str] = set()
        if forfeited_entry is not None:
            excluded_participants.add(forfeited_entry.participant_fingerprint)

        active_wins = session.execute(
            select(Winner.entry_id, Winner.tier, Entry.participant_fingerprint)
            .join(Entry, Winner.entry_id == Entry.id)
            .where(
                Winner.configuration_id == configuration.id,
                Winner.status != WinnerStatus.FORFEITED.value,
                Winner.id != previous_winner.id,
            )
        ).all()

        excluded_entries = {previous_winner.entry_id}
        for entry_id, won_tier, fingerprint in active_wins:
            if won_tier == tier:
                excluded_entries.add(entry_id)
            if configuration.prevent_duplicate_winners:
                excluded_participants.add(fingerprint)

        return [
            entry
            for entry in entries_for_configuration(
                session, configuration.id, excluded_participants
            )
            if entry.id not in excluded_entries
        ]


__all__ = ["DEFAULT_REASON", "RedrawHandler", "RedrawResult"]
