"""Draw executor: selects winners for every prize tier of a configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from .configuration import transition_status
from .entries import entries_for_configuration
from .fingerprint import display_fallback
from .selection import RandomSource, select_random
from ..errors import InvalidState, NoEntries
from ..models import DrawConfiguration, DrawExecution, DrawStatus, Entry, PrizeTier, Winner
from ..models.event import Photo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierOutcome:
    """How many winners one tier asked for and how many it got."""

    tier: str
    requested: int
    selected: int

    @property
    def partial(self) -> bool:
        return 0 < self.selected < self.requested

    @property
    def fulfilled(self) -> bool:
        return self.selected >= self.requested

    @property
    def unfulfilled(self) -> bool:
        return self.selected == 0 and self.requested > 0

    def to_json(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "requested": self.requested,
            "selected": self.selected,
        }


@dataclass
class DrawStatistics:
    """Summary of a draw run.

    Attributes
    ----------
    total_entries : int
        Entries held by the configuration when the draw started.
    eligible_entries : int
        Entries that took part in selection.
    unique_participants : int
        Distinct fingerprints among the eligible entries.
    winners_selected : int
        Winners created by this run.
    tiers : list[TierOutcome]
        Per-tier requested and selected counts in draw order.
    """

    total_entries: int = 0
    eligible_entries: int = 0
    unique_participants: int = 0
    winners_selected: int = 0
    tiers: list[TierOutcome] = field(default_factory=list)

    @property
    def tiers_fulfilled(self) -> int:
        return sum(1 for outcome in self.tiers if outcome.fulfilled)

    @property
    def tiers_partially_fulfilled(self) -> int:
        return sum(1 for outcome in self.tiers if outcome.partial)

    @property
    def tiers_unfulfilled(self) -> int:
        return sum(1 for outcome in self.tiers if outcome.unfulfilled)

    def to_json(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "eligible_entries": self.eligible_entries,
            "unique_participants": self.unique_participants,
            "winners_selected": self.winners_selected,
            "tiers_fulfilled": self.tiers_fulfilled,
            "tiers_partially_fulfilled": self.tiers_partially_fulfilled,
            "tiers_unfulfilled": self.tiers_unfulfilled,
            "tiers": [outcome.to_json() for outcome in self.tiers],
        }


@dataclass
class DrawResult:
    """Value object returned by :meth:`DrawExecutor.execute`.

    Attributes
    ----------
    winners : list[Winner]
        Winners in selection order (tier by tier, in rank order).
    statistics : DrawStatistics
        Counts describing the run.
    execution : DrawExecution
        Persisted audit record of the run.
    """

    winners: list[Winner]
    statistics: DrawStatistics
    execution: DrawExecution


def winner_display_name(entry: Entry, photo: Optional[Photo]) -> str:
    """Pick the name shown for a winner.

    The entry's own name wins, then the contributor name on the backing
    photo, then a short form of the fingerprint.
    """

    if entry.participant_name:
        return entry.participant_name
    if photo is not None and photo.contributor_name:
        return photo.contributor_name
    return display_fallback(entry.participant_fingerprint)


def make_winner(
    session: Session,
    configuration: DrawConfiguration,
    tier: PrizeTier,
    entry: Entry,
    *,
    selection_order: int,
    execution: Optional[DrawExecution],
    drawn_by: Optional[str],
) -> Winner:
    """Create and add a :class:`Winner` row for ``entry`` in ``tier``."""

    photo = session.get(Photo, entry.photo_id) if entry.photo_id is not None else None
    winner = Winner(
        event_id=configuration.event_id,
        configuration_id=configuration.id,
        execution_id=execution.id if execution is not None else None,
        entry_id=entry.id,
        tier=tier.tier,
        prize_name=tier.name,
        prize_description=tier.description,
        tier_rank=tier.rank,
        selection_order=selection_order,
        participant_name=winner_display_name(entry, photo),
        selfie_url=(photo.full_url or "") if photo is not None else "",
        drawn_by=drawn_by,
        drawn_at=datetime.now(timezone.utc),
    )
    session.add(winner)
    return winner


class DrawExecutor:
    """Runs a scheduled draw to completion inside the caller's transaction."""

    def __init__(self, session: Session, *, rng: Optional[RandomSource] = None) -> None:
        """Bind the executor to a session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session. The caller owns the transaction; any
            exception raised by :meth:`execute` leaves it to be rolled back.
        rng : Optional[RandomSource], default: None
            Random source for selection. Defaults to the OS CSPRNG.
        """

        self._session = session
        self._rng = rng

    def execute(
        self,
        configuration: DrawConfiguration,
        executed_by: Optional[str] = None,
    ) -> DrawResult:
        """Select winners for every tier of ``configuration``.

        Parameters
        ----------
        configuration : DrawConfiguration
            A ``scheduled`` configuration with at least one entry.
        executed_by : Optional[str], default: None
            Identifier of the operator running the draw.

        Returns
        -------
        DrawResult
            Winners, statistics and the execution record.

        Notes
        -----
        The run proceeds as follows:

        1. Check the configuration is ``scheduled`` and has entries.
        2. Move it to ``in_progress`` with a compare-and-swap update, so a
           second concurrent execution fails instead of drawing twice.
        3. Draw tiers in rank order. Each entry is one ticket; with duplicate
           prevention on, participants who already won are removed from the
           pool and no tier picks the same participant twice.
        4. Persist winners and statistics, then move to ``completed``.

        A tier whose pool runs short keeps the winners it could draw.

        Raises
        ------
        InvalidState
            If the configuration is not ``scheduled`` or another caller
            started the draw first.
        NoEntries
            If the configuration has no entries.
        """

        session = self._session
        if configuration.draw_status is not DrawStatus.SCHEDULED:
            raise InvalidState(
                f"Draw cannot be executed while '{configuration.status}'"
            )
        tiers = configuration.tiers
        if not tiers:
            raise InvalidState("Draw configuration has no prize tiers")

        entries = entries_for_configuration(session, configuration.id)
        if not entries:
            raise NoEntries("No entries available for this draw")

        transition_status(session, configuration, DrawStatus.IN_PROGRESS)
        started_at = datetime.now(timezone.utc)
        execution = DrawExecution(
            configuration_id=configuration.id,
            kind="draw",
            executed_by=executed_by,
            started_at=started_at,
        )
        session.add(execution)
        session.flush()
        logger.info(
            "Starting draw %s for configuration %s (%d entries, %d tier(s))",
            execution.id,
            configuration.id,
            len(entries),
            len(tiers),
        )

        prevent_duplicates = configuration.prevent_duplicate_winners
        statistics = DrawStatistics(
            total_entries=len(entries),
            eligible_entries=len(entries),
            unique_participants=len({e.participant_fingerprint for e in entries}),
        )
        already_won: set[str] = set()
        next_order = Winner.next_selection_order(session, configuration.id)
        winners: list[Winner] = []

        for tier in tiers:
            if prevent_duplicates:
                pool = [e for e in entries if e.participant_fingerprint not in already_won]
            else:
                pool = entries
            picked = select_random(
                pool,
                tier.count,
                rng=self._rng,
                distinct_by=(
                    (lambda e: e.participant_fingerprint) if prevent_duplicates else None
                ),
            )
            for entry in picked:
                winners.append(
                    make_winner(
                        session,
                        configuration,
                        tier,
                        entry,
                        selection_order=next_order,
                        execution=execution,
                        drawn_by=executed_by,
                    )
                )
                next_order += 1
                already_won.add(entry.participant_fingerprint)

            outcome = TierOutcome(tier=tier.tier, requested=tier.count, selected=len(picked))
            statistics.tiers.append(outcome)
            if not outcome.fulfilled:
                logger.warning(
                    "Tier %s of configuration %s drew %d of %d winner(s)",
                    tier.tier,
                    configuration.id,
                    outcome.selected,
                    outcome.requested,
                )
            else:
                logger.debug("Tier %s drew %d winner(s)", tier.tier, outcome.selected)

        statistics.winners_selected = len(winners)
        execution.statistics = statistics.to_json()
        execution.completed_at = datetime.now(timezone.utc)
        session.flush()

        transition_status(session, configuration, DrawStatus.COMPLETED)
        logger.info(
            "Draw %s completed for configuration %s: %d winner(s) from %d entries",
            execution.id,
            configuration.id,
            len(winners),
            len(entries),
        )
        return DrawResult(winners=winners, statistics=statistics, execution=execution)


__all__ = [
    "DrawExecutor",
    "DrawResult",
    "DrawStatistics",
    "TierOutcome",
    "make_winner",
    "winner_display_name",
]
