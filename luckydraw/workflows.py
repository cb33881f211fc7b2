"""Lucky draw operations exposed to the API layer.

Every operation takes a ``sessionmaker`` and runs in a single transaction.
Broadcasts go out only after that transaction commits, so viewers never see a
winner that was rolled back.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .broadcast.api import default_publisher
from .broadcast.payloads import (
    DRAW_STARTED,
    DRAW_WINNER,
    draw_started_payload,
    winner_payload,
)
from .errors import (
    INTERNAL_ERROR_PAYLOAD,
    INTERNAL_ERROR_STATUS,
    FeatureDisabled,
    Forbidden,
    LuckyDrawError,
    NotFound,
)
from .lucky_draw import configuration as draw_config
from .lucky_draw import entries as draw_entries
from .lucky_draw import winners as draw_winners
from .lucky_draw.configuration import DrawRules
from .lucky_draw.engine import DrawExecutor
from .lucky_draw.entries import Participant
from .lucky_draw.redraw import RedrawHandler
from .lucky_draw.selection import RandomSource
from .models import DrawConfiguration, Event, User

if TYPE_CHECKING:
    from .broadcast.api import Publisher

logger = logging.getLogger(__name__)


def _authorize(actor: Optional[User], tenant_id: str) -> None:
    """Allow organizers of the tenant and super admins of any tenant."""

    if actor is None or not actor.is_draw_operator:
        raise Forbidden("Only organizers can manage the lucky draw")
    if actor.tenant_id != tenant_id and not actor.is_super_admin:
        raise Forbidden("You do not have access to this event")


def _load_event(session: Session, tenant_id: str, event_id: int) -> Event:
    event = Event.get_for_tenant(session, tenant_id, event_id)
    if event is None:
        raise NotFound("Event not found")
    if not event.lucky_draw_enabled:
        raise FeatureDisabled("Lucky draw is disabled for this event")
    return event


def _load_configuration(
    session: Session, event: Event, config_id: Optional[int]
) -> DrawConfiguration:
    """Return configuration ``config_id`` of ``event``, or its latest one."""

    if config_id is None:
        configuration = draw_config.get_latest_configuration(session, event.id)
    else:
        configuration = session.scalar(
            select(DrawConfiguration).where(
                DrawConfiguration.id == config_id,
                DrawConfiguration.event_id == event.id,
            )
        )
    if configuration is None:
        raise NotFound("Draw configuration not found")
    return configuration


def _actor_ref(actor: User) -> str:
    return str(actor.id) if actor.id is not None else actor.email


def execute_draw(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    config_id: Optional[int] = None,
    publisher: Optional["Publisher"] = None,
    rng: Optional[RandomSource] = None,
) -> dict[str, Any]:
    """Run the event's scheduled draw and announce the winners.

    Parameters
    ----------
    Session : sessionmaker
        Factory for the transaction the draw runs in.
    tenant_id : str
        Tenant the request is scoped to.
    event_id : int
        Event whose draw is executed.
    actor : User
        Organizer or super admin running the draw.
    config_id : Optional[int], default: None
        Configuration to execute. Defaults to the event's active one.
    publisher : Optional[Publisher], default: None
        Broadcast target. Defaults to :func:`default_publisher`.
    rng : Optional[RandomSource], default: None
        Random source for selection; tests pass a seeded one.

    Returns
    -------
    dict[str, Any]
        ``{"winners": [...], "statistics": {...}, "execution": {...}}``.
    """

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = _load_configuration(session, event, config_id)
        result = DrawExecutor(session, rng=rng).execute(
            configuration, executed_by=_actor_ref(actor)
        )
        started = draw_started_payload(configuration)
        announcements = [winner_payload(winner) for winner in result.winners]
        body = {
            "winners": [winner.to_json() for winner in result.winners],
            "statistics": result.statistics.to_json(),
            "execution": result.execution.to_json(),
        }

    publisher = publisher or default_publisher()
    publisher.publish(event_id, DRAW_STARTED, started)
    for payload in announcements:
        publisher.publish(event_id, DRAW_WINNER, payload)
    return body


def redraw(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    tier: str,
    previous_winner_id: int,
    config_id: int,
    reason: Optional[str] = None,
    publisher: Optional["Publisher"] = None,
    rng: Optional[RandomSource] = None,
) -> dict[str, Any]:
    """Forfeit a winner and draw a replacement for the same tier."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = _load_configuration(session, event, config_id)
        previous = draw_winners.get_winner(session, configuration, previous_winner_id)
        result = RedrawHandler(session, rng=rng).redraw(
            configuration,
            tier,
            previous,
            reason=reason,
            redrawn_by=_actor_ref(actor),
        )
        announcement = winner_payload(result.new_winner)
        body = {
            "new_winner": result.new_winner.to_json(),
            "previous_winner": result.previous_winner.to_json(),
        }

    publisher = publisher or default_publisher()
    publisher.publish(event_id, DRAW_WINNER, announcement)
    return body


def configure_draw(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    tiers: list,
    rules: Union[DrawRules, Mapping[str, Any], None] = None,
    presentation: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Create or update the event's draw configuration."""

    if not isinstance(rules, DrawRules):
        rules = DrawRules.from_dict(rules)

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = draw_config.create_or_update_configuration(
            session,
            event,
            tiers,
            rules,
            presentation=presentation,
            created_by=actor.id,
        )
        return configuration.to_json()


def get_configuration(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
) -> Optional[dict[str, Any]]:
    """Return the event's active (or most recent) configuration, if any."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = draw_config.get_latest_configuration(session, event.id)
        return configuration.to_json() if configuration is not None else None


def archive_draw(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    config_id: Optional[int] = None,
) -> dict[str, Any]:
    """Retire a configuration so a new draw can be configured."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = _load_configuration(session, event, config_id)
        draw_config.archive_configuration(session, configuration)
        logger.info("Archived draw configuration %s of event %s", configuration.id, event.id)
        return configuration.to_json()


def create_entry(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    participant: Participant,
    *,
    photo_id: Optional[int] = None,
) -> dict[str, Any]:
    """Enter a guest into the event's draw. No role is required."""

    with Session.begin() as session:
        event = _load_event(session, tenant_id, event_id)
        entry = draw_entries.create_entry(
            session, event, participant, photo_id=photo_id
        )
        return entry.to_json()


def add_manual_entries(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    participant_name: str,
    fingerprint: Optional[str] = None,
    photo_id: Optional[int] = None,
    contact: Optional[str] = None,
    entry_count: int = 1,
) -> dict[str, Any]:
    """Add organizer-created entries for one participant."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        entries, resolved = draw_entries.create_manual_entries(
            session,
            event,
            participant_name,
            fingerprint=fingerprint,
            photo_id=photo_id,
            contact=contact,
            entry_count=entry_count,
        )
        return {
            "participant_fingerprint": resolved,
            "entries": [entry.to_json() for entry in entries],
        }


def participant_status(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    fingerprint: str,
) -> dict[str, Any]:
    """Tell a guest how many entries they hold and whether they won."""

    with Session.begin() as session:
        event = _load_event(session, tenant_id, event_id)
        return draw_entries.participant_entry_statistics(session, event.id, fingerprint)


def list_participants(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    config_id: Optional[int] = None,
) -> dict[str, Any]:
    """List participants of a draw grouped by fingerprint."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = _load_configuration(session, event, config_id)
        participants = draw_entries.summarize_participants(session, configuration)
        return {
            "participants": participants,
            "total_participants": len(participants),
            "total_entries": sum(row["entry_count"] for row in participants),
        }


def claim_winner(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    winner_id: int,
    config_id: Optional[int] = None,
) -> dict[str, Any]:
    """Mark a winner as having collected the prize."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        configuration = _load_configuration(session, event, config_id)
        winner = draw_winners.get_winner(session, configuration, winner_id)
        draw_winners.mark_winner_claimed(session, winner)
        return winner.to_json()


def draw_history(
    Session: sessionmaker,
    tenant_id: str,
    event_id: int,
    actor: User,
    *,
    config_id: Optional[int] = None,
) -> dict[str, Any]:
    """Return a configuration with its winners, runs and event-wide statistics."""

    with Session.begin() as session:
        _authorize(actor, tenant_id)
        event = _load_event(session, tenant_id, event_id)
        statistics = draw_winners.draw_statistics(session, event.id)
        if config_id is None and draw_config.get_latest_configuration(session, event.id) is None:
            return {
                "configuration": None,
                "winners": [],
                "executions": [],
                "statistics": statistics,
            }
        configuration = _load_configuration(session, event, config_id)
        return {
            "configuration": configuration.to_json(),
            "winners": [
                winner.to_json()
                for winner in draw_winners.list_winners(session, configuration)
            ],
            "executions": [
                execution.to_json()
                for execution in draw_winners.list_executions(session, configuration)
            ],
            "statistics": statistics,
        }


def handle(operation: Callable[..., Any], *args: Any, **kwargs: Any) -> tuple[int, dict]:
    """Run ``operation`` and translate the outcome into ``(status_code, body)``.

    Domain errors map to their own status and ``{"error", "code"}`` payload.
    Anything else is logged with its traceback and answered with a generic
    500 payload that reveals no internals.
    """

    name = getattr(operation, "__name__", repr(operation))
    try:
        result = operation(*args, **kwargs)
    except LuckyDrawError as exc:
        logger.info("%s rejected (%s): %s", name, exc.code, exc.message)
        return exc.status_code, exc.to_payload()
    except Exception:
        logger.exception("Unexpected error in %s", name)
        return INTERNAL_ERROR_STATUS, dict(INTERNAL_ERROR_PAYLOAD)
    return 200, {"data": result}


__all__ = [
    "add_manual_entries",
    "archive_draw",
    "claim_winner",
    "configure_draw",
    "create_entry",
    "draw_history",
    "execute_draw",
    "get_configuration",
    "handle",
    "list_participants",
    "participant_status",
    "redraw",
]
