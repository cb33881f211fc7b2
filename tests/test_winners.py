from __future__ import annotations

import random
import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from luckydraw.errors import InvalidState, NotFound
from luckydraw.lucky_draw.configuration import DrawRules, create_or_update_configuration
from luckydraw.lucky_draw.engine import DrawExecutor
from luckydraw.lucky_draw.entries import Participant, create_entry
from luckydraw.lucky_draw.redraw import RedrawHandler
from luckydraw.lucky_draw.winners import (
    draw_statistics,
    get_winner,
    list_executions,
    list_winners,
    mark_winner_claimed,
)
from luckydraw.models import Base, Event


class WinnerManagementTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _drawn(self, session):
        event = Event(tenant_id="t1", name="Open House")
        session.add(event)
        session.flush()
        configuration = create_or_update_configuration(
            session,
            event,
            [
                {"tier": "grand", "name": "Car", "count": 1},
                {"tier": "first", "name": "Bike", "count": 1},
            ],
            DrawRules(require_photo_upload=False, max_entries_per_participant=2),
        )
        for fingerprint in ("a", "a", "b", "c", "d"):
            create_entry(session, event, Participant(fingerprint=fingerprint))
        result = DrawExecutor(session, rng=random.Random(6)).execute(configuration)
        return event, configuration, result.winners

    def test_list_and_get(self) -> None:
        with self.Session.begin() as session:
            _, configuration, winners = self._drawn(session)
            listed = list_winners(session, configuration)
            self.assertEqual([w.id for w in listed], [w.id for w in winners])
            self.assertIs(get_winner(session, configuration, winners[1].id), winners[1])
            with self.assertRaises(NotFound):
                get_winner(session, configuration, 99999)

    def test_forfeited_winners_can_be_hidden(self) -> None:
        with self.Session.begin() as session:
            _, configuration, winners = self._drawn(session)
            RedrawHandler(session, rng=random.Random(1)).redraw(
                configuration, "grand", winners[0]
            )
            everyone = list_winners(session, configuration)
            active = list_winners(session, configuration, include_forfeited=False)
            self.assertEqual(len(everyone), 3)
            self.assertEqual(len(active), 2)
            self.assertNotIn(winners[0].id, {w.id for w in active})
            self.assertEqual([e.kind for e in list_executions(session, configuration)], ["draw", "redraw"])

    def test_claiming(self) -> None:
        with self.Session.begin() as session:
            _, configuration, winners = self._drawn(session)
            claimed = mark_winner_claimed(session, winners[0])
            self.assertTrue(claimed.is_claimed)
            first_claim = claimed.claimed_at
            self.assertIsNotNone(first_claim)
            # claiming twice keeps the original timestamp
            mark_winner_claimed(session, winners[0])
            self.assertEqual(winners[0].claimed_at, first_claim)

            RedrawHandler(session, rng=random.Random(1)).redraw(
                configuration, "first", winners[1]
            )
            with self.assertRaises(InvalidState):
                mark_winner_claimed(session, winners[1])

    def test_draw_statistics(self) -> None:
        with self.Session.begin() as session:
            event, configuration, winners = self._drawn(session)
            RedrawHandler(session, rng=random.Random(2)).redraw(
                configuration, "first", winners[1]
            )
            stats = draw_statistics(session, event.id)
            self.assertEqual(
                stats,
                {
                    "total_entries": 5,
                    "unique_participants": 4,
                    "total_draws": 1,
                    "total_winners": 2,
                },
            )

            empty = Event(tenant_id="t1", name="Empty")
            session.add(empty)
            session.flush()
            self.assertEqual(
                draw_statistics(session, empty.id),
                {
                    "total_entries": 0,
                    "unique_participants": 0,
                    "total_draws": 0,
                    "total_winners": 0,
                },
            )


if __name__ == "__main__":
    unittest.main()
