from __future__ import annotations

import random
import unittest
from collections import Counter

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from luckydraw.errors import InvalidState, NoEntries
from luckydraw.lucky_draw.configuration import (
    DrawRules,
    create_or_update_configuration,
)
from luckydraw.lucky_draw.engine import DrawExecutor, TierOutcome
from luckydraw.lucky_draw.entries import Participant, create_entry
from luckydraw.models import (
    Base,
    DrawConfiguration,
    DrawExecution,
    Entry,
    Event,
    Photo,
    Winner,
)


class FlakyRandom:
    """Random source that fails on the ``fail_on``-th pick."""

    def __init__(self, fail_on: int) -> None:
        self._rng = random.Random(1)
        self._calls = 0
        self._fail_on = fail_on

    def randrange(self, stop: int) -> int:
        self._calls += 1
        if self._calls >= self._fail_on:
            raise RuntimeError("entropy source unavailable")
        return self._rng.randrange(stop)

    def sample(self, population, k):
        return self._rng.sample(population, k)


class DrawExecutorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _setup_draw(self, session, tiers, fingerprints, **rules):
        rules.setdefault("require_photo_upload", False)
        rules.setdefault("max_entries_per_participant", 5)
        event = Event(tenant_id="t1", name="Year End Party")
        session.add(event)
        session.flush()
        configuration = create_or_update_configuration(
            session, event, tiers, DrawRules(**rules)
        )
        for fingerprint in fingerprints:
            create_entry(
                session,
                event,
                Participant(fingerprint=fingerprint, display_name=fingerprint.title()),
            )
        return event, configuration

    def _scenario_fingerprints(self) -> list[str]:
        # 10 entries from 8 participants; p1 and p2 hold two entries each
        return ["p1", "p1", "p2", "p2", "p3", "p4", "p5", "p6", "p7", "p8"]

    def test_example_scenario(self) -> None:
        tiers = [
            {"tier": "grand", "name": "Trip", "count": 1},
            {"tier": "first", "name": "Tablet", "count": 2},
        ]
        for seed in range(15):
            with self.subTest(seed=seed):
                with self.Session.begin() as session:
                    _, configuration = self._setup_draw(
                        session, tiers, self._scenario_fingerprints()
                    )
                    result = DrawExecutor(session, rng=random.Random(seed)).execute(
                        configuration, executed_by="organizer-1"
                    )

                    self.assertEqual(len(result.winners), 3)
                    self.assertEqual(
                        [w.tier for w in result.winners], ["grand", "first", "first"]
                    )
                    self.assertEqual(
                        [w.selection_order for w in result.winners], [1, 2, 3]
                    )
                    fingerprints = {
                        w.entry.participant_fingerprint for w in result.winners
                    }
                    self.assertEqual(len(fingerprints), 3)
                    self.assertEqual(configuration.status, "completed")
                    self.assertIsNotNone(configuration.completed_at)

                    stats = result.statistics
                    self.assertEqual(stats.total_entries, 10)
                    self.assertEqual(stats.eligible_entries, 10)
                    self.assertEqual(stats.unique_participants, 8)
                    self.assertEqual(stats.winners_selected, 3)
                    self.assertEqual(stats.tiers_fulfilled, 2)
                    self.assertEqual(stats.tiers_partially_fulfilled, 0)
                    self.assertEqual(result.execution.kind, "draw")
                    self.assertEqual(result.execution.executed_by, "organizer-1")
                    self.assertEqual(result.execution.statistics["winners_selected"], 3)
                    self.assertTrue(
                        all(w.drawn_by == "organizer-1" for w in result.winners)
                    )

    def test_winner_rows_persisted(self) -> None:
        tiers = [{"tier": "grand", "name": "Trip", "count": 2}]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["a", "b", "c"])
            result = DrawExecutor(session, rng=random.Random(4)).execute(configuration)
            ids = {w.id for w in result.winners}

        with self.Session() as session:
            stored = session.scalars(select(Winner)).all()
            self.assertEqual({w.id for w in stored}, ids)
            self.assertTrue(all(w.prize_name == "Trip" for w in stored))
            self.assertTrue(all(w.tier_rank == 1 for w in stored))
            self.assertTrue(all(w.status == "drawn" for w in stored))
            stored_config = session.get(DrawConfiguration, configuration.id)
            self.assertEqual(stored_config.status, "completed")

    def test_tiers_drawn_in_rank_order(self) -> None:
        tiers = [
            {"tier": "consolation", "name": "Pen", "count": 1, "rank": 3},
            {"tier": "grand", "name": "Car", "count": 1, "rank": 1},
            {"tier": "second", "name": "Bag", "count": 1, "rank": 2},
        ]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["a", "b", "c", "d"])
            result = DrawExecutor(session, rng=random.Random(9)).execute(configuration)
            self.assertEqual(
                [w.tier for w in result.winners], ["grand", "second", "consolation"]
            )
            self.assertEqual([w.tier_rank for w in result.winners], [1, 2, 3])
            self.assertEqual(
                [o.tier for o in result.statistics.tiers],
                ["grand", "second", "consolation"],
            )

    def test_partial_fulfilment(self) -> None:
        tiers = [
            {"tier": "grand", "name": "Car", "count": 1},
            {"tier": "first", "name": "Bike", "count": 5},
        ]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["a", "a", "b", "c"])
            with self.assertLogs("luckydraw.lucky_draw.engine", level="WARNING"):
                result = DrawExecutor(session, rng=random.Random(1)).execute(configuration)

            self.assertEqual(len(result.winners), 3)
            self.assertEqual(
                result.statistics.tiers,
                [
                    TierOutcome(tier="grand", requested=1, selected=1),
                    TierOutcome(tier="first", requested=5, selected=2),
                ],
            )
            self.assertEqual(result.statistics.tiers_fulfilled, 1)
            self.assertEqual(result.statistics.tiers_partially_fulfilled, 1)
            self.assertEqual(result.statistics.tiers_unfulfilled, 0)
            self.assertEqual(configuration.status, "completed")

    def test_tier_with_no_candidates_left_counts_as_unfulfilled(self) -> None:
        tiers = [
            {"tier": "grand", "name": "Car", "count": 1},
            {"tier": "first", "name": "Bike", "count": 2},
        ]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["solo"])
            with self.assertLogs("luckydraw.lucky_draw.engine", level="WARNING"):
                result = DrawExecutor(session, rng=random.Random(4)).execute(configuration)

            stats = result.statistics
            self.assertEqual(len(result.winners), 1)
            self.assertEqual(stats.tiers_fulfilled, 1)
            self.assertEqual(stats.tiers_partially_fulfilled, 0)
            self.assertEqual(stats.tiers_unfulfilled, 1)
            self.assertEqual(
                stats.tiers_fulfilled
                + stats.tiers_partially_fulfilled
                + stats.tiers_unfulfilled,
                len(stats.tiers),
            )
            self.assertEqual(stats.to_json()["tiers_unfulfilled"], 1)

    def test_duplicates_allowed_when_prevention_off(self) -> None:
        tiers = [
            {"tier": "grand", "name": "Car", "count": 1},
            {"tier": "first", "name": "Bike", "count": 1},
        ]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(
                session, tiers, ["solo"], prevent_duplicate_winners=False
            )
            result = DrawExecutor(session, rng=random.Random(2)).execute(configuration)
            self.assertEqual(len(result.winners), 2)
            self.assertEqual(result.winners[0].entry_id, result.winners[1].entry_id)

    def test_same_participant_not_picked_twice_within_tier(self) -> None:
        tiers = [{"tier": "first", "name": "Bike", "count": 3}]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(
                session, tiers, ["a", "a", "a", "a", "b", "c"]
            )
            result = DrawExecutor(session, rng=random.Random(11)).execute(configuration)
            owners = [w.entry.participant_fingerprint for w in result.winners]
            self.assertCountEqual(owners, ["a", "b", "c"])

    def test_weight_by_entry_count(self) -> None:
        # heavy holds 3 entries, light holds 1; heavy should win ~75% of draws
        tiers = [{"tier": "grand", "name": "Car", "count": 1}]
        rng = random.Random(77)
        wins: Counter = Counter()
        runs = 300
        for _ in range(runs):
            with self.Session.begin() as session:
                _, configuration = self._setup_draw(
                    session, tiers, ["heavy", "heavy", "heavy", "light"]
                )
                result = DrawExecutor(session, rng=rng).execute(configuration)
                wins[result.winners[0].entry.participant_fingerprint] += 1
        self.assertAlmostEqual(wins["heavy"] / runs, 0.75, delta=0.1)

    def test_no_entries(self) -> None:
        tiers = [{"tier": "grand", "name": "Car", "count": 1}]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, [])
            with self.assertRaises(NoEntries):
                DrawExecutor(session).execute(configuration)
            self.assertEqual(configuration.status, "scheduled")
            self.assertEqual(session.scalar(select(func.count(DrawExecution.id))), 0)

    def test_completed_draw_cannot_run_again(self) -> None:
        tiers = [{"tier": "grand", "name": "Car", "count": 1}]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["a", "b"])
            DrawExecutor(session, rng=random.Random(1)).execute(configuration)
            with self.assertRaises(InvalidState):
                DrawExecutor(session, rng=random.Random(1)).execute(configuration)
            self.assertEqual(session.scalar(select(func.count(Winner.id))), 1)

    def test_concurrent_execution_draws_at_most_once(self) -> None:
        tiers = [{"tier": "grand", "name": "Car", "count": 1}]
        with self.Session.begin() as session:
            _, stale = self._setup_draw(session, tiers, ["a", "b", "c"])

        with self.Session.begin() as session:
            fresh = session.get(DrawConfiguration, stale.id)
            DrawExecutor(session, rng=random.Random(5)).execute(fresh)

        # A second caller still holding the "scheduled" snapshot loses the race
        with self.assertRaises(InvalidState):
            with self.Session.begin() as session:
                session.add(stale)
                self.assertEqual(stale.status, "scheduled")
                DrawExecutor(session, rng=random.Random(6)).execute(stale)

        with self.Session() as session:
            self.assertEqual(session.scalar(select(func.count(Winner.id))), 1)
            self.assertEqual(session.scalar(select(func.count(DrawExecution.id))), 1)

    def test_failure_rolls_back_everything(self) -> None:
        tiers = [
            {"tier": "grand", "name": "Car", "count": 1},
            {"tier": "first", "name": "Bike", "count": 2},
        ]
        with self.Session.begin() as session:
            _, configuration = self._setup_draw(session, tiers, ["a", "b", "c", "d"])
            config_id = configuration.id

        with self.assertRaises(RuntimeError):
            with self.Session.begin() as session:
                configuration = session.get(DrawConfiguration, config_id)
                DrawExecutor(session, rng=FlakyRandom(fail_on=2)).execute(configuration)

        with self.Session() as session:
            configuration = session.get(DrawConfiguration, config_id)
            self.assertEqual(configuration.status, "scheduled")
            self.assertIsNone(configuration.completed_at)
            self.assertEqual(session.scalar(select(func.count(Winner.id))), 0)
            self.assertEqual(session.scalar(select(func.count(DrawExecution.id))), 0)

    def test_winner_name_and_selfie_fallbacks(self) -> None:
        tiers = [{"tier": "grand", "name": "Car", "count": 2}]
        with self.Session.begin() as session:
            event = Event(tenant_id="t1", name="Festival")
            session.add(event)
            session.flush()
            configuration = create_or_update_configuration(
                session, event, tiers, DrawRules(require_photo_upload=False)
            )
            photo = Photo(
                event=event,
                status="approved",
                contributor_name="Photo Pat",
                full_url="https://cdn.example.com/pat.jpg",
            )
            session.add(photo)
            session.flush()
            session.add_all(
                [
                    Entry(
                        event_id=event.id,
                        configuration_id=configuration.id,
                        participant_fingerprint="with-photo",
                        photo_id=photo.id,
                    ),
                    Entry(
                        event_id=event.id,
                        configuration_id=configuration.id,
                        participant_fingerprint="abcdefghijkl",
                    ),
                ]
            )
            session.flush()

            result = DrawExecutor(session, rng=random.Random(3)).execute(configuration)
            by_fingerprint = {
                w.entry.participant_fingerprint: w for w in result.winners
            }
            self.assertEqual(by_fingerprint["with-photo"].participant_name, "Photo Pat")
            self.assertEqual(
                by_fingerprint["with-photo"].selfie_url, "https://cdn.example.com/pat.jpg"
            )
            self.assertEqual(by_fingerprint["abcdefghijkl"].participant_name, "abcdefgh")
            self.assertEqual(by_fingerprint["abcdefghijkl"].selfie_url, "")


if __name__ == "__main__":
    unittest.main()
