import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from luckydraw.models import (
    Base,
    DrawConfiguration,
    DrawExecution,
    DrawStatus,
    Entry,
    Event,
    Photo,
    PrizeTier,
    User,
    Winner,
)


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def _event(self, session, **kwargs) -> Event:
        event = Event(tenant_id=kwargs.pop("tenant_id", "t1"), name="Gala", **kwargs)
        session.add(event)
        session.flush()
        return event

    def test_user_email_normalized_and_lookup(self):
        with self.Session.begin() as session:
            session.add(User(tenant_id="t1", email="  Org@Example.COM ", role="organizer"))

        with self.Session() as session:
            user = User.get_by_email(session, "t1", "org@example.com")
            self.assertIsNotNone(user)
            assert user is not None
            self.assertEqual(user.email, "org@example.com")
            self.assertTrue(user.is_draw_operator)
            self.assertFalse(user.is_super_admin)
            self.assertIsNone(User.get_by_email(session, "t2", "org@example.com"))

    def test_user_unknown_role_rejected(self):
        with self.assertRaises(ValueError):
            User(tenant_id="t1", email="x@example.com", role="owner")

    def test_user_email_unique_per_tenant(self):
        with self.Session() as session:
            session.add_all(
                [
                    User(tenant_id="t1", email="a@example.com"),
                    User(tenant_id="t2", email="a@example.com"),
                ]
            )
            session.commit()
            session.add(User(tenant_id="t1", email="A@example.com"))
            with self.assertRaises(IntegrityError):
                session.commit()

    def test_guest_is_not_operator(self):
        guest = User(tenant_id="t1", email="g@example.com")
        self.assertEqual(guest.role, "guest")
        self.assertFalse(guest.is_draw_operator)

    def test_event_feature_flags(self):
        self.assertTrue(Event(tenant_id="t1", name="a").lucky_draw_enabled)
        disabled = Event(
            tenant_id="t1",
            name="b",
            settings={"features": {"lucky_draw_enabled": False}},
        )
        self.assertFalse(disabled.lucky_draw_enabled)
        self.assertTrue(disabled.feature_enabled("photo_challenge"))
        self.assertFalse(disabled.feature_enabled("photo_challenge", default=False))

    def test_event_lookup_is_tenant_scoped(self):
        with self.Session.begin() as session:
            event_id = self._event(session).id

        with self.Session() as session:
            self.assertIsNotNone(Event.get_for_tenant(session, "t1", event_id))
            self.assertIsNone(Event.get_for_tenant(session, "other", event_id))

    def test_photo_belongs_to_event(self):
        with self.Session.begin() as session:
            event = self._event(session)
            photo = Photo(event=event, status="approved", contributor_name="Mia")
            session.add(photo)
            session.flush()
            self.assertTrue(photo.is_approved)
            self.assertEqual(photo.event_id, event.id)
            self.assertEqual(photo.to_json()["contributor_name"], "Mia")

    def test_status_transitions(self):
        self.assertTrue(DrawStatus.SCHEDULED.can_transition_to(DrawStatus.IN_PROGRESS))
        self.assertTrue(DrawStatus.IN_PROGRESS.can_transition_to(DrawStatus.COMPLETED))
        self.assertFalse(DrawStatus.IN_PROGRESS.can_transition_to(DrawStatus.SCHEDULED))
        self.assertTrue(DrawStatus.COMPLETED.can_transition_to(DrawStatus.ARCHIVED))
        self.assertFalse(DrawStatus.COMPLETED.can_transition_to(DrawStatus.SCHEDULED))
        self.assertFalse(DrawStatus.SCHEDULED.can_transition_to(DrawStatus.COMPLETED))
        for target in DrawStatus:
            self.assertFalse(DrawStatus.ARCHIVED.can_transition_to(target))

    def test_configuration_tiers_sorted_by_rank(self):
        with self.Session.begin() as session:
            event = self._event(session)
            configuration = DrawConfiguration(
                event=event,
                prize_tiers=[
                    PrizeTier(tier="consolation", name="Pen", count=3, rank=3),
                    PrizeTier(tier="grand", name="Car", count=1, rank=1),
                    PrizeTier(tier="first", name="TV", count=2, rank=2),
                ],
            )
            session.add(configuration)
            session.flush()

            self.assertEqual(
                [tier.tier for tier in configuration.tiers],
                ["grand", "first", "consolation"],
            )
            self.assertEqual(configuration.total_prizes, 6)
            self.assertEqual(configuration.get_tier("first").name, "TV")
            self.assertIsNone(configuration.get_tier("second"))
            self.assertIs(configuration.draw_status, DrawStatus.SCHEDULED)

            payload = configuration.to_json()
            self.assertEqual(payload["status"], "scheduled")
            self.assertEqual(payload["prize_tiers"][0]["tier"], "grand")
            self.assertEqual(payload["total_entries"], 0)

    def test_stored_tiers_without_rank_use_position(self):
        configuration = DrawConfiguration(event_id=1)
        configuration.prize_tiers = [
            {"tier": "first", "name": "TV", "count": 1},
            {"tier": "grand", "name": "Car", "count": 1},
        ]
        self.assertEqual([t.rank for t in configuration.tiers], [1, 2])
        self.assertEqual(configuration.tiers[0].tier, "first")

    def test_winner_selection_order_and_serialization(self):
        with self.Session.begin() as session:
            event = self._event(session)
            configuration = DrawConfiguration(
                event=event,
                prize_tiers=[PrizeTier(tier="grand", name="Car", count=1, rank=1)],
            )
            session.add(configuration)
            session.flush()
            entry = Entry(
                event_id=event.id,
                configuration_id=configuration.id,
                participant_fingerprint="fp-1",
            )
            execution = DrawExecution(configuration_id=configuration.id, kind="draw")
            session.add_all([entry, execution])
            session.flush()

            self.assertEqual(Winner.next_selection_order(session, configuration.id), 1)
            winner = Winner(
                event_id=event.id,
                configuration_id=configuration.id,
                execution_id=execution.id,
                entry_id=entry.id,
                tier="grand",
                prize_name="Car",
                tier_rank=1,
                selection_order=1,
                participant_name="fp-1",
                drawn_at=datetime(2025, 5, 1, tzinfo=timezone.utc),
            )
            session.add(winner)
            session.flush()

            self.assertEqual(Winner.next_selection_order(session, configuration.id), 2)
            payload = winner.to_json()
            self.assertEqual(payload["status"], "drawn")
            self.assertFalse(payload["is_claimed"])
            self.assertFalse(payload["is_forfeited"])
            self.assertEqual(payload["selfie_url"], "")
            self.assertEqual(payload["drawn_at"], "2025-05-01T00:00:00+00:00")

        with self.Session() as session:
            stored = session.scalar(select(Winner))
            self.assertEqual(stored.entry.participant_fingerprint, "fp-1")
            self.assertEqual(stored.execution.kind, "draw")

    def test_configuration_rejects_zero_entry_cap(self):
        with self.Session() as session:
            event = self._event(session)
            session.add(
                DrawConfiguration(event=event, max_entries_per_participant=0)
            )
            with self.assertRaises(IntegrityError):
                session.flush()


if __name__ == "__main__":
    unittest.main()
