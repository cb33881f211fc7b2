import logging
import random

from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.lucky_draw import DrawRules, Participant
from luckydraw.models import Base, Event, Photo, User
from luckydraw import workflows
from luckydraw.broadcast.api import RecordingPublisher

TENANT = "dev-tenant"


def main() -> None:
    """Reset the development database and run one sample draw."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    engine = make_engine()

    # SQLite refuses to drop tables referenced by live foreign keys.
    with engine.connect() as conn:
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    with Session.begin() as session:
        organizer = User(
            tenant_id=TENANT,
            email="organizer@example.com",
            role="organizer",
            display_name="Event Organizer",
        )
        event = Event(tenant_id=TENANT, name="Summer Party")
        session.add_all([organizer, event])
        session.flush()

        guests = ["Alice", "Bob", "Chika", "Daniel", "Emi", "Farah", "Gen", "Hana"]
        photos = [
            Photo(
                event=event,
                status="approved",
                contributor_name=name,
                full_url=f"https://example.com/photos/{name.lower()}.jpg",
            )
            for name in guests
        ]
        session.add_all(photos)
        session.flush()
        photo_ids = [(photo.id, name) for photo, name in zip(photos, guests)]
        event_id = event.id

    workflows.configure_draw(
        Session,
        TENANT,
        event_id,
        organizer,
        tiers=[
            {"tier": "grand", "name": "Weekend getaway", "count": 1},
            {"tier": "first", "name": "Dinner voucher", "count": 2},
            {"tier": "consolation", "name": "Tote bag", "count": 3},
        ],
        rules=DrawRules(max_entries_per_participant=2),
    )

    for photo_id, name in photo_ids:
        workflows.create_entry(
            Session,
            TENANT,
            event_id,
            Participant(fingerprint=f"device-{name.lower()}"),
            photo_id=photo_id,
        )

    publisher = RecordingPublisher()
    result = workflows.execute_draw(
        Session, TENANT, event_id, organizer, publisher=publisher, rng=random.Random(7)
    )
    for winner in result["winners"]:
        print(f"{winner['tier']:>12}  {winner['participant_name']}")
    print(f"Broadcast {len(publisher.messages)} message(s)")


if __name__ == "__main__":
    main()
