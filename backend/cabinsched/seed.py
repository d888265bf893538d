import logging
from datetime import date

from .db import SessionLocal
from .models_db import RotationConfig, GroupContact, ReminderSettings
from .repositories_db import SelectionStoreDB
from .rotation import selection_rotation_year

logger = logging.getLogger(__name__)

DEMO_ORGANIZATION = "demo-cabin"

DEFAULT_GROUPS = [
    "Andersen",
    "Brooks",
    "Castillo",
    "Dubois",
    "Eriksen",
]


def seed_initial_data() -> None:
    """Seed a demo organization and its first selection periods if the DB is empty."""
    db = SessionLocal()
    try:
        # If there is already a config, we assume the DB is seeded.
        if db.query(RotationConfig).count() > 0:
            logger.info("Seed skipped: rotation config already exists.")
            return

        logger.info("Seeding demo organization %s", DEMO_ORGANIZATION)

        today = date.today()
        rotation_year = selection_rotation_year(today, "October")

        db.add(
            RotationConfig(
                organization_id=DEMO_ORGANIZATION,
                base_year=rotation_year,
                base_order=list(DEFAULT_GROUPS),
                direction_policy="move_first_to_last",
                allocation_mode="rotating_selection",
                primary_window_days=14,
                secondary_window_days=7,
                start_month="October",
            )
        )
        for name in DEFAULT_GROUPS:
            db.add(
                GroupContact(
                    organization_id=DEMO_ORGANIZATION,
                    group_name=name,
                    lead_name=f"{name} lead",
                    lead_email=f"{name.lower()}@example.com",
                )
            )
        db.add(ReminderSettings(organization_id=DEMO_ORGANIZATION))
        db.commit()

        periods = SelectionStoreDB(db).ensure_selection_periods(
            DEMO_ORGANIZATION, rotation_year - 1
        )
        logger.info(
            "Seed complete: %d groups, %d periods for %d",
            len(DEFAULT_GROUPS),
            len(periods),
            rotation_year,
        )
    except Exception:
        db.rollback()
        logger.exception("Seed failed")
        raise
    finally:
        db.close()
