from __future__ import annotations

import uuid

from sqlalchemy import select

from .database import Base, engine, SessionLocal
from .gym_settings import seed_default_settings
from .models import Plan


def upsert_defaults() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_default_settings(db)

        # Plans (name, duration days, price in cents)
        default_plans = [
            ("Monthly", 30, 6_000),
            ("Quarterly", 90, 16_500),
            ("Yearly", 365, 60_000),
        ]
        existing = set(db.execute(select(Plan.name)).scalars().all())
        for name, days, price in default_plans:
            if name not in existing:
                db.add(Plan(id=str(uuid.uuid4()), name=name, duration_days=days, price_cents=price))

        db.commit()
    finally:
        db.close()


def main() -> None:
    upsert_defaults()
    print("Seed complete.")


if __name__ == "__main__":
    main()
