from __future__ import annotations

import logging

from . import models
from .db import SessionLocal

logger = logging.getLogger(__name__)

# name, credits, bonus, price_usd, price_vnd, is_popular
DEFAULT_CREDIT_PACKAGES = [
    ("Starter", 50, 0, 1.99, 49000, False),
    ("Student", 120, 10, 4.99, 119000, True),
    ("Scholar", 300, 40, 9.99, 239000, False),
    ("Researcher", 800, 150, 24.99, 599000, False),
]


def ensure_seed_data() -> None:
    """
    Create the default credit packages when the table is empty.

    Existing packages are never touched, so admins can edit prices freely.
    """
    db = SessionLocal()
    try:
        if db.query(models.CreditPackage.id).first() is not None:
            logger.info("ensure_seed_data: Credit packages already present.")
            return

        for order, (name, credits, bonus, usd, vnd, popular) in enumerate(DEFAULT_CREDIT_PACKAGES):
            db.add(
                models.CreditPackage(
                    name=name,
                    credits=credits,
                    bonus_credits=bonus,
                    price_usd=usd,
                    price_vnd=vnd,
                    is_popular=popular,
                    is_active=True,
                    display_order=order,
                )
            )
        db.commit()
        logger.info(f"ensure_seed_data: Created {len(DEFAULT_CREDIT_PACKAGES)} credit packages.")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level="INFO")
    ensure_seed_data()
