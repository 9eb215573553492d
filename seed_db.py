import logging

import bcrypt

from config import load_settings, setup_logging
from database import init_db, SessionLocal, User
from stores import BudgetStore, CategoryStore

logger = logging.getLogger(__name__)

DEMO_USERNAME = "sarah"


def seed_demo_user(db, user_id: int) -> bool:
    """Create the demo user if it does not exist. Returns True when a user was added."""
    if db.get(User, user_id) is not None:
        logger.info("User %s already exists. Skipping seed.", user_id)
        return False

    # Stored for completeness; the login screen never checks it
    password_hash = bcrypt.hashpw(b"spendwise123", bcrypt.gensalt()).decode("utf-8")
    db.add(User(id=user_id, username=DEMO_USERNAME, password_hash=password_hash))
    db.commit()
    logger.info("Created demo user %s (%s)", user_id, DEMO_USERNAME)
    return True


def seed(db, user_id: int) -> None:
    CategoryStore(db).ensure_defaults()
    seed_demo_user(db, user_id)
    BudgetStore(db).seed_defaults(user_id)


if __name__ == "__main__":
    settings = load_settings()
    setup_logging(settings.log_level)
    init_db()
    db = SessionLocal()
    try:
        seed(db, settings.user_id)
        logger.info("Database initialized with default data.")
    finally:
        db.close()
