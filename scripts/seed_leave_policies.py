import sys
import os
import logging

# Ensure we can import leave_engine modules
sys.path.append(os.getcwd())

from leave_engine.database import SessionLocal, init_db
from leave_engine.core.seed_policies import seed_default_policies
from leave_engine.services.policy_repository import SqlPolicyRepository

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def main():
    init_db()
    db = SessionLocal()
    try:
        created = seed_default_policies(SqlPolicyRepository(db), actor_id="seed-script")
        logger.info(f"{created} leave policies created")
    finally:
        db.close()


if __name__ == "__main__":
    main()
