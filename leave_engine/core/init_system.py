import logging
from leave_engine.core.config import settings
from leave_engine.core.seed_policies import seed_default_policies
from leave_engine.database import SessionLocal
from leave_engine.services.policy_repository import SqlPolicyRepository

logger = logging.getLogger(__name__)


def init_system_data():
    """
    Seeds the default leave policies on a fresh database.
    Existing policies are never touched.
    """
    if not settings.seed_policies_on_startup:
        logger.info("Policy seeding disabled (SEED_POLICIES_ON_STARTUP=false)")
        return

    db = SessionLocal()
    try:
        created = seed_default_policies(SqlPolicyRepository(db))
        if created:
            logger.info(f"Seeded {created} default leave policies")
        else:
            logger.info("System initialization check: leave policies already present")
    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        db.close()
