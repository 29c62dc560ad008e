from sqlalchemy.orm import Session


class BaseService:
    """Common base for services that work inside one request-scoped session."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
