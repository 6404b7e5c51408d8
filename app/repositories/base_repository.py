import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


class SqlRepository:
    """Shared plumbing for the SQLAlchemy stores.

    Each public write commits on its own; the engine relies on row-level
    atomicity only and compensates across rows itself.
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    def _add(self, obj):
        try:
            self.db.add(obj)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("insert of %s failed: %s", type(obj).__name__, exc)
            self.db.rollback()
            raise
        return obj

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("commit failed: %s", exc)
            self.db.rollback()
            raise

    def _execute(self, stmt) -> int:
        """Run a conditional UPDATE and return how many rows it touched."""
        try:
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("conditional update failed: %s", exc)
            self.db.rollback()
            raise
        return result.rowcount or 0
