"""Commit helpers that turn store failures into PersistenceError"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import PersistenceError

logger = logging.getLogger(__name__)


def commit_or_raise(db: Session, action: str) -> None:
    """Commit the session; on failure roll back and raise PersistenceError"""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Database error while {action}: {e}")
        raise PersistenceError(f"Failed while {action}") from e
