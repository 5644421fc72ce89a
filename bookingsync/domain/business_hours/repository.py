"""Business hours repository - Database operations for business hours"""

from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import PersistenceError
from ...models import BusinessHours
from ...shared.persistence import commit_or_raise


class BusinessHoursRepository:
    """Repository for business hours database operations"""

    @staticmethod
    def get(db: Session, client_id: str) -> Optional[BusinessHours]:
        return db.query(BusinessHours).filter(BusinessHours.client_id == client_id).first()

    @staticmethod
    def create(db: Session, client_id: str, **data) -> BusinessHours:
        """
        Insert the row for a tenant. A concurrent first access may have
        inserted it already; in that case the existing row is returned.
        """
        row = BusinessHours(client_id=client_id, **data)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = BusinessHoursRepository.get(db, client_id)
            if existing is None:
                raise
            return existing
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to create business hours for {client_id}") from e
        db.refresh(row)
        return row

    @staticmethod
    def update(db: Session, row: BusinessHours, **updates) -> BusinessHours:
        for key, value in updates.items():
            if value is not None and hasattr(row, key):
                setattr(row, key, value)

        commit_or_raise(db, f"updating business hours for {row.client_id}")
        db.refresh(row)
        return row
