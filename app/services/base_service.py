from contextlib import contextmanager
from typing import Type, TypeVar, Optional, List
from sqlalchemy.orm import Session

from errors import NotFound

ModelType = TypeVar('ModelType')


@contextmanager
def unit_of_work(db: Session):
    """Commit what the block did, or roll all of it back when it raises"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def end_snapshot(db: Session) -> None:
    """
    Close the transaction earlier plain reads left open on the session.

    Under REPEATABLE READ the first plain read pins the snapshot of the
    whole transaction. A section entered under a lock calls this first, so
    its reads see everything the previous lock holder committed.
    """
    db.commit()


class BaseService:
    entity_name = "Record"

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: int) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_or_raise(self, db: Session, id: int) -> ModelType:
        db_obj = self.get(db, id)
        if db_obj is None:
            raise NotFound(self.entity_name, id)
        return db_obj

    def get_for_update(self, db: Session, id: int) -> ModelType:
        """
        Load a row holding a write lock on it until the transaction ends

        Args:
            db: Database session
            id: Primary key of the row

        Returns:
            The locked model instance, refreshed from storage
        """
        db_obj = (
            db.query(self.model)
            .filter(self.model.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if db_obj is None:
            raise NotFound(self.entity_name, id)
        return db_obj

    def find_where(self, db: Session, *criteria, skip: int = 0, limit: int = 100) -> List[ModelType]:
        return (
            db.query(self.model)
            .filter(*criteria)
            .order_by(self.model.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def save(self, db: Session, db_obj: ModelType) -> ModelType:
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj
