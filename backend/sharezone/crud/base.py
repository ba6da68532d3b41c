from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from sharezone.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType]):
        """
        CRUD object with default methods for zone-scoped records.

        **Parameters**

        * `model`: A SQLAlchemy model class with a `zone_id` column
        """
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get_by_zone(self, db: Session, *, zone_id: str) -> List[ModelType]:
        return db.query(self.model).filter(self.model.zone_id == zone_id).order_by(self.model.id).all()

    def count_by_zone(self, db: Session, *, zone_id: str) -> int:
        return db.query(self.model).filter(self.model.zone_id == zone_id).count()

    def delete_by_zone(self, db: Session, *, zone_id: str) -> int:
        """
        Bulk delete every row of the zone. Does not commit, so that a caller
        can group several tables into one transaction.
        """
        return (
            db.query(self.model)
            .filter(self.model.zone_id == zone_id)
            .delete(synchronize_session=False)
        )
