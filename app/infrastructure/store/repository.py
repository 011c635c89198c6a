"""
Keyed record store - one table per entity, records addressed by string id.

The engine only needs get-all / get-by-id / put / update / delete and
equality lookups on a secondary key (consumptions of a card, statements due
in a month...). Nothing above this layer builds queries of its own.
"""
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from app.domain.errors import NotFoundError

T = TypeVar("T")


class RecordRepository(Generic[T]):
    """
    Repository over one ORM model with a string primary key ``id``.

    Changes are flushed, not committed: the calling use case owns the
    transaction.

    Example:
        >>> cards = RecordRepository(db, CreditCardModel)
        >>> card = cards.get_by_id("c-1")
        >>> cons = RecordRepository(db, CardConsumptionModel).find_by(card_id="c-1")
    """

    def __init__(self, db: Session, model: type[T], entity_name: str | None = None):
        self.db = db
        self.model = model
        self.entity_name = entity_name or model.__name__.removesuffix("Model")

    def get_all(self) -> list[T]:
        return self.db.query(self.model).all()

    def get_by_id(self, record_id: str) -> T | None:
        return self.db.get(self.model, record_id)

    def require(self, record_id: str) -> T:
        """get_by_id that raises NotFoundError instead of returning None."""
        record = self.get_by_id(record_id)
        if record is None:
            raise NotFoundError(self.entity_name, record_id)
        return record

    def put(self, record: T) -> T:
        """Insert or replace by id."""
        merged = self.db.merge(record)
        self.db.flush()
        return merged

    def update(self, record_id: str, **fields: Any) -> T:
        record = self.require(record_id)
        for name, value in fields.items():
            if not hasattr(self.model, name):
                raise AttributeError(f"{self.model.__name__} has no field {name!r}")
            setattr(record, name, value)
        self.db.flush()
        return record

    def delete(self, record_id: str) -> None:
        record = self.require(record_id)
        self.db.delete(record)
        self.db.flush()

    def find_by(self, **filters: Any) -> list[T]:
        query = self.db.query(self.model)
        for name, value in filters.items():
            query = query.filter(getattr(self.model, name) == value)
        return query.all()

    def delete_by(self, **filters: Any) -> int:
        query = self.db.query(self.model)
        for name, value in filters.items():
            query = query.filter(getattr(self.model, name) == value)
        count = query.delete(synchronize_session="fetch")
        self.db.flush()
        return count
