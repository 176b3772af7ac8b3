import abc
import logging
from typing import List, Optional

from pps.domain.model import record_values

logger = logging.getLogger(__name__)


class AbstractRepository(abc.ABC):
    """Storage primitives the importer and the read endpoints rely on."""

    def get(self, key: str):
        return self._get(key)

    def exists(self, key: str) -> bool:
        if not key:
            return False
        return self._get(key) is not None

    def contains(self, record) -> bool:
        """True if a record with exactly the same data is already stored."""
        return self._find_identical(record) is not None

    def add(self, record) -> str:
        self._add(record)
        return record.id

    def upsert(self, record) -> bool:
        """
        Overwrite the stored record with the same id, or add it.
        Returns True when a new record was created.
        """
        existing = self._get(record.id)
        if existing is None:
            self._add(record)
            return True
        for name, value in record_values(record).items():
            setattr(existing, name, value)
        return False

    def list(self, limit: Optional[int] = None, offset: int = 0) -> List:
        return self._list(limit, offset)

    def list_by_parent(self, parent_key: str) -> List:
        return self._list_by_parent(parent_key)

    def count(self) -> int:
        return self._count()

    @abc.abstractmethod
    def _add(self, record):
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, key: str):
        raise NotImplementedError

    @abc.abstractmethod
    def _find_identical(self, record):
        raise NotImplementedError

    @abc.abstractmethod
    def _list(self, limit: Optional[int], offset: int) -> List:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_by_parent(self, parent_key: str) -> List:
        raise NotImplementedError

    @abc.abstractmethod
    def _count(self) -> int:
        raise NotImplementedError


class SqlAlchemyRepository(AbstractRepository):
    def __init__(self, session, model_class):
        super().__init__()
        self.session = session
        self.model_class = model_class

    def _query(self):
        return self.session.query(self.model_class)

    def _add(self, record):
        self.session.add(record)

    def _get(self, key):
        return self._query().filter_by(id=key).first()

    def _find_identical(self, record):
        return self._query().filter_by(**record_values(record)).first()

    def _list(self, limit, offset):
        query = self._query().order_by(self.model_class.id).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _list_by_parent(self, parent_key):
        if not hasattr(self.model_class, "parent_key"):
            return []
        return self._query().filter_by(parent_key=parent_key).order_by(self.model_class.id).all()

    def _count(self):
        return self._query().count()
