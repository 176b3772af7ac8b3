# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
import abc
from typing import List

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session


import config
from pps.adapters import repository
from pps.domain import model
from pps.domain.commands import Event
from pps.domain.exceptions import DuplicateRecordError


class AbstractUnitOfWork(abc.ABC):
    patients: repository.AbstractRepository
    antibiotics: repository.AbstractRepository
    antibiotic_details: repository.AbstractRepository
    indications: repository.AbstractRepository
    optional_vars: repository.AbstractRepository
    specimens: repository.AbstractRepository

    def __init__(self):
        self.events: List[Event] = []

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args):
        self.rollback()

    def commit(self):
        self._commit()

    def collect_new_events(self) -> List[Event]:
        """Return and clear the events recorded during the last operation."""
        events = self.events[:]
        self.events.clear()
        return events

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError


DEFAULT_SESSION_FACTORY = sessionmaker(
    bind=create_engine(
        config.get_postgres_uri(),
    )
)

class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(self, session_factory=DEFAULT_SESSION_FACTORY):
        super().__init__()
        self.session_factory = session_factory

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        self.patients = repository.SqlAlchemyRepository(self.session, model.Patient)
        self.antibiotics = repository.SqlAlchemyRepository(self.session, model.Antibiotic)
        self.antibiotic_details = repository.SqlAlchemyRepository(self.session, model.AntibioticDetails)
        self.indications = repository.SqlAlchemyRepository(self.session, model.Indication)
        self.optional_vars = repository.SqlAlchemyRepository(self.session, model.OptionalVar)
        self.specimens = repository.SqlAlchemyRepository(self.session, model.Specimen)
        return super().__enter__()

    def __exit__(self, *args):
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateRecordError(str(e.orig)) from e

    def rollback(self):
        self.session.rollback()
