"""Base command and event interfaces plus the commands of the import service."""

from dataclasses import dataclass


@dataclass
class Command:
    """Base class for all commands."""
    pass

@dataclass
class Event:
    """Base class for all domain events."""
    pass

@dataclass
class ImportCsvFile(Command):
    """Command to import an uploaded CSV file for one entity type."""
    entity: str      # e.g. 'patients', 'antibiotic-details'
    payload: bytes
    filename: str = ""
