"""Domain events for the import service."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from pps.domain.commands import Event


@dataclass
class CsvFileImported(Event):
    """Event raised when a CSV file has been processed (fully or partially)."""
    entity: str
    filename: str
    total_records: int
    processed_records: int
    skipped_records: int
    inserted_records: int
    updated_records: int
    imported_at: datetime
    errors: List[str] = field(default_factory=list)
