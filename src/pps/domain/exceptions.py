"""Exceptions raised by the import pipeline and storage layer."""

from typing import Iterable


class CSVImportError(Exception):
    """An uploaded file could not be imported at all."""


class MalformedCSVError(CSVImportError):
    pass


class InsufficientRowsError(CSVImportError):
    def __init__(self, row_count: int):
        super().__init__(
            "CSV file must have at least a header row and one data row "
            f"(found {row_count} row{'s' if row_count != 1 else ''})"
        )
        self.row_count = row_count


class HeaderMismatchError(CSVImportError):
    def __init__(self, entity: str, missing: Iterable[str]):
        self.entity = entity
        self.missing = list(missing)
        super().__init__(
            f"CSV header does not match the {entity} layout; "
            f"missing columns: {', '.join(self.missing)}"
        )


class UnknownEntityError(Exception):
    pass


class DuplicateRecordError(Exception):
    """A commit tried to create a record whose identifier already exists."""
