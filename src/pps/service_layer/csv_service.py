# pylint: disable=broad-except
"""
CSV import of survey exports into relational storage.

One file holds one record type. The whole file is read up front; structural
problems (undecodable text, broken quoting, no data rows, strict header
mismatch) abort the import. Everything that goes wrong with an individual
row is written to the UploadResult and the import moves on to the next row.
Each stored row is committed on its own, so a failed row never takes the
rows before it down with it.
"""

import csv
import io
import logging
from enum import Enum
from typing import BinaryIO, List, Union

from pps.domain.exceptions import DuplicateRecordError, InsufficientRowsError, MalformedCSVError
from pps.domain.model import UploadResult
from pps.ingestion import columns
from pps.ingestion.columns import ColumnBinding, EntitySpec, bind_header, get_entity_spec
from pps.ingestion.parsers import parse_record
from pps.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

Payload = Union[bytes, str, BinaryIO]


class DuplicatePolicy(str, Enum):
    """What to do with a row whose identifier is already stored."""
    SKIP = "skip"      # keep the stored record, count the row as skipped
    UPSERT = "upsert"  # overwrite the stored record, count it as updated


def read_csv(payload: Payload) -> List[List[str]]:
    """Read a whole CSV payload into rows of cells, dropping blank lines."""
    if hasattr(payload, "read"):
        payload = payload.read()
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedCSVError(f"error reading CSV file: {e}") from e

    # No cell can be longer than the payload itself
    if len(payload) > csv.field_size_limit():
        csv.field_size_limit(len(payload))

    try:
        rows = list(csv.reader(io.StringIO(payload, newline=""), strict=True))
    except csv.Error as e:
        raise MalformedCSVError(f"error reading CSV file: {e}") from e

    return [row for row in rows if row]


class CSVService:
    def __init__(
        self,
        uow: AbstractUnitOfWork,
        duplicate_policy: Union[DuplicatePolicy, str] = DuplicatePolicy.SKIP,
        header_binding: str = columns.BIND_AUTO,
    ):
        self.uow = uow
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.header_binding = header_binding

    def import_patients(self, file: Payload) -> UploadResult:
        return self.import_file(columns.PATIENTS.name, file)

    def import_antibiotics(self, file: Payload) -> UploadResult:
        return self.import_file(columns.ANTIBIOTICS.name, file)

    def import_antibiotic_details(self, file: Payload) -> UploadResult:
        return self.import_file(columns.ANTIBIOTIC_DETAILS.name, file)

    def import_indications(self, file: Payload) -> UploadResult:
        return self.import_file(columns.INDICATIONS.name, file)

    def import_optional_vars(self, file: Payload) -> UploadResult:
        return self.import_file(columns.OPTIONAL_VARS.name, file)

    def import_specimens(self, file: Payload) -> UploadResult:
        return self.import_file(columns.SPECIMENS.name, file)

    def import_file(self, entity: str, file: Payload) -> UploadResult:
        """
        Import every data row of ``file`` as records of type ``entity``.

        Raises:
            UnknownEntityError: if ``entity`` has no column layout
            CSVImportError: if the file as a whole cannot be imported

        Returns:
            UploadResult with counts and one message per rejected row
        """
        spec = get_entity_spec(entity)
        records = read_csv(file)
        if len(records) < 2:
            raise InsufficientRowsError(len(records))

        binding = bind_header(spec, records[0], self.header_binding)
        result = UploadResult(total_records=len(records) - 1)

        logger.info(
            f"Importing {result.total_records} {spec.label} rows "
            f"(policy={self.duplicate_policy.value}, by_name={binding.by_name})"
        )

        with self.uow:
            # Header is row 1, so data rows are numbered from 2
            for row_number, row in enumerate(records[1:], start=2):
                result.processed_records += 1
                self._import_row(spec, binding, row, row_number, result)

        logger.info(
            f"Finished {spec.label} import: {result.inserted_records} inserted, "
            f"{result.updated_records} updated, {result.skipped_records} skipped"
        )
        return result

    def _import_row(
        self,
        spec: EntitySpec,
        binding: ColumnBinding,
        row: List[str],
        row_number: int,
        result: UploadResult,
    ) -> None:
        if len(row) < binding.min_width:
            self._reject(
                result,
                f"Row {row_number}: insufficient columns "
                f"(expected at least {binding.min_width}, got {len(row)})",
            )
            return

        record = parse_record(spec, binding.remap(row))
        if not record.id:
            self._reject(result, f"Row {row_number}: missing {spec.label} ID")
            return

        if spec.has_parent and record.parent_key:
            try:
                parent_found = self.uow.patients.exists(record.parent_key)
            except Exception as e:
                self.uow.rollback()
                self._reject(
                    result,
                    f"Row {row_number}: error looking up parent patient {record.parent_key} "
                    f"for {spec.label} {record.id}: {e}",
                )
                return
            if not parent_found:
                self._reject(
                    result,
                    f"Row {row_number}: parent patient {record.parent_key} not found "
                    f"for {spec.label} {record.id}",
                )
                return

        self._persist(spec, record, row_number, result)

    def _persist(self, spec: EntitySpec, record, row_number: int, result: UploadResult) -> None:
        repo = getattr(self.uow, spec.repository)
        try:
            if not spec.unique_key:
                if repo.contains(record):
                    logger.debug(f"Row {row_number}: identical {spec.label} {record.id} already stored")
                    result.skip()
                    return
                repo.add(record)
                created = True
            elif self.duplicate_policy is DuplicatePolicy.UPSERT:
                created = repo.upsert(record)
            else:
                if repo.exists(record.id):
                    logger.debug(f"Row {row_number}: {spec.label} {record.id} already exists")
                    result.skip()
                    return
                repo.add(record)
                created = True
            self.uow.commit()

        except DuplicateRecordError as e:
            # Someone else stored the same identifier between our check and commit
            if self.duplicate_policy is DuplicatePolicy.SKIP:
                logger.info(f"Row {row_number}: {spec.label} {record.id} was stored concurrently")
                result.skip()
            else:
                self._reject(result, f"Row {row_number}: error saving {spec.label} {record.id}: {e}")
            return

        except Exception as e:
            self.uow.rollback()
            logger.error(f"Error saving {spec.label} {record.id}: {e}")
            result.skip(f"Row {row_number}: error saving {spec.label} {record.id}: {e}")
            return

        if created:
            result.inserted_records += 1
        else:
            result.updated_records += 1

    @staticmethod
    def _reject(result: UploadResult, message: str) -> None:
        logger.warning(message)
        result.skip(message)
