import logging
from datetime import datetime, timezone

import config
from pps.domain.commands import ImportCsvFile
from pps.domain.events import CsvFileImported
from pps.domain.model import UploadResult
from pps.service_layer.csv_service import CSVService
from pps.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

IMPORT_CHANNEL = "pps:csv-imports"


def import_csv_file(
    command: ImportCsvFile,
    uow: AbstractUnitOfWork
) -> UploadResult:
    """
    Import an uploaded CSV file for one entity type.

    Flow:
    1. Build the CSV service with the deployment's duplicate policy and header binding
    2. Parse and store the rows (each stored row is committed on its own)
    3. Record a CsvFileImported event with the resulting counts

    Args:
        command: ImportCsvFile command with entity name and raw payload
        uow: Unit of work giving access to the record repositories

    Returns:
        UploadResult summarising the import

    Raises:
        CSVImportError: If the file as a whole cannot be imported
        UnknownEntityError: If the entity has no import pipeline
    """
    upload_config = config.get_upload_config()
    logger.info(f"Processing ImportCsvFile command for {command.entity} ({command.filename or 'unnamed'})")

    service = CSVService(
        uow,
        duplicate_policy=upload_config["duplicate_policy"],
        header_binding=upload_config["header_binding"],
    )
    result = service.import_file(command.entity, command.payload)

    uow.events.append(
        CsvFileImported(
            entity=command.entity,
            filename=command.filename,
            total_records=result.total_records,
            processed_records=result.processed_records,
            skipped_records=result.skipped_records,
            inserted_records=result.inserted_records,
            updated_records=result.updated_records,
            imported_at=datetime.now(timezone.utc),
            errors=list(result.errors),
        )
    )
    return result


def log_import_summary(event: CsvFileImported, uow: AbstractUnitOfWork):
    """Write one audit line per imported file."""
    level = logging.WARNING if event.skipped_records else logging.INFO
    logger.log(
        level,
        f"CSV import of {event.entity} from {event.filename or 'upload'}: "
        f"{event.total_records} rows, {event.inserted_records} inserted, "
        f"{event.updated_records} updated, {event.skipped_records} skipped",
    )


def publish_import_event(event: CsvFileImported, uow: AbstractUnitOfWork):
    """
    Publish CsvFileImported event to external systems.

    Following Cosmic Python pattern: publish domain events to Redis
    for consumption by external services (e.g. dashboards refreshing indicators).
    """
    logger.info(f"Publishing CsvFileImported event for {event.entity}")
    try:
        # Import here so the importer works without a reachable Redis
        from pps.adapters import redis_adapter

        redis_adapter.publish(IMPORT_CHANNEL, event)
        logger.info(f"Published CsvFileImported event for {event.entity}")

    except Exception as e:
        logger.error(f"Failed to publish import event for {event.entity}: {e}")
        # Don't re-raise - external failures shouldn't break the flow
