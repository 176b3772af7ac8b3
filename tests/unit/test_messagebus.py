"""Unit tests for command dispatch and import event handling."""

import json
import logging
from datetime import datetime, timezone
from unittest.mock import patch

import fakeredis
import pytest

from pps.adapters import redis_adapter
from pps.domain import model
from pps.domain.commands import ImportCsvFile
from pps.domain.events import CsvFileImported
from pps.domain.exceptions import InsufficientRowsError
from pps.service_layer import handlers, messagebus

SPECIMEN_CSV = (
    b"specimen_type,culture_result,microorganism,antibiotic_susceptibility_test_results,"
    b"resistant_phenotype,PARENT_KEY,KEY\n"
    b"Blood,positive,E. coli,R,ESBL,uuid:p-1,spec-1\n"
    b"Urine,negative,,,,uuid:missing,spec-2\n"
)


def imported_event(**overrides):
    values = dict(
        entity="specimens",
        filename="specimens.csv",
        total_records=2,
        processed_records=2,
        skipped_records=1,
        inserted_records=1,
        updated_records=0,
        imported_at=datetime(2023, 5, 1, 12, 0, tzinfo=timezone.utc),
        errors=["Row 3: parent patient uuid:missing not found for specimen spec-2"],
    )
    values.update(overrides)
    return CsvFileImported(**values)


class TestImportCommand:

    @patch("pps.adapters.redis_adapter.publish")
    def test_returns_upload_result(self, mock_publish, fake_uow):
        fake_uow.patients.committed.append(model.Patient(id="uuid:p-1"))

        results = messagebus.handle(ImportCsvFile("specimens", SPECIMEN_CSV, "specimens.csv"), fake_uow)

        assert len(results) == 1
        result = results[0]
        assert result.inserted_records == 1
        assert result.skipped_records == 1
        assert [s.id for s in fake_uow.specimens.committed] == ["spec-1"]

    @patch("pps.adapters.redis_adapter.publish")
    def test_publishes_import_event(self, mock_publish, fake_uow):
        messagebus.handle(ImportCsvFile("specimens", SPECIMEN_CSV, "specimens.csv"), fake_uow)

        mock_publish.assert_called_once()
        channel, event = mock_publish.call_args[0]
        assert channel == handlers.IMPORT_CHANNEL
        assert isinstance(event, CsvFileImported)
        assert event.entity == "specimens"
        assert event.filename == "specimens.csv"
        assert event.total_records == 2
        assert event.skipped_records == 2

    @patch("pps.adapters.redis_adapter.publish")
    def test_uses_configured_duplicate_policy(self, mock_publish, fake_uow, monkeypatch):
        monkeypatch.setenv("PPS_DUPLICATE_POLICY", "upsert")
        fake_uow.patients.committed.append(model.Patient(id="uuid:p-1"))
        fake_uow.specimens.committed.append(model.Specimen(id="spec-1", parent_key="uuid:p-1"))

        [result] = messagebus.handle(ImportCsvFile("specimens", SPECIMEN_CSV), fake_uow)

        assert result.updated_records == 1
        assert fake_uow.specimens.committed[0].microorganism == "E. coli"

    def test_file_level_errors_propagate(self, fake_uow):
        with pytest.raises(InsufficientRowsError):
            messagebus.handle(ImportCsvFile("specimens", b"specimen_type,KEY\n"), fake_uow)

        assert fake_uow.events == []

    def test_rejects_unknown_messages(self, fake_uow):
        with pytest.raises(Exception, match="was not an Event or Command"):
            messagebus.handle("not a message", fake_uow)


class TestImportEventHandlers:

    def test_summary_is_logged_as_warning_when_rows_skipped(self, fake_uow, caplog):
        with caplog.at_level(logging.INFO, logger="pps.service_layer.handlers"):
            handlers.log_import_summary(imported_event(), fake_uow)

        assert caplog.records[-1].levelno == logging.WARNING
        assert "1 skipped" in caplog.records[-1].getMessage()

    def test_summary_is_info_for_clean_import(self, fake_uow, caplog):
        with caplog.at_level(logging.INFO, logger="pps.service_layer.handlers"):
            handlers.log_import_summary(imported_event(skipped_records=0, errors=[]), fake_uow)

        assert caplog.records[-1].levelno == logging.INFO

    @patch("pps.adapters.redis_adapter.publish", side_effect=ConnectionError("redis down"))
    def test_publish_failure_is_not_raised(self, mock_publish, fake_uow):
        handlers.publish_import_event(imported_event(), fake_uow)

        mock_publish.assert_called_once()


class TestRedisPublishing:

    def test_event_is_published_as_json(self, monkeypatch):
        fake = fakeredis.FakeRedis()
        monkeypatch.setattr(redis_adapter, "r", fake)
        pubsub = fake.pubsub()
        pubsub.subscribe(handlers.IMPORT_CHANNEL)
        pubsub.get_message(timeout=1)  # subscription confirmation

        redis_adapter.publish(handlers.IMPORT_CHANNEL, imported_event())

        message = pubsub.get_message(timeout=1)
        data = json.loads(message["data"])
        assert data["event_type"] == "CsvFileImported"
        assert data["entity"] == "specimens"
        assert data["imported_at"] == "2023-05-01T12:00:00+00:00"
        assert data["errors"] == ["Row 3: parent patient uuid:missing not found for specimen spec-2"]
