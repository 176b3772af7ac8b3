"""Command line import of a PPS CSV export into the configured database."""

import argparse
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import create_engine

import config
from pps.adapters import orm
from pps.domain.commands import ImportCsvFile
from pps.domain.exceptions import CSVImportError, UnknownEntityError
from pps.ingestion.columns import ENTITY_SPECS
from pps.service_layer import messagebus
from pps.service_layer.unit_of_work import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pps-import",
        description="Import a point prevalence survey CSV export",
    )
    parser.add_argument("entity", choices=sorted(ENTITY_SPECS), help="record type held by the file")
    parser.add_argument("csv_path", type=Path, help="path to the CSV file")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="create missing tables before importing",
    )
    return parser


def main(argv=None, uow=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.get_log_level()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config.get_upload_config()
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if uow is None:
        if args.create_tables:
            orm.metadata.create_all(create_engine(config.get_postgres_uri()))
        orm.start_mappers()
        uow = SqlAlchemyUnitOfWork()

    try:
        payload = args.csv_path.read_bytes()
    except OSError as e:
        print(f"error: cannot read {args.csv_path}: {e}", file=sys.stderr)
        return 1

    command = ImportCsvFile(entity=args.entity, payload=payload, filename=args.csv_path.name)
    try:
        [result] = messagebus.handle(command, uow)
    except (CSVImportError, UnknownEntityError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
