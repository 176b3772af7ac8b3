"""Row parsers turning CSV cells into domain records."""

import math
import re
from typing import Callable, Dict, Sequence

from pps.domain import model
from pps.ingestion import columns
from pps.ingestion.columns import EntitySpec
from pps.ingestion.dates import parse_date
from pps.ingestion.keys import normalize_key

# Plain ASCII decimal notation only: no digit separators, no nan/inf
_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

# Integer columns are 32-bit in storage
_INT_MAX = 2 ** 31 - 1


def _parse_int(value: str):
    text = value.strip()
    if not _INT_RE.fullmatch(text):
        return None
    number = int(text)
    if abs(number) > _INT_MAX:
        return None
    return number


def _parse_float(value: str):
    text = value.strip()
    if not _FLOAT_RE.fullmatch(text):
        return None
    number = float(text)
    if not math.isfinite(number):
        return None
    return number


CONVERTERS = {
    columns.STR: lambda value: value,
    columns.INT: _parse_int,
    columns.FLOAT: _parse_float,
    columns.DATE: parse_date,
    columns.KEY: normalize_key,
}  # type: Dict[str, Callable]


def parse_record(spec: EntitySpec, cells: Sequence[str]):
    """
    Build a record of ``spec.model`` from one row of cells.

    Never fails: blank, missing or unparseable cells leave the field at its
    default ("" for text, 0 for numbers, None for dates).
    """
    record = spec.model()
    for column in spec.columns:
        if column.index >= len(cells):
            continue
        raw = cells[column.index]
        if raw == "":
            continue
        value = CONVERTERS[column.kind](raw)
        if value is None:
            continue
        setattr(record, column.field, value)
    return record


def parse_patient_record(cells: Sequence[str]) -> model.Patient:
    return parse_record(columns.PATIENTS, cells)


def parse_antibiotic_record(cells: Sequence[str]) -> model.Antibiotic:
    return parse_record(columns.ANTIBIOTICS, cells)


def parse_antibiotic_details_record(cells: Sequence[str]) -> model.AntibioticDetails:
    return parse_record(columns.ANTIBIOTIC_DETAILS, cells)


def parse_indication_record(cells: Sequence[str]) -> model.Indication:
    return parse_record(columns.INDICATIONS, cells)


def parse_optional_var_record(cells: Sequence[str]) -> model.OptionalVar:
    return parse_record(columns.OPTIONAL_VARS, cells)


def parse_specimen_record(cells: Sequence[str]) -> model.Specimen:
    return parse_record(columns.SPECIMENS, cells)
