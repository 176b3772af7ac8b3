"""
Column layouts of the survey CSV exports.

Every entity is read by fixed position. Each table below maps a column index
to exactly one record field; a wrong offset silently fills a field with the
neighbouring column, so these tables are the contract with the export and
change only together with it.

When the file header carries the expected column names the columns are bound
by name instead (see ``bind_header``), which tolerates reordered exports.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Type

from pps.domain import model
from pps.domain.exceptions import HeaderMismatchError, UnknownEntityError

logger = logging.getLogger(__name__)

STR = "str"
INT = "int"
FLOAT = "float"
DATE = "date"
KEY = "key"  # compound key, normalized to the submission identifier


@dataclass(frozen=True)
class Column:
    index: int
    header: str
    field: str
    kind: str = STR


PATIENT_COLUMNS = (
    Column(0, "KEY", "id"),
    Column(1, "SubmissionDate", "submission_date", DATE),
    Column(2, "region", "region"),
    Column(3, "district", "district"),
    Column(4, "subcounty", "subcounty"),
    Column(5, "facility", "facility"),
    Column(6, "level_of_care", "level_of_care"),
    Column(7, "ownership", "ownership"),
    Column(8, "ward_name", "ward_name"),
    Column(9, "ward_total_patients", "ward_total_patients", INT),
    Column(10, "ward_eligible_patients", "ward_eligible_patients", INT),
    Column(11, "survey_date", "survey_date", DATE),
    Column(12, "patient_initials", "patient_initials"),
    Column(13, "code", "code"),
    # 14 is a calculated form field with no counterpart in the record
    Column(15, "rand_num", "rand_num", INT),
    Column(16, "patient_code", "patient_code"),
    Column(17, "show_code", "show_code"),
    Column(18, "is_the_patient_an_infant", "is_the_patient_an_infant"),
    Column(19, "age_months", "age_months", INT),
    Column(20, "age_years", "age_years", INT),
    Column(21, "pre_term_birth", "pre_term_birth"),
    Column(22, "gender", "gender"),
    Column(23, "weight", "weight", FLOAT),
    Column(24, "weight_birth_kg", "weight_birth_kg", FLOAT),
    Column(25, "admission_date", "admission_date", DATE),
    Column(26, "surgery_since_admission", "surgery_since_admission"),
    Column(27, "urinary_catheter", "urinary_catheter"),
    Column(28, "peripheral_vascular_catheter", "peripheral_vascular_catheter"),
    Column(29, "central_vascular_catheter", "central_vascular_catheter"),
    Column(30, "intubation", "intubation"),
    Column(31, "patient_on_antibiotic", "patient_on_antibiotic"),
    Column(32, "patient_number_antibiotics", "patient_number_antibiotics", INT),
    Column(33, "malaria_status", "malaria_status"),
    Column(34, "tuberculosis_status", "tuberculosis_status"),
    Column(35, "hiv_status", "hiv_status"),
    Column(36, "hiv_on_art", "hiv_on_art"),
    Column(37, "hiv_cd4_count", "hiv_cd4_count"),
    Column(38, "hiv_viral_load", "hiv_viral_load"),
    Column(39, "diabetes", "diabetes"),
    Column(40, "malnutrition_status", "malnutrition_status"),
    Column(41, "hypertension", "hypertension"),
    Column(42, "referred_from", "referred_from"),
    Column(43, "hospitalization_90_days", "hospitalization_90_days"),
    Column(44, "type_surgery_since_admission", "type_surgery_since_admission"),
    Column(45, "additional_comment", "additional_comment"),
    Column(46, "comments", "comments"),
    Column(47, "meta-instanceID", "instance_id"),
    Column(48, "SubmitterID", "submitter_id"),
    Column(49, "SubmitterName", "submitter_name"),
    Column(50, "AttachmentsPresent", "attachments_present"),
    Column(51, "AttachmentsExpected", "attachments_expected"),
    Column(52, "Status", "status"),
    Column(53, "ReviewState", "review_state"),
    Column(54, "DeviceID", "device_id"),
    Column(55, "Edits", "edits"),
    Column(56, "FormVersion", "form_version"),
)

ANTIBIOTIC_COLUMNS = (
    Column(0, "antibiotic_notes", "antibiotic_notes"),
    Column(1, "antibiotic_inn_name", "antibiotic_inn_name"),
    Column(2, "other_antibiotic", "other_antibiotic"),
    Column(3, "atc_code", "atc_code"),
    Column(4, "antibiotic_class", "antibiotic_class"),
    Column(5, "antibiotic_aware_classification", "antibiotic_aware_classification"),
    Column(6, "antibiotic_written_in_inn", "antibiotic_written_in_inn"),
    Column(7, "start_date_antibiotic", "start_date_antibiotic", DATE),
    Column(8, "unit_dose", "unit_dose", FLOAT),
    Column(9, "unit_doses_combination", "unit_doses_combination"),
    Column(10, "unit_dose_measure_unit", "unit_dose_measure_unit"),
    Column(11, "unit_dose_frequency", "unit_dose_frequency"),
    Column(12, "administration_route", "administration_route"),
    Column(13, "PARENT_KEY", "parent_key", KEY),
    Column(14, "KEY", "id"),
)

# Both the identifier and the parent reference come from PARENT_KEY.
ANTIBIOTIC_DETAILS_COLUMNS = (
    Column(0, "prescriber", "prescriber"),
    Column(1, "intraveno", "intraveno"),
    Column(2, "oral_switch", "oral_switch"),
    Column(3, "number_missed", "number_missed"),
    Column(4, "missed_dose", "missed_dose"),
    Column(5, "guideline", "guideline"),
    Column(6, "treatment", "treatment"),
    Column(7, "PARENT_KEY", "parent_key", KEY),
    Column(7, "PARENT_KEY", "id", KEY),
)

INDICATION_COLUMNS = (
    Column(0, "indication_type", "indication_type"),
    Column(1, "surg_proph_duration", "surg_proph_duration"),
    Column(2, "surg_proph_site", "surg_proph_site"),
    Column(3, "diagnosis", "diagnosis"),
    Column(4, "start_date_treatment", "start_date_treatment", DATE),
    Column(5, "reason_in_notes", "reason_in_notes"),
    Column(6, "culture_sample_taken", "culture_sample_taken"),
    Column(7, "PARENT_KEY", "parent_key", KEY),
    Column(8, "KEY", "id"),
)

OPTIONAL_VAR_COLUMNS = (
    Column(0, "prescriber_type", "prescriber_type"),
    Column(1, "intravenous_type", "intravenous_type"),
    Column(2, "oral_switch", "oral_switch"),
    Column(3, "number_missed_doses", "number_missed_doses", INT),
    Column(4, "missed_doses_reason", "missed_doses_reason"),
    Column(5, "guidelines_compliance", "guidelines_compliance"),
    Column(6, "treatment_type", "treatment_type"),
    Column(7, "PARENT_KEY", "parent_key", KEY),
    Column(8, "KEY", "id", KEY),
)

SPECIMEN_COLUMNS = (
    Column(0, "specimen_type", "specimen_type"),
    Column(1, "culture_result", "culture_result"),
    Column(2, "microorganism", "microorganism"),
    Column(3, "antibiotic_susceptibility_test_results", "antibiotic_susceptibility_test_results"),
    Column(4, "resistant_phenotype", "resistant_phenotype"),
    Column(5, "PARENT_KEY", "parent_key", KEY),
    Column(6, "KEY", "id"),
)


@dataclass(frozen=True)
class EntitySpec:
    """Everything the importer needs to know about one record type."""
    name: str              # URL / command name, e.g. 'antibiotic-details'
    label: str             # used in report messages
    model: Type
    columns: Tuple[Column, ...]
    min_columns: int
    repository: str        # attribute name on the unit of work
    has_parent: bool = True
    unique_key: bool = True


PATIENTS = EntitySpec(
    "patients", "patient", model.Patient, PATIENT_COLUMNS,
    min_columns=50, repository="patients", has_parent=False,
)
ANTIBIOTICS = EntitySpec(
    "antibiotics", "antibiotic", model.Antibiotic, ANTIBIOTIC_COLUMNS,
    min_columns=15, repository="antibiotics",
)
ANTIBIOTIC_DETAILS = EntitySpec(
    "antibiotic-details", "antibiotic details", model.AntibioticDetails, ANTIBIOTIC_DETAILS_COLUMNS,
    min_columns=8, repository="antibiotic_details",
)
INDICATIONS = EntitySpec(
    "indications", "indication", model.Indication, INDICATION_COLUMNS,
    min_columns=9, repository="indications",
)
OPTIONAL_VARS = EntitySpec(
    "optional-vars", "optional var", model.OptionalVar, OPTIONAL_VAR_COLUMNS,
    min_columns=9, repository="optional_vars", unique_key=False,
)
SPECIMENS = EntitySpec(
    "specimens", "specimen", model.Specimen, SPECIMEN_COLUMNS,
    min_columns=7, repository="specimens",
)

ENTITY_SPECS = {
    spec.name: spec
    for spec in (PATIENTS, ANTIBIOTICS, ANTIBIOTIC_DETAILS, INDICATIONS, OPTIONAL_VARS, SPECIMENS)
}  # type: Dict[str, EntitySpec]


def get_entity_spec(name: str) -> EntitySpec:
    try:
        return ENTITY_SPECS[name.replace("_", "-")]
    except KeyError:
        raise UnknownEntityError(f"No CSV import available for '{name}'") from None


# ---------- Header binding ----------

BIND_POSITION = "position"
BIND_AUTO = "auto"
BIND_STRICT = "strict"
BINDING_MODES = (BIND_POSITION, BIND_AUTO, BIND_STRICT)

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")
_GROUP_SEPARATOR_RE = re.compile(r"[-/]")


def normalize_header(name: str) -> str:
    """'Core_variables-antibiotic_inn_name' -> 'antibioticinnname'."""
    last_segment = _GROUP_SEPARATOR_RE.split((name or "").strip())[-1]
    return _NON_ALNUM_RE.sub("", last_segment.lower())


@dataclass(frozen=True)
class ColumnBinding:
    """Where each canonical column is found in an uploaded file."""
    by_name: bool
    positions: Dict[int, int]  # canonical index -> source index
    min_width: int

    def remap(self, row: Sequence[str]) -> List[str]:
        """Reorder a source row into the canonical column layout."""
        if not self.by_name:
            return list(row)
        width = max(self.positions) + 1 if self.positions else 0
        cells = [""] * width
        for canonical, source in self.positions.items():
            if source < len(row):
                cells[canonical] = row[source]
        return cells


def positional_binding(spec: EntitySpec) -> ColumnBinding:
    return ColumnBinding(
        by_name=False,
        positions={column.index: column.index for column in spec.columns},
        min_width=spec.min_columns,
    )


def bind_header(spec: EntitySpec, header: Sequence[str], mode: str = BIND_AUTO) -> ColumnBinding:
    """
    Decide how the columns of an uploaded file map onto the entity layout.

    ``position`` always uses the fixed table. ``auto`` binds by header name when
    every required column is present and falls back to positions otherwise.
    ``strict`` raises HeaderMismatchError instead of falling back.
    """
    if mode not in BINDING_MODES:
        raise ValueError(f"Unknown header binding mode: {mode}")
    if mode == BIND_POSITION:
        return positional_binding(spec)

    source_index = {}  # type: Dict[str, int]
    for position, name in enumerate(header):
        source_index.setdefault(normalize_header(name), position)

    missing = []  # type: List[str]
    positions = {}  # type: Dict[int, int]
    required_sources = []  # type: List[int]
    for column in spec.columns:
        found: Optional[int] = source_index.get(normalize_header(column.header))
        if found is None:
            if column.index < spec.min_columns and column.header not in missing:
                missing.append(column.header)
            continue
        positions[column.index] = found
        if column.index < spec.min_columns:
            required_sources.append(found)

    if missing:
        if mode == BIND_STRICT:
            raise HeaderMismatchError(spec.label, missing)
        logger.warning(
            f"{spec.label} header does not name {len(missing)} expected column(s); "
            f"reading columns by position"
        )
        return positional_binding(spec)

    return ColumnBinding(
        by_name=True,
        positions=positions,
        min_width=max(required_sources) + 1,
    )
