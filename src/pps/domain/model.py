"""Domain model for point prevalence survey records."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class Patient:
    id: str = ""
    submission_date: Optional[datetime] = None
    region: str = ""
    district: str = ""
    subcounty: str = ""
    facility: str = ""
    level_of_care: str = ""
    ownership: str = ""
    ward_name: str = ""
    ward_total_patients: int = 0
    ward_eligible_patients: int = 0
    survey_date: Optional[datetime] = None
    patient_initials: str = ""
    code: str = ""
    rand_num: int = 0
    patient_code: str = ""
    show_code: str = ""
    is_the_patient_an_infant: str = ""
    age_months: int = 0
    age_years: int = 0
    pre_term_birth: str = ""
    gender: str = ""
    weight: float = 0.0
    weight_birth_kg: float = 0.0
    admission_date: Optional[datetime] = None
    surgery_since_admission: str = ""
    urinary_catheter: str = ""
    peripheral_vascular_catheter: str = ""
    central_vascular_catheter: str = ""
    intubation: str = ""
    patient_on_antibiotic: str = ""
    patient_number_antibiotics: int = 0
    malaria_status: str = ""
    tuberculosis_status: str = ""
    hiv_status: str = ""
    hiv_on_art: str = ""
    hiv_cd4_count: str = ""
    hiv_viral_load: str = ""
    diabetes: str = ""
    malnutrition_status: str = ""
    hypertension: str = ""
    referred_from: str = ""
    hospitalization_90_days: str = ""
    type_surgery_since_admission: str = ""
    additional_comment: str = ""
    comments: str = ""
    instance_id: str = ""
    submitter_id: str = ""
    submitter_name: str = ""
    attachments_present: str = ""
    attachments_expected: str = ""
    status: str = ""
    review_state: str = ""
    device_id: str = ""
    edits: str = ""
    form_version: str = ""


@dataclass
class Antibiotic:
    id: str = ""
    antibiotic_notes: str = ""
    antibiotic_inn_name: str = ""
    other_antibiotic: str = ""
    atc_code: str = ""
    antibiotic_class: str = ""
    antibiotic_aware_classification: str = ""  # WHO AWaRe: Access / Watch / Reserve
    antibiotic_written_in_inn: str = ""
    start_date_antibiotic: Optional[datetime] = None
    unit_dose: float = 0.0
    unit_doses_combination: str = ""
    unit_dose_measure_unit: str = ""
    unit_dose_frequency: str = ""
    administration_route: str = ""
    parent_key: str = ""


@dataclass
class AntibioticDetails:
    """
    Prescriber and compliance details for a patient's antibiotic course.

    The source export has no natural key for these rows, so the normalized
    parent key is used as the identifier as well: one details row per patient.
    """
    id: str = ""
    prescriber: str = ""
    intraveno: str = ""
    oral_switch: str = ""
    number_missed: str = ""
    missed_dose: str = ""
    guideline: str = ""
    treatment: str = ""
    parent_key: str = ""


@dataclass
class Indication:
    id: str = ""
    indication_type: str = ""
    surg_proph_duration: str = ""
    surg_proph_site: str = ""
    diagnosis: str = ""
    start_date_treatment: Optional[datetime] = None
    reason_in_notes: str = ""
    culture_sample_taken: str = ""
    parent_key: str = ""


@dataclass
class OptionalVar:
    """Supplementary prescribing variables. Several rows may share one id."""
    id: str = ""
    prescriber_type: str = ""
    intravenous_type: str = ""
    oral_switch: str = ""
    number_missed_doses: int = 0
    missed_doses_reason: str = ""
    guidelines_compliance: str = ""
    treatment_type: str = ""
    parent_key: str = ""
    row_id: Optional[int] = None  # surrogate key, assigned by storage


@dataclass
class Specimen:
    id: str = ""
    specimen_type: str = ""
    culture_result: str = ""
    microorganism: str = ""
    antibiotic_susceptibility_test_results: str = ""
    resistant_phenotype: str = ""
    parent_key: str = ""


SURROGATE_FIELDS = ("row_id",)


def record_values(record) -> Dict[str, Any]:
    """Return the record's data fields, leaving out storage-assigned keys."""
    return {
        f.name: getattr(record, f.name)
        for f in fields(record)
        if f.name not in SURROGATE_FIELDS
    }


def to_dict(record) -> Dict[str, Any]:
    """Serialize a record for JSON responses."""
    data = record_values(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


@dataclass
class UploadResult:
    """Summary of one CSV import. Partial failures end up in ``errors``."""
    total_records: int = 0
    processed_records: int = 0
    skipped_records: int = 0
    inserted_records: int = 0
    updated_records: int = 0
    errors: List[str] = field(default_factory=list)

    def skip(self, message: Optional[str] = None) -> None:
        self.skipped_records += 1
        if message:
            self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "skipped_records": self.skipped_records,
            "inserted_records": self.inserted_records,
            "updated_records": self.updated_records,
            "errors": list(self.errors),
        }
