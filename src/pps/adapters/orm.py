import logging
from sqlalchemy import (
    Table,
    Column,
    Integer,
    Float,
    String,
    Text,
    DateTime,
)
from sqlalchemy.orm import registry
from pps.domain import model

logger = logging.getLogger(__name__)

# SQLAlchemy 2.0 pattern: use registry
mapper_registry = registry()
metadata = mapper_registry.metadata

patients = Table(
    "patients",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("submission_date", DateTime),
    Column("region", Text),
    Column("district", Text),
    Column("subcounty", Text),
    Column("facility", Text),
    Column("level_of_care", Text),
    Column("ownership", Text),
    Column("ward_name", Text),
    Column("ward_total_patients", Integer),
    Column("ward_eligible_patients", Integer),
    Column("survey_date", DateTime),
    Column("patient_initials", Text),
    Column("code", Text),
    Column("rand_num", Integer),
    Column("patient_code", Text),
    Column("show_code", Text),
    Column("is_the_patient_an_infant", Text),
    Column("age_months", Integer),
    Column("age_years", Integer),
    Column("pre_term_birth", Text),
    Column("gender", Text),
    Column("weight", Float),
    Column("weight_birth_kg", Float),
    Column("admission_date", DateTime),
    Column("surgery_since_admission", Text),
    Column("urinary_catheter", Text),
    Column("peripheral_vascular_catheter", Text),
    Column("central_vascular_catheter", Text),
    Column("intubation", Text),
    Column("patient_on_antibiotic", Text),
    Column("patient_number_antibiotics", Integer),
    Column("malaria_status", Text),
    Column("tuberculosis_status", Text),
    Column("hiv_status", Text),
    Column("hiv_on_art", Text),
    Column("hiv_cd4_count", Text),
    Column("hiv_viral_load", Text),
    Column("diabetes", Text),
    Column("malnutrition_status", Text),
    Column("hypertension", Text),
    Column("referred_from", Text),
    Column("hospitalization_90_days", Text),
    Column("type_surgery_since_admission", Text),
    Column("additional_comment", Text),
    Column("comments", Text),
    Column("instance_id", Text),
    Column("submitter_id", Text),
    Column("submitter_name", Text),
    Column("attachments_present", Text),
    Column("attachments_expected", Text),
    Column("status", Text),
    Column("review_state", Text),
    Column("device_id", Text),
    Column("edits", Text),
    Column("form_version", Text),
)

# parent_key references patients.key but is only checked at import time
antibiotics = Table(
    "antibiotics",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("antibiotic_notes", Text),
    Column("antibiotic_inn_name", Text),
    Column("other_antibiotic", Text),
    Column("atc_code", Text),
    Column("antibiotic_class", Text),
    Column("antibiotic_aware_classification", Text),
    Column("antibiotic_written_in_inn", Text),
    Column("start_date_antibiotic", DateTime),
    Column("unit_dose", Float),
    Column("unit_doses_combination", Text),
    Column("unit_dose_measure_unit", Text),
    Column("unit_dose_frequency", Text),
    Column("administration_route", Text),
    Column("parent_key", String(255), index=True),
)

antibiotic_details = Table(
    "antibiotic_details",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("prescriber", Text),
    Column("intraveno", Text),
    Column("oral_switch", Text),
    Column("number_missed", Text),
    Column("missed_dose", Text),
    Column("guideline", Text),
    Column("treatment", Text),
    Column("parent_key", String(255), index=True),
)

indications = Table(
    "indications",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("indication_type", Text),
    Column("surg_proph_duration", Text),
    Column("surg_proph_site", Text),
    Column("diagnosis", Text),
    Column("start_date_treatment", DateTime),
    Column("reason_in_notes", Text),
    Column("culture_sample_taken", Text),
    Column("parent_key", String(255), index=True),
)

# key is not unique here: one submission may carry several optional var rows
optional_vars = Table(
    "optional_vars",
    metadata,
    Column("row_id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(255), index=True),
    Column("prescriber_type", Text),
    Column("intravenous_type", Text),
    Column("oral_switch", Text),
    Column("number_missed_doses", Integer),
    Column("missed_doses_reason", Text),
    Column("guidelines_compliance", Text),
    Column("treatment_type", Text),
    Column("parent_key", String(255), index=True),
)

specimens = Table(
    "specimens",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("specimen_type", Text),
    Column("culture_result", Text),
    Column("microorganism", Text),
    Column("antibiotic_susceptibility_test_results", Text),
    Column("resistant_phenotype", Text),
    Column("parent_key", String(255), index=True),
)

TABLES = {
    model.Patient: patients,
    model.Antibiotic: antibiotics,
    model.AntibioticDetails: antibiotic_details,
    model.Indication: indications,
    model.OptionalVar: optional_vars,
    model.Specimen: specimens,
}


def start_mappers():
    logger.info("Starting mappers")
    for domain_class, table in TABLES.items():
        mapper_registry.map_imperatively(
            domain_class,
            table,
            properties={
                # records expose the identifier as 'id', stored in column 'key'
                "id": table.c.key,
            },
        )
