"""
Views for read operations - separate from the CSV import path.
Following Cosmic Python CQRS pattern: views query the tables directly with SQL.

Every indicator accepts the same survey filter. Patient-level filters apply
to child tables (antibiotics, details, indications, optional vars, specimens)
through a join on parent_key, added only when a filter is actually set.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import DateTime, text

from pps.domain import model
from pps.domain.exceptions import UnknownEntityError
from pps.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

LONG_STAY_DAYS = 7

AWARE_CATEGORIES = (
    ("access", "Access", "First choice antibiotics"),
    ("watch", "Watch", "Second choice antibiotics"),
    ("reserve", "Reserve", "Last resort antibiotics"),
)


@dataclass
class SurveyFilter:
    """Query parameters narrowing the surveyed population."""
    start_date: Optional[str] = None   # YYYY-MM-DD, compared to submission date
    end_date: Optional[str] = None
    region: Optional[str] = None
    district: Optional[str] = None
    subcounty: Optional[str] = None
    facility: Optional[str] = None
    level: Optional[str] = None        # level of care
    ownership: Optional[str] = None

    def is_active(self) -> bool:
        conditions, _ = self.clauses()
        return bool(conditions)

    def clauses(self) -> Tuple[List[str], Dict[str, Any]]:
        """SQL conditions on the patients table plus their bound parameters."""
        conditions = []  # type: List[str]
        params = {}  # type: Dict[str, Any]

        # Dates that are not YYYY-MM-DD are ignored rather than rejected
        for name, operator in (("start_date", ">="), ("end_date", "<=")):
            value = _valid_date(getattr(self, name))
            if value:
                conditions.append(f"DATE(patients.submission_date) {operator} :{name}")
                params[name] = value

        for name, column in (
            ("region", "region"),
            ("district", "district"),
            ("subcounty", "subcounty"),
            ("facility", "facility"),
            ("level", "level_of_care"),
            ("ownership", "ownership"),
        ):
            value = getattr(self, name)
            if value:
                conditions.append(f"patients.{column} = :{name}")
                params[name] = value

        return conditions, params


def _valid_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        return None


def _percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return (float(part) / float(whole)) * 100


class _FilteredQueries:
    """Builds the filtered COUNT / GROUP BY statements used by the indicators."""

    def __init__(self, session, filters: Optional[SurveyFilter]):
        self.session = session
        self.filters = filters or SurveyFilter()

    def from_clause(self, table: str, conditions: List[str]) -> Tuple[str, Dict[str, Any]]:
        sql = f" FROM {table}"
        clauses = list(conditions)
        params = {}  # type: Dict[str, Any]

        if table == "patients":
            filter_clauses, params = self.filters.clauses()
            clauses += filter_clauses
        elif self.filters.is_active():
            sql += f" JOIN patients ON patients.key = {table}.parent_key"
            filter_clauses, params = self.filters.clauses()
            clauses += filter_clauses

        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        return sql, params

    def count(self, table: str, *conditions: str, expression: str = "COUNT(*)") -> int:
        sql, params = self.from_clause(table, list(conditions))
        value = self.session.execute(text(f"SELECT {expression}{sql}"), params).scalar()
        return int(value or 0)

    def group_counts(self, table: str, column: str, *conditions: str) -> Dict[str, int]:
        qualified = f"{table}.{column}"
        sql, params = self.from_clause(table, [f"{qualified} IS NOT NULL", f"{qualified} != ''", *conditions])
        rows = self.session.execute(
            text(f"SELECT {qualified}, COUNT(*){sql} GROUP BY {qualified}"), params
        ).fetchall()
        return {row[0]: int(row[1]) for row in rows}

    # ---------- shared building blocks ----------

    def total_antibiotics(self) -> int:
        return self.count("antibiotics")

    def patients_with_antibiotics(self) -> int:
        return self.count("antibiotics", expression="COUNT(DISTINCT antibiotics.parent_key)")

    def total_patients(self) -> int:
        return self.count("patients")

    def injectable(self) -> int:
        return self.count(
            "antibiotic_details",
            "(antibiotic_details.intraveno = 'iv' OR antibiotic_details.intraveno LIKE 'iv%')",
        )

    def generic(self) -> int:
        return self.count(
            "antibiotics",
            "antibiotics.antibiotic_inn_name IS NOT NULL",
            "antibiotics.antibiotic_inn_name != ''",
        )

    def appropriate_diagnosis(self) -> int:
        return self.count(
            "indications",
            "indications.indication_type IS NOT NULL",
            "indications.indication_type != ''",
        )

    def culture_based(self) -> int:
        return self.count("indications", "indications.culture_sample_taken = 'yes'")

    def culture_samples(self) -> int:
        return self.count(
            "specimens",
            "specimens.specimen_type IS NOT NULL",
            "specimens.specimen_type != ''",
        )

    def missed_doses(self) -> int:
        return self.count(
            "antibiotic_details",
            "antibiotic_details.number_missed IS NOT NULL",
            "antibiotic_details.number_missed != ''",
            "antibiotic_details.number_missed != '0'",
        )

    def missed_dose_reasons(self) -> Dict[str, int]:
        return self.group_counts("antibiotic_details", "missed_dose")


def get_basic_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Antibiotic totals, patients on antibiotics and the encounter percentage."""
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        total_antibiotics = queries.total_antibiotics()
        patients_with_antibiotics = queries.patients_with_antibiotics()
        total_patients = queries.total_patients()

    average = 0.0
    if patients_with_antibiotics:
        average = float(total_antibiotics) / float(patients_with_antibiotics)

    return {
        "total_antibiotics_prescribed": total_antibiotics,
        "total_patients_with_antibiotics": patients_with_antibiotics,
        "total_patients_on_ward": total_patients,
        "average_antibiotics_per_patient": average,
        "percentage_encounter_with_antibiotic": _percentage(patients_with_antibiotics, total_patients),
    }


def get_injectable_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        injectable = queries.injectable()
        total_antibiotics = queries.total_antibiotics()

    return {
        "total_injectable_prescriptions": injectable,
        "total_antibiotics_prescribed": total_antibiotics,
        "percentage_injectable_prescriptions": _percentage(injectable, total_antibiotics),
    }


def get_generic_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        generic = queries.generic()
        total_antibiotics = queries.total_antibiotics()

    return {
        "total_generic_prescriptions": generic,
        "total_antibiotics_prescribed": total_antibiotics,
        "percentage_generic_prescriptions": _percentage(generic, total_antibiotics),
    }


def get_guideline_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Guideline compliance as recorded in the optional variables ('y')."""
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        compliant = queries.count("optional_vars", "optional_vars.guidelines_compliance = 'y'")
        total_optional_vars = queries.count("optional_vars")
        total_antibiotics = queries.total_antibiotics()

    return {
        "total_guideline_compliant": compliant,
        "total_optional_vars": total_optional_vars,
        "total_antibiotics_prescribed": total_antibiotics,
        "percentage_guideline_compliant": _percentage(compliant, total_optional_vars),
    }


def get_diagnosis_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        appropriate = queries.appropriate_diagnosis()
        total_antibiotics = queries.total_antibiotics()

    return {
        "total_appropriate_diagnosis": appropriate,
        "total_antibiotics_prescribed": total_antibiotics,
        "percentage_appropriate_diagnosis": _percentage(appropriate, total_antibiotics),
    }


def get_culture_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        culture_based = queries.culture_based()
        culture_samples = queries.culture_samples()
        total_antibiotics = queries.total_antibiotics()

    return {
        "total_culture_based_prescriptions": culture_based,
        "total_culture_samples_taken": culture_samples,
        "total_antibiotics_prescribed": total_antibiotics,
        "percentage_culture_based_prescriptions": _percentage(culture_based, total_antibiotics),
    }


def get_missed_dose_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        return {
            "total_missed_doses": queries.missed_doses(),
            "missed_dose_reasons": queries.missed_dose_reasons(),
        }


def get_prescriber_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        return {"prescriber_stats": queries.group_counts("antibiotic_details", "prescriber")}


def get_oral_switch_metrics(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        return {
            "oral_switch_stats": queries.group_counts(
                "antibiotic_details", "oral_switch", "antibiotic_details.oral_switch = 'yes'"
            )
        }


def get_aware_categorization(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """WHO AWaRe breakdown of prescribed antibiotics."""
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        total = queries.total_antibiotics()
        counts = {
            key: queries.count(
                "antibiotics",
                f"antibiotics.antibiotic_aware_classification = '{classification}'",
            )
            for key, classification, _ in AWARE_CATEGORIES
        }

    metrics = {"total_antibiotics": total}  # type: Dict[str, Any]
    for key, _, description in AWARE_CATEGORIES:
        metrics[key] = {
            "count": counts[key],
            "percentage": _percentage(counts[key], total),
            "description": description,
        }
    unclassified = total - sum(counts.values())
    metrics["unclassified"] = {
        "count": unclassified,
        "percentage": _percentage(unclassified, total),
        "description": "Not categorized",
    }
    return metrics


def get_long_stay_patients(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Patients surveyed more than LONG_STAY_DAYS after admission."""
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        sql, params = queries.from_clause("patients", [])
        rows = uow.session.execute(
            text(f"SELECT patients.survey_date, patients.admission_date{sql}").columns(
                survey_date=DateTime, admission_date=DateTime
            ),
            params,
        ).fetchall()

    threshold = timedelta(days=LONG_STAY_DAYS)
    long_stay = sum(
        1 for survey_date, admission_date in rows
        if survey_date and admission_date and survey_date - admission_date > threshold
    )
    total = len(rows)

    return {
        f"patients_staying_longer_than_{LONG_STAY_DAYS}_days": long_stay,
        "total_patients": total,
        "percentage_long_stay": _percentage(long_stay, total),
        "description": (
            f"Patients staying longer than {LONG_STAY_DAYS} days "
            "(survey_date - admission_date > 7 days)"
        ),
    }


def get_all_indicators(filters: Optional[SurveyFilter], uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """
    All stewardship indicators in one response.

    Percentages (except the encounter percentage) use the number of prescribed
    antibiotics as denominator.
    """
    logger.debug(f"Computing all indicators for filters {filters}")
    with uow:
        queries = _FilteredQueries(uow.session, filters)
        total_antibiotics = queries.total_antibiotics()
        patients_with_antibiotics = queries.patients_with_antibiotics()
        total_patients = queries.total_patients()
        injectable = queries.injectable()
        generic = queries.generic()
        guideline_compliant = queries.count("antibiotic_details", "antibiotic_details.guideline = 'yes'")
        appropriate = queries.appropriate_diagnosis()
        culture_based = queries.culture_based()
        culture_samples = queries.culture_samples()
        missed_doses = queries.missed_doses()
        missed_dose_reasons = queries.missed_dose_reasons()

    average = 0.0
    if patients_with_antibiotics:
        average = float(total_antibiotics) / float(patients_with_antibiotics)

    return {
        "total_antibiotics_prescribed": total_antibiotics,
        "total_patients_with_antibiotics": patients_with_antibiotics,
        "average_antibiotics_per_patient": average,
        "total_patients_on_ward": total_patients,
        "percentage_encounter_with_antibiotic": _percentage(patients_with_antibiotics, total_patients),
        "total_injectable_prescriptions": injectable,
        "percentage_injectable_prescriptions": _percentage(injectable, total_antibiotics),
        "total_generic_prescriptions": generic,
        "percentage_generic_prescriptions": _percentage(generic, total_antibiotics),
        "total_guideline_compliant": guideline_compliant,
        "percentage_guideline_compliant": _percentage(guideline_compliant, total_antibiotics),
        "total_appropriate_diagnosis": appropriate,
        "percentage_appropriate_diagnosis": _percentage(appropriate, total_antibiotics),
        "total_culture_based_prescriptions": culture_based,
        "percentage_culture_based_prescriptions": _percentage(culture_based, total_antibiotics),
        "total_culture_samples_taken": culture_samples,
        "total_missed_doses": missed_doses,
        "missed_dose_reasons": missed_dose_reasons,
    }


# ---------- patient records ----------

CHILD_REPOSITORIES = {
    "antibiotics": "antibiotics",
    "antibiotic-details": "antibiotic_details",
    "indications": "indications",
    "optional-vars": "optional_vars",
    "specimens": "specimens",
}


def list_patients(
    filters: Optional[SurveyFilter],
    uow: AbstractUnitOfWork,
    limit: int = 100,
    offset: int = 0,
) -> Dict[str, Any]:
    """Filtered, paginated patient listing ordered by submission key."""
    filters = filters or SurveyFilter()
    with uow:
        if filters.is_active():
            queries = _FilteredQueries(uow.session, filters)
            total = queries.total_patients()
            sql, params = queries.from_clause("patients", [])
            keys = uow.session.execute(
                text(f"SELECT patients.key{sql} ORDER BY patients.key LIMIT :limit OFFSET :offset"),
                {**params, "limit": limit, "offset": offset},
            ).scalars().all()
            records = [uow.patients.get(key) for key in keys]
        else:
            total = uow.patients.count()
            records = uow.patients.list(limit=limit, offset=offset)

        # Serialize inside the session so attributes are still loaded
        patients = [model.to_dict(record) for record in records]

    return {
        "patients": patients,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def get_patient(key: str, uow: AbstractUnitOfWork) -> Optional[Dict[str, Any]]:
    with uow:
        patient = uow.patients.get(key)
        if patient is None:
            return None
        return model.to_dict(patient)


def get_patient_children(key: str, kind: str, uow: AbstractUnitOfWork) -> Optional[List[Dict[str, Any]]]:
    """
    Records of one child type attached to a patient.

    Returns None when the patient does not exist.
    Raises UnknownEntityError for an unknown child type.
    """
    repository_name = CHILD_REPOSITORIES.get(kind.replace("_", "-"))
    if repository_name is None:
        raise UnknownEntityError(f"unknown patient record type: {kind}")

    with uow:
        if not uow.patients.exists(key):
            return None
        records = getattr(uow, repository_name).list_by_parent(key)
        return [model.to_dict(record) for record in records]
