"""
Integration tests for the PPS indicator views - following Cosmic Python pattern.

Records are stored through the unit of work; views read them back with SQL.
"""
from datetime import datetime

import pytest

from pps import views
from pps.domain import model
from pps.domain.exceptions import UnknownEntityError
from pps.service_layer.unit_of_work import SqlAlchemyUnitOfWork
from pps.views import SurveyFilter


@pytest.fixture
def uow(sqlite_session_factory):
    uow = SqlAlchemyUnitOfWork(sqlite_session_factory)
    with uow:
        for patient in [
            model.Patient(
                id="uuid:p-1", region="Central", facility="Mulago", level_of_care="Tertiary",
                submission_date=datetime(2023, 5, 10, 9, 0),
                survey_date=datetime(2023, 5, 10), admission_date=datetime(2023, 5, 1),
            ),
            model.Patient(
                id="uuid:p-2", region="North", facility="Gulu RRH", level_of_care="Regional",
                submission_date=datetime(2023, 6, 1, 9, 0),
                survey_date=datetime(2023, 6, 1), admission_date=datetime(2023, 5, 30),
            ),
            model.Patient(id="uuid:p-3", region="Central", facility="Mulago", level_of_care="Tertiary",
                          submission_date=datetime(2023, 5, 11, 9, 0)),
        ]:
            uow.patients.add(patient)

        uow.antibiotics.add(model.Antibiotic(
            id="abx-1", parent_key="uuid:p-1", antibiotic_inn_name="Amoxicillin",
            antibiotic_aware_classification="Access"))
        uow.antibiotics.add(model.Antibiotic(
            id="abx-2", parent_key="uuid:p-1", antibiotic_aware_classification="Watch"))
        uow.antibiotics.add(model.Antibiotic(
            id="abx-3", parent_key="uuid:p-2", antibiotic_inn_name="Colistin",
            antibiotic_aware_classification="Reserve"))

        uow.antibiotic_details.add(model.AntibioticDetails(
            id="uuid:p-1", parent_key="uuid:p-1", prescriber="Doctor", intraveno="iv",
            oral_switch="yes", number_missed="2", missed_dose="stockout", guideline="yes"))
        uow.antibiotic_details.add(model.AntibioticDetails(
            id="uuid:p-2", parent_key="uuid:p-2", prescriber="Nurse", intraveno="oral",
            number_missed="0", guideline="no"))

        uow.indications.add(model.Indication(
            id="ind-1", parent_key="uuid:p-1", indication_type="CAI", culture_sample_taken="yes"))
        uow.indications.add(model.Indication(
            id="ind-2", parent_key="uuid:p-2", culture_sample_taken="no"))

        uow.specimens.add(model.Specimen(id="spec-1", parent_key="uuid:p-1", specimen_type="Blood"))

        uow.optional_vars.add(model.OptionalVar(id="uuid:p-1", parent_key="uuid:p-1", guidelines_compliance="y"))
        uow.optional_vars.add(model.OptionalVar(id="uuid:p-1", parent_key="uuid:p-1", guidelines_compliance="n"))
        uow.commit()
    return uow


class TestIndicators:

    def test_all_indicators_without_filters(self, uow):
        indicators = views.get_all_indicators(SurveyFilter(), uow)

        assert indicators["total_antibiotics_prescribed"] == 3
        assert indicators["total_patients_with_antibiotics"] == 2
        assert indicators["total_patients_on_ward"] == 3
        assert indicators["average_antibiotics_per_patient"] == pytest.approx(1.5)
        assert indicators["percentage_encounter_with_antibiotic"] == pytest.approx(200 / 3)
        assert indicators["total_injectable_prescriptions"] == 1
        assert indicators["total_generic_prescriptions"] == 2
        assert indicators["total_guideline_compliant"] == 1
        assert indicators["total_appropriate_diagnosis"] == 1
        assert indicators["total_culture_based_prescriptions"] == 1
        assert indicators["total_culture_samples_taken"] == 1
        assert indicators["total_missed_doses"] == 1
        assert indicators["missed_dose_reasons"] == {"stockout": 1}

    def test_region_filter_applies_to_child_tables(self, uow):
        basic = views.get_basic_metrics(SurveyFilter(region="Central"), uow)

        assert basic["total_antibiotics_prescribed"] == 2
        assert basic["total_patients_with_antibiotics"] == 1
        assert basic["total_patients_on_ward"] == 2
        assert basic["percentage_encounter_with_antibiotic"] == pytest.approx(50.0)

    def test_date_range_uses_submission_date(self, uow):
        basic = views.get_basic_metrics(SurveyFilter(start_date="2023-06-01", end_date="2023-06-30"), uow)

        assert basic["total_antibiotics_prescribed"] == 1
        assert basic["total_patients_on_ward"] == 1

    def test_invalid_dates_are_ignored(self, uow):
        basic = views.get_basic_metrics(SurveyFilter(start_date="June"), uow)

        assert basic["total_patients_on_ward"] == 3

    def test_empty_population_gives_zero_percentages(self, uow):
        basic = views.get_basic_metrics(SurveyFilter(region="West"), uow)

        assert basic["total_antibiotics_prescribed"] == 0
        assert basic["average_antibiotics_per_patient"] == 0.0
        assert basic["percentage_encounter_with_antibiotic"] == 0.0

    def test_guideline_metrics_use_optional_vars(self, uow):
        guideline = views.get_guideline_metrics(SurveyFilter(), uow)

        assert guideline["total_guideline_compliant"] == 1
        assert guideline["total_optional_vars"] == 2
        assert guideline["percentage_guideline_compliant"] == pytest.approx(50.0)

    def test_breakdowns(self, uow):
        assert views.get_prescriber_metrics(SurveyFilter(), uow) == {
            "prescriber_stats": {"Doctor": 1, "Nurse": 1}
        }
        assert views.get_oral_switch_metrics(SurveyFilter(), uow) == {"oral_switch_stats": {"yes": 1}}
        assert views.get_missed_dose_metrics(SurveyFilter(region="North"), uow) == {
            "total_missed_doses": 0,
            "missed_dose_reasons": {},
        }

    def test_aware_categorization(self, uow):
        aware = views.get_aware_categorization(SurveyFilter(), uow)

        assert aware["total_antibiotics"] == 3
        assert aware["access"]["count"] == 1
        assert aware["watch"]["count"] == 1
        assert aware["reserve"]["percentage"] == pytest.approx(100 / 3)
        assert aware["unclassified"]["count"] == 0

    def test_long_stay_patients(self, uow):
        long_stay = views.get_long_stay_patients(SurveyFilter(), uow)

        assert long_stay["patients_staying_longer_than_7_days"] == 1
        assert long_stay["total_patients"] == 3
        assert long_stay["percentage_long_stay"] == pytest.approx(100 / 3)

    def test_injectable_and_culture(self, uow):
        injectable = views.get_injectable_metrics(SurveyFilter(facility="Gulu RRH"), uow)
        culture = views.get_culture_metrics(SurveyFilter(), uow)

        assert injectable["total_injectable_prescriptions"] == 0
        assert injectable["total_antibiotics_prescribed"] == 1
        assert culture["total_culture_based_prescriptions"] == 1
        assert culture["total_culture_samples_taken"] == 1


class TestPatientViews:

    def test_list_patients_with_filter_and_paging(self, uow):
        listing = views.list_patients(SurveyFilter(level="Tertiary"), uow, limit=1, offset=1)

        assert listing["total"] == 2
        assert [p["id"] for p in listing["patients"]] == ["uuid:p-3"]
        assert listing["patients"][0]["submission_date"] == "2023-05-11T09:00:00"

    def test_get_patient(self, uow):
        assert views.get_patient("uuid:p-2", uow)["region"] == "North"
        assert views.get_patient("uuid:missing", uow) is None

    def test_patient_children(self, uow):
        antibiotics = views.get_patient_children("uuid:p-1", "antibiotics", uow)
        optional_vars = views.get_patient_children("uuid:p-1", "optional_vars", uow)

        assert [a["id"] for a in antibiotics] == ["abx-1", "abx-2"]
        assert len(optional_vars) == 2
        assert "row_id" not in optional_vars[0]
        assert views.get_patient_children("uuid:missing", "antibiotics", uow) is None

    def test_unknown_child_type(self, uow):
        with pytest.raises(UnknownEntityError):
            views.get_patient_children("uuid:p-1", "wards", uow)


class TestUnfilteredPatientListing:

    def test_lists_all_patients_in_key_order(self, uow):
        listing = views.list_patients(SurveyFilter(), uow, limit=2, offset=0)

        assert listing["total"] == 3
        assert [p["id"] for p in listing["patients"]] == ["uuid:p-1", "uuid:p-2"]

    def test_offset_past_the_end(self, uow):
        listing = views.list_patients(None, uow, limit=10, offset=5)

        assert listing["total"] == 3
        assert listing["patients"] == []
