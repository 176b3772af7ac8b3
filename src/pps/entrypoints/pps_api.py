# pylint: disable=broad-except
"""
PPS API Entrypoint - Thin API with Command Dispatch
Uploads are dispatched as commands through the message bus; reads delegate to views.
"""
import os
from datetime import datetime, timezone
from typing import List

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy import create_engine
import logging
import uvicorn

import config
from pps import views
from pps.adapters import orm
from pps.domain.commands import ImportCsvFile
from pps.domain.exceptions import CSVImportError, UnknownEntityError
from pps.ingestion.columns import get_entity_spec
from pps.service_layer import messagebus
from pps.service_layer.unit_of_work import AbstractUnitOfWork, SqlAlchemyUnitOfWork

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.get_log_level()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Point Prevalence Survey API",
    description="CSV ingestion of PPS survey exports and antimicrobial use indicators",
    version="1.0.0"
)

INDICATOR_VIEWS = {
    "indicators": views.get_all_indicators,
    "basic-metrics": views.get_basic_metrics,
    "injectable-metrics": views.get_injectable_metrics,
    "generic-metrics": views.get_generic_metrics,
    "guideline-metrics": views.get_guideline_metrics,
    "diagnosis-metrics": views.get_diagnosis_metrics,
    "culture-metrics": views.get_culture_metrics,
    "missed-dose-metrics": views.get_missed_dose_metrics,
    "prescriber-metrics": views.get_prescriber_metrics,
    "oral-switch-metrics": views.get_oral_switch_metrics,
    "aware-categorization": views.get_aware_categorization,
    "long-stay-patients": views.get_long_stay_patients,
}


class UploadResponse(BaseModel):
    """Response model for a processed CSV upload"""
    message: str
    filename: str
    total_records: int
    processed_records: int
    skipped_records: int
    inserted_records: int
    updated_records: int
    errors: List[str]


def get_uow() -> AbstractUnitOfWork:
    return SqlAlchemyUnitOfWork()


@app.on_event("startup")
def init_storage():
    """Create tables and initialize ORM mappers (Cosmic Python pattern)."""
    # Reject a misconfigured import policy before serving any upload
    config.get_upload_config()
    engine = create_engine(config.get_postgres_uri())
    orm.metadata.create_all(engine)
    orm.start_mappers()
    logger.info("Database tables ready, ORM mappers initialized")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "pps-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.post("/api/v1/upload/{entity}", response_model=UploadResponse)
def upload_csv(
    entity: str,
    file: UploadFile = File(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Import a CSV export of one PPS record type.

    Rows that cannot be imported are reported in ``errors``; the upload
    itself only fails when the file as a whole is unusable.
    """
    try:
        spec = get_entity_spec(entity)
    except UnknownEntityError as e:
        raise HTTPException(status_code=404, detail=str(e))

    upload_config = config.get_upload_config()
    filename = file.filename or ""
    if os.path.splitext(filename)[1].lower() not in upload_config["allowed_extensions"]:
        raise HTTPException(status_code=400, detail="File must be a CSV file")

    payload = file.file.read()
    if len(payload) > upload_config["max_file_size"]:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {upload_config['max_file_size']} bytes)"
        )

    logger.info(f"Received {spec.label} upload: {filename} ({len(payload)} bytes)")

    try:
        results = messagebus.handle(ImportCsvFile(entity=spec.name, payload=payload, filename=filename), uow)
    except CSVImportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to import {spec.label} CSV {filename}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Processing error: {str(e)}"
        )

    result = results[0]
    return UploadResponse(
        message=f"{spec.label.capitalize()} CSV processed",
        filename=filename,
        **result.to_dict()
    )


@app.get("/api/v1/patients")
def list_patients(
    limit: int = 100,
    offset: int = 0,
    filters: views.SurveyFilter = Depends(),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """List surveyed patients, narrowed by the survey filters."""
    return views.list_patients(filters, uow, limit=limit, offset=offset)


@app.get("/api/v1/patients/{patient_id}")
def get_patient(patient_id: str, uow: AbstractUnitOfWork = Depends(get_uow)):
    patient = views.get_patient(patient_id, uow)
    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return patient


@app.get("/api/v1/patients/{patient_id}/{kind}")
def get_patient_records(patient_id: str, kind: str, uow: AbstractUnitOfWork = Depends(get_uow)):
    """Antibiotics, antibiotic details, indications, optional vars or specimens of a patient."""
    try:
        records = views.get_patient_children(patient_id, kind, uow)
    except UnknownEntityError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if records is None:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return records


@app.get("/api/v1/pps/{indicator}")
def get_indicator(
    indicator: str,
    filters: views.SurveyFilter = Depends(),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    PPS antimicrobial use indicators.

    Following Cosmic Python pattern: API layer is thin, delegates to views.
    """
    view = INDICATOR_VIEWS.get(indicator)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Unknown indicator {indicator}")

    try:
        return view(filters, uow)
    except Exception as e:
        logger.error(f"Failed to compute {indicator}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to compute {indicator}")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=config.get_api_port())
