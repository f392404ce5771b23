"""
router.py — FastAPI routes for fields, alerts, sensors, jobs and image analysis.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from config import ALLOWED_IMAGE_EXTENSIONS, MAX_FILE_SIZE
from farm_monitor.auth import get_current_user_id
from farm_monitor.exceptions import (
    ImageDecodeError, ImageDecodeTimeout, InvalidDimensions,
    NotFoundOrForbidden, Unauthenticated,
)
from farm_monitor.image_analysis import analyze_image_bytes
from farm_monitor.repositories import (
    AlertRepository, FieldRepository, ImageRepository, JobRepository,
    SensorReadingRepository,
)
from farm_monitor.schemas import (
    Alert, AlertCreate, AnalysisResponse, CreatedResponse, FarmField,
    FieldCreate, FieldUpdate, ImageUploadResponse, JobCreate, JobStatus,
    JobUpdate, ProcessingJob, SensorReading, SensorReadingCreate, SensorType,
)
from farm_monitor.supabase_service import SupabaseStore, TableStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Farm Monitoring"])


# ──────────────────────────────────────────────────────────────
# Dependencies
# ──────────────────────────────────────────────────────────────

def get_store() -> TableStore:
    return SupabaseStore()


def _repo(cls):
    def dependency(
        store: TableStore = Depends(get_store),
        user_id: Optional[str] = Depends(get_current_user_id),
    ):
        return cls(store, user_id)
    return dependency


field_repo = _repo(FieldRepository)
alert_repo = _repo(AlertRepository)
sensor_repo = _repo(SensorReadingRepository)
job_repo = _repo(JobRepository)
image_repo = _repo(ImageRepository)


@contextmanager
def _domain_errors():
    """Translate domain errors into HTTP errors."""
    try:
        yield
    except Unauthenticated as e:
        raise HTTPException(status_code=401, detail=str(e))
    except NotFoundOrForbidden as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ImageDecodeTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except (InvalidDimensions, ImageDecodeError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Store operation failed")
        raise HTTPException(status_code=500, detail=str(e))


async def _read_image_upload(file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith(ALLOWED_IMAGE_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Accepted: {', '.join(ALLOWED_IMAGE_EXTENSIONS)}",
        )

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large ({len(content)} bytes). Max is {MAX_FILE_SIZE} bytes.",
        )
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return content


# ──────────────────────────────────────────────────────────────
# Fields
# ──────────────────────────────────────────────────────────────

@router.post("/fields", response_model=CreatedResponse, status_code=201)
async def create_field(req: FieldCreate, repo: FieldRepository = Depends(field_repo)):
    with _domain_errors():
        try:
            field_id = repo.create(req)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return CreatedResponse(id=field_id)


@router.get("/fields", response_model=list[FarmField])
async def list_fields(repo: FieldRepository = Depends(field_repo)):
    return repo.list_for_owner()


@router.get("/fields/{field_id}", response_model=FarmField)
async def get_field(field_id: str, repo: FieldRepository = Depends(field_repo)):
    with _domain_errors():
        return repo.get(field_id)


@router.patch("/fields/{field_id}")
async def update_field(
    field_id: str,
    req: FieldUpdate,
    repo: FieldRepository = Depends(field_repo),
):
    with _domain_errors():
        repo.update(field_id, req)
    return {"success": True}


# ──────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────

@router.post("/alerts", response_model=CreatedResponse, status_code=201)
async def create_alert(req: AlertCreate, repo: AlertRepository = Depends(alert_repo)):
    with _domain_errors():
        return CreatedResponse(id=repo.create(req))


@router.get("/alerts", response_model=list[Alert])
async def list_alerts(
    field_id: Optional[str] = Query(None, description="Only alerts for this field"),
    acknowledged: Optional[bool] = Query(None, description="Filter by acknowledgement"),
    repo: AlertRepository = Depends(alert_repo),
):
    return repo.list_for_user(field_id=field_id, acknowledged=acknowledged)


@router.get("/fields/{field_id}/alerts", response_model=list[Alert])
async def list_field_alerts(field_id: str, repo: AlertRepository = Depends(alert_repo)):
    return repo.list_for_field(field_id)


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str, repo: AlertRepository = Depends(alert_repo)):
    with _domain_errors():
        repo.acknowledge(alert_id)
    return {"success": True}


# ──────────────────────────────────────────────────────────────
# Sensors
# ──────────────────────────────────────────────────────────────

@router.post("/fields/{field_id}/sensors", response_model=CreatedResponse, status_code=201)
async def add_sensor_reading(
    field_id: str,
    req: SensorReadingCreate,
    repo: SensorReadingRepository = Depends(sensor_repo),
):
    with _domain_errors():
        return CreatedResponse(id=repo.add(field_id, req))


@router.get("/fields/{field_id}/sensors", response_model=list[SensorReading])
async def get_sensor_readings(
    field_id: str,
    sensor_type: Optional[SensorType] = Query(None),
    start_time: Optional[int] = Query(None, description="Epoch ms, inclusive"),
    end_time: Optional[int] = Query(None, description="Epoch ms, inclusive"),
    repo: SensorReadingRepository = Depends(sensor_repo),
):
    return repo.query(field_id, sensor_type=sensor_type, start_time=start_time, end_time=end_time)


@router.get("/fields/{field_id}/sensors/latest", response_model=list[SensorReading])
async def get_latest_sensor_readings(
    field_id: str,
    repo: SensorReadingRepository = Depends(sensor_repo),
):
    return repo.latest(field_id)


# ──────────────────────────────────────────────────────────────
# Processing jobs
# ──────────────────────────────────────────────────────────────

@router.post("/jobs", response_model=CreatedResponse, status_code=201)
async def create_job(req: JobCreate, repo: JobRepository = Depends(job_repo)):
    with _domain_errors():
        return CreatedResponse(id=repo.create(req))


@router.get("/jobs", response_model=list[ProcessingJob])
async def list_jobs(
    status: Optional[JobStatus] = Query(None),
    repo: JobRepository = Depends(job_repo),
):
    return repo.list_for_user(status=status)


@router.get("/jobs/{job_id}", response_model=Optional[ProcessingJob])
async def get_job(job_id: str, repo: JobRepository = Depends(job_repo)):
    return repo.get(job_id)


@router.patch("/jobs/{job_id}")
async def update_job(job_id: str, req: JobUpdate, repo: JobRepository = Depends(job_repo)):
    with _domain_errors():
        repo.update_progress(job_id, req)
    return {"success": True}


# ──────────────────────────────────────────────────────────────
# Image analysis
# ──────────────────────────────────────────────────────────────

@router.post("/analyze_image", response_model=AnalysisResponse)
async def analyze_image(
    file: UploadFile = File(..., description="Plant photo (PNG/JPEG/...)"),
):
    """Classify an image's green/dry coverage without storing anything."""
    content = await _read_image_upload(file)
    with _domain_errors():
        result = await analyze_image_bytes(content)
    return result.to_dict()


@router.post("/fields/{field_id}/images", response_model=ImageUploadResponse, status_code=201)
async def upload_field_image(
    field_id: str,
    file: UploadFile = File(..., description="Plant photo (PNG/JPEG/...)"),
    repo: ImageRepository = Depends(image_repo),
):
    """
    Analyse an uploaded image and store it against a field.

    1. Checks the caller owns the field.
    2. Decodes and classifies the image.
    3. Saves the image row with the green ratio as its approximate NDVI.
    4. Raises a stress alert if dryness / NDVI breach the stress rule.
    """
    with _domain_errors():
        repo.check_upload_allowed(field_id)

    content = await _read_image_upload(file)
    with _domain_errors():
        result = await analyze_image_bytes(content)
        stored = repo.add_with_analysis(
            field_id=field_id,
            filename=file.filename,
            file_size=len(content),
            ndvi_approx=round(result.green_ratio, 3),
            dryness=round(result.dry_ratio, 3),
        )

    if stored["alert_id"]:
        logger.warning(
            "Stress alert %s raised for field %s (ndvi=%.3f, dryness=%.3f)",
            stored["alert_id"], field_id, stored["ndvi"], stored["dryness"],
        )

    return ImageUploadResponse(analysis=AnalysisResponse(**result.to_dict()), **stored)
