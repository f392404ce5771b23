"""
repositories.py — Owner-scoped access to fields, alerts, sensor readings,
processing jobs and images.

Every repository is bound to the calling user (``user_id``, None when
anonymous).  Writes by an anonymous caller raise Unauthenticated; reads
return an empty result instead.  A record that is missing and a record that
belongs to another user both surface as NotFoundOrForbidden.
"""

import logging
import time
from typing import Optional

from config import LATEST_READINGS_WINDOW
from farm_monitor.alert_rules import evaluate_stress
from farm_monitor.exceptions import NotFoundOrForbidden, Unauthenticated
from farm_monitor.geometry_utils import field_geometry
from farm_monitor.schemas import (
    AlertCreate, AlertMetadata, FieldCreate, FieldUpdate, JobCreate, JobStatus,
    JobUpdate, SensorReadingCreate, SensorType, TERMINAL_JOB_STATUSES,
)
from farm_monitor.supabase_service import TableStore

logger = logging.getLogger(__name__)

FIELDS = "fields"
ALERTS = "alerts"
SENSOR_READINGS = "sensor_readings"
PROCESSING_JOBS = "processing_jobs"
IMAGES = "images"


def now_ms() -> int:
    return int(time.time() * 1000)


class OwnedRepository:
    """Common ownership checks shared by every repository."""

    def __init__(self, store: TableStore, user_id: Optional[str]):
        self.store = store
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise Unauthenticated()
        return self.user_id

    def _owned_field(self, field_id: str) -> dict:
        user_id = self._require_user()
        field = self.store.get(FIELDS, field_id)
        if not field or field.get("owner_id") != user_id:
            raise NotFoundOrForbidden("Field")
        return field

    def _owns_field(self, field_id: str) -> bool:
        """Non-raising variant for read paths."""
        if not self.user_id:
            return False
        field = self.store.get(FIELDS, field_id)
        return bool(field) and field.get("owner_id") == self.user_id


# ──────────────────────────────────────────────────────────────
# Fields
# ──────────────────────────────────────────────────────────────

class FieldRepository(OwnedRepository):

    def create(self, data: FieldCreate) -> str:
        """
        Create a field owned by the caller.

        Raises ValueError for an invalid outline.  Area and centre point are
        computed from the outline unless the caller supplied them.
        """
        user_id = self._require_user()
        geometry = field_geometry(data.coordinates)

        record = {
            "owner_id": user_id,
            "name": data.name,
            "crop_type": data.crop_type,
            "area": data.area if data.area is not None else geometry["area_hectares"],
            "coordinates": data.coordinates,
            "center_lat": data.center_lat if data.center_lat is not None else geometry["center_lat"],
            "center_lng": data.center_lng if data.center_lng is not None else geometry["center_lng"],
        }
        if data.soil_type is not None:
            record["soil_type"] = data.soil_type
        if data.planting_date is not None:
            record["planting_date"] = data.planting_date

        field_id = self.store.insert(FIELDS, record)
        logger.info("Created field: id=%s, owner=%s, area=%.2f ha", field_id, user_id, record["area"])
        return field_id

    def list_for_owner(self) -> list[dict]:
        if not self.user_id:
            return []
        return self.store.query(FIELDS, {"owner_id": self.user_id})

    def get(self, field_id: str) -> dict:
        return self._owned_field(field_id)

    def update(self, field_id: str, data: FieldUpdate) -> None:
        self._owned_field(field_id)
        updates = data.model_dump(exclude_none=True)
        if not updates:
            return
        self.store.patch(FIELDS, field_id, updates)
        logger.info("Updated field %s: %s", field_id, sorted(updates))


# ──────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────

def _insert_alert(store: TableStore, user_id: str, data: AlertCreate) -> str:
    record = data.model_dump(mode="json", exclude_none=True)
    record["user_id"] = user_id
    record["created_at"] = now_ms()
    alert_id = store.insert(ALERTS, record)
    logger.info(
        "Created alert: id=%s, field=%s, severity=%s, type=%s",
        alert_id, data.field_id, data.severity.value, data.type.value,
    )
    return alert_id


class AlertRepository(OwnedRepository):

    def create(self, data: AlertCreate) -> str:
        user_id = self._require_user()
        self._owned_field(data.field_id)
        return _insert_alert(self.store, user_id, data)

    def list_for_user(
        self,
        field_id: Optional[str] = None,
        acknowledged: Optional[bool] = None,
    ) -> list[dict]:
        """Caller's alerts, newest first."""
        if not self.user_id:
            return []

        alerts = self.store.query(
            ALERTS, {"user_id": self.user_id}, order_by="created_at", desc=True,
        )
        if field_id:
            alerts = [a for a in alerts if a.get("field_id") == field_id]
        if acknowledged is not None:
            alerts = [
                a for a in alerts
                if (a.get("acknowledged_at") is not None) == acknowledged
            ]
        return alerts

    def list_for_field(self, field_id: str) -> list[dict]:
        if not self._owns_field(field_id):
            return []
        return self.store.query(
            ALERTS, {"field_id": field_id}, order_by="created_at", desc=True,
        )

    def acknowledge(self, alert_id: str) -> None:
        """
        Stamp the alert as acknowledged by the caller.

        Acknowledging twice overwrites the earlier stamp.
        """
        user_id = self._require_user()
        alert = self.store.get(ALERTS, alert_id)
        if not alert or alert.get("user_id") != user_id:
            raise NotFoundOrForbidden("Alert")

        if alert.get("acknowledged_at") is not None:
            logger.info("Alert %s re-acknowledged; overwriting previous stamp", alert_id)

        self.store.patch(ALERTS, alert_id, {
            "acknowledged_at": now_ms(),
            "acknowledged_by": user_id,
        })


# ──────────────────────────────────────────────────────────────
# Sensor readings
# ──────────────────────────────────────────────────────────────

class SensorReadingRepository(OwnedRepository):

    def add(self, field_id: str, data: SensorReadingCreate) -> str:
        self._owned_field(field_id)
        record = data.model_dump(mode="json", exclude_none=True)
        record["field_id"] = field_id
        record["timestamp"] = data.timestamp or now_ms()
        return self.store.insert(SENSOR_READINGS, record)

    def query(
        self,
        field_id: str,
        sensor_type: Optional[SensorType] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> list[dict]:
        """Readings for a field, newest first.  Time bounds are inclusive."""
        if not self._owns_field(field_id):
            return []

        filters = {"field_id": field_id}
        if sensor_type is not None:
            filters["sensor_type"] = SensorType(sensor_type).value

        return self.store.query(
            SENSOR_READINGS,
            filters,
            gte={"timestamp": start_time} if start_time is not None else None,
            lte={"timestamp": end_time} if end_time is not None else None,
            order_by="timestamp",
            desc=True,
        )

    def latest(self, field_id: str) -> list[dict]:
        """Most recent reading of each sensor type."""
        if not self._owns_field(field_id):
            return []

        readings = self.store.query(
            SENSOR_READINGS,
            {"field_id": field_id},
            order_by="timestamp",
            desc=True,
            limit=LATEST_READINGS_WINDOW,
        )
        latest: dict[str, dict] = {}
        for reading in readings:
            latest.setdefault(reading["sensor_type"], reading)
        return list(latest.values())


# ──────────────────────────────────────────────────────────────
# Processing jobs
# ──────────────────────────────────────────────────────────────

class JobRepository(OwnedRepository):

    def create(self, data: JobCreate) -> str:
        user_id = self._require_user()
        if data.field_id:
            self._owned_field(data.field_id)

        record = data.model_dump(mode="json", exclude_none=True)
        record.update({
            "user_id": user_id,
            "status": JobStatus.PENDING.value,
            "progress": 0,
            "started_at": now_ms(),
        })
        job_id = self.store.insert(PROCESSING_JOBS, record)
        logger.info("Created %s job %s", data.job_type.value, job_id)
        return job_id

    def _owned_job(self, job_id: str) -> dict:
        user_id = self._require_user()
        job = self.store.get(PROCESSING_JOBS, job_id)
        if not job or job.get("user_id") != user_id:
            raise NotFoundOrForbidden("Job")
        return job

    def update_progress(self, job_id: str, data: JobUpdate) -> None:
        """
        Patch status/progress.  Moving to completed or failed stamps
        ``completed_at``.
        """
        self._owned_job(job_id)
        updates = data.model_dump(mode="json", exclude_none=True)
        if data.status in TERMINAL_JOB_STATUSES:
            updates["completed_at"] = now_ms()
        if not updates:
            return
        self.store.patch(PROCESSING_JOBS, job_id, updates)
        if data.status is JobStatus.FAILED:
            logger.warning("Job %s failed: %s", job_id, data.error_message)

    def list_for_user(self, status: Optional[JobStatus] = None) -> list[dict]:
        if not self.user_id:
            return []
        filters = {"user_id": self.user_id}
        if status is not None:
            filters["status"] = JobStatus(status).value
        return self.store.query(
            PROCESSING_JOBS, filters, order_by="started_at", desc=True,
        )

    def get(self, job_id: str) -> Optional[dict]:
        if not self.user_id:
            return None
        job = self.store.get(PROCESSING_JOBS, job_id)
        if not job or job.get("user_id") != self.user_id:
            return None
        return job


# ──────────────────────────────────────────────────────────────
# Images
# ──────────────────────────────────────────────────────────────

class ImageRepository(OwnedRepository):

    def check_upload_allowed(self, field_id: str) -> None:
        """Raise unless the caller may attach images to ``field_id``."""
        self._owned_field(field_id)

    def add_with_analysis(
        self,
        field_id: str,
        filename: str,
        file_size: int,
        ndvi_approx: Optional[float] = None,
        dryness: Optional[float] = None,
    ) -> dict:
        """
        Store an analysed image and raise a stress alert when the indices
        breach the stress rule.

        Returns:
            {"image_id": str, "ndvi": float, "dryness": float, "alert_id": str | None}
        """
        user_id = self._require_user()
        self._owned_field(field_id)

        image_id = self.store.insert(IMAGES, {
            "field_id": field_id,
            "uploaded_by": user_id,
            "filename": filename,
            "storage_key": filename,
            "file_size": file_size,
            "capture_date": now_ms(),
            "processing_status": JobStatus.COMPLETED.value,
            "metadata": {},
            "indices": {"ndvi": ndvi_approx},
        })

        ndvi = ndvi_approx if ndvi_approx is not None else 0.0
        dryness = dryness if dryness is not None else 0.0

        alert_id = None
        stress = evaluate_stress(ndvi, dryness)
        if stress is not None:
            try:
                alert_id = _insert_alert(self.store, user_id, AlertCreate(
                    field_id=field_id,
                    severity=stress.severity,
                    type=stress.type,
                    title=stress.title,
                    description=stress.description,
                    metadata=AlertMetadata(
                        confidence=stress.confidence,
                        affected_area=stress.affected_area,
                    ),
                ))
            except Exception:
                # image row and alert are stored together or not at all
                logger.error("Alert insert failed; removing image %s", image_id)
                self.store.delete(IMAGES, image_id)
                raise

        return {"image_id": image_id, "ndvi": ndvi, "dryness": dryness, "alert_id": alert_id}
