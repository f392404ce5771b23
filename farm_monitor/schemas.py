"""
schemas.py — Pydantic request/response models and table enums.

Timestamps are epoch milliseconds (bigint columns).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ─── Enums ────────────────────────────────────────────────────

class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    PEST_RISK = "pest_risk"
    DISEASE_DETECTED = "disease_detected"
    IRRIGATION_NEEDED = "irrigation_needed"
    HARVEST_READY = "harvest_ready"
    WEATHER_WARNING = "weather_warning"


class SensorType(str, Enum):
    SOIL_MOISTURE = "soil_moisture"
    AIR_TEMPERATURE = "air_temperature"
    HUMIDITY = "humidity"
    LEAF_WETNESS = "leaf_wetness"
    PH = "ph"
    LIGHT_INTENSITY = "light_intensity"


class JobType(str, Enum):
    IMAGE_PROCESSING = "image_processing"
    INDEX_CALCULATION = "index_calculation"
    ML_INFERENCE = "ml_inference"
    REPORT_GENERATION = "report_generation"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class GeoPoint(BaseModel):
    lat: float
    lng: float


# ─── Fields ───────────────────────────────────────────────────

class FieldCreate(BaseModel):
    """
    New field.  ``area`` (hectares) and the centre point are derived from
    ``coordinates`` when omitted.
    """
    name: str = Field(..., min_length=1)
    crop_type: str
    coordinates: list[list[float]]  # polygon ring as [lng, lat] pairs
    area: Optional[float] = Field(None, ge=0)
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    soil_type: Optional[str] = None
    planting_date: Optional[int] = None

    @field_validator("coordinates")
    @classmethod
    def _pairs(cls, v):
        if any(len(c) < 2 for c in v):
            raise ValueError("Each coordinate must be a [lng, lat] pair")
        return v


class FieldUpdate(BaseModel):
    name: Optional[str] = None
    crop_type: Optional[str] = None
    area: Optional[float] = Field(None, ge=0)
    soil_type: Optional[str] = None
    planting_date: Optional[int] = None
    harvest_date: Optional[int] = None


class FarmField(BaseModel):
    id: str
    owner_id: str
    name: str
    crop_type: str
    area: float
    coordinates: list[list[float]]
    center_lat: float
    center_lng: float
    soil_type: Optional[str] = None
    planting_date: Optional[int] = None
    harvest_date: Optional[int] = None


# ─── Alerts ───────────────────────────────────────────────────

class AlertMetadata(BaseModel):
    confidence: Optional[float] = None
    affected_area: Optional[float] = None


class AlertCreate(BaseModel):
    field_id: str
    severity: AlertSeverity
    type: AlertType
    title: str
    description: str
    coordinates: Optional[GeoPoint] = None
    metadata: Optional[AlertMetadata] = None


class Alert(BaseModel):
    id: str
    field_id: str
    user_id: str
    severity: AlertSeverity
    type: AlertType
    title: str
    description: str
    coordinates: Optional[GeoPoint] = None
    metadata: Optional[AlertMetadata] = None
    acknowledged_at: Optional[int] = None
    acknowledged_by: Optional[str] = None
    created_at: Optional[int] = None


# ─── Sensors ──────────────────────────────────────────────────

class SensorReadingCreate(BaseModel):
    sensor_id: str
    sensor_type: SensorType
    value: float
    unit: str
    timestamp: Optional[int] = None
    location: Optional[GeoPoint] = None


class SensorReading(BaseModel):
    id: str
    field_id: str
    sensor_id: str
    sensor_type: SensorType
    value: float
    unit: str
    timestamp: int
    location: Optional[GeoPoint] = None


# ─── Processing jobs ──────────────────────────────────────────

class JobCreate(BaseModel):
    job_type: JobType
    field_id: Optional[str] = None
    image_id: Optional[str] = None


class JobUpdate(BaseModel):
    status: Optional[JobStatus] = None
    progress: Optional[float] = Field(None, ge=0, le=100)
    error_message: Optional[str] = None
    result_key: Optional[str] = None
    logs: Optional[list[str]] = None


class ProcessingJob(BaseModel):
    id: str
    user_id: str
    field_id: Optional[str] = None
    image_id: Optional[str] = None
    job_type: JobType
    status: JobStatus
    progress: float = Field(..., ge=0, le=100)
    started_at: int
    completed_at: Optional[int] = None
    error_message: Optional[str] = None
    result_key: Optional[str] = None
    logs: Optional[list[str]] = None


# ─── Image analysis ───────────────────────────────────────────

class AnalysisResponse(BaseModel):
    green_ratio: float
    dry_ratio: float
    health_condition: str
    growth_stage: str
    possible_diseases: list[str] = []
    plant_name: str


class ImageUploadResponse(BaseModel):
    """Response after an uploaded image is analysed and stored."""
    image_id: str
    ndvi: float
    dryness: float
    alert_id: Optional[str] = None
    analysis: AnalysisResponse


class CreatedResponse(BaseModel):
    id: str
