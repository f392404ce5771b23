"""
image_analysis.py — Colour-heuristic plant coverage classifier.

Counts "greenish" and "dryish" pixels in a decoded RGBA image and maps the
two coverage ratios onto canned labels (health, growth stage, possible
diseases, plant name).  This is a toy heuristic, not plant pathology: every
label is a fixed threshold on the two ratios.

    greenish : G > R and G > B and G > 60
    dryish   : R > G and R > B and R > 80
    ignored  : alpha < 20 (transparent / background)

The two counters are independent accumulators, not a partition of the image.
"""

import asyncio
import io
import logging
import math
from dataclasses import dataclass, field, asdict
from enum import Enum

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import ALPHA_THRESHOLD, MAX_IMAGE_SIDE, IMAGE_DECODE_TIMEOUT_S
from farm_monitor.exceptions import InvalidDimensions, ImageDecodeError, ImageDecodeTimeout

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# Labels
# ──────────────────────────────────────────────────────────────

class HealthCondition(str, Enum):
    HEALTHY = "Healthy"
    MODERATE = "Moderate"
    STRESSED = "Stressed"


class GrowthStage(str, Enum):
    SEEDLING = "Seedling"
    VEGETATIVE = "Vegetative"
    FLOWERING = "Flowering"
    MATURATION = "Maturation"


DROUGHT_STRESS = "Drought Stress"
NUTRIENT_DEFICIENCY = "Nutrient Deficiency"
LEAF_SCORCH = "Leaf Scorch (placeholder)"

PLANT_NAMES = (
    "Maize (placeholder)",
    "Wheat (placeholder)",
    "Soybean (placeholder)",
    "Tomato (placeholder)",
)
UNKNOWN_PLANT = "Unknown (placeholder)"

# Pixel predicates
GREEN_MIN = 60
DRY_MIN = 80


# ──────────────────────────────────────────────────────────────
# Value types
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PixelBuffer:
    """
    Decoded raster image.

    ``data`` is either raw RGBA bytes (row-major, 4 bytes per pixel) or a
    ``(height, width, 4)`` uint8 array.
    """
    data: bytes | np.ndarray
    width: int
    height: int

    def as_array(self) -> np.ndarray:
        if self.width <= 0 or self.height <= 0:
            raise InvalidDimensions(self.width, self.height)

        if isinstance(self.data, np.ndarray):
            arr = self.data
            if arr.shape != (self.height, self.width, 4):
                raise InvalidDimensions(
                    self.width, self.height,
                    f"array shape {arr.shape} does not match",
                )
            return arr.astype(np.uint8, copy=False)

        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise InvalidDimensions(
                self.width, self.height,
                f"expected {expected} RGBA bytes, got {len(self.data)}",
            )
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)


@dataclass(frozen=True)
class CoverageMetrics:
    green_ratio: float  # 0.0–1.0
    dry_ratio: float    # 0.0–1.0


@dataclass(frozen=True)
class AnalysisResult:
    """Classifier output."""
    green_ratio: float
    dry_ratio: float
    health_condition: HealthCondition
    growth_stage: GrowthStage
    possible_diseases: list[str] = field(default_factory=list)
    plant_name: str = UNKNOWN_PLANT

    def to_dict(self) -> dict:
        result = asdict(self)
        result["health_condition"] = self.health_condition.value
        result["growth_stage"] = self.growth_stage.value
        return result


# ──────────────────────────────────────────────────────────────
# Pixel scan
# ──────────────────────────────────────────────────────────────

def compute_coverage(buffer: PixelBuffer) -> CoverageMetrics:
    """
    Single pass over every pixel of ``buffer``.

    Raises:
        InvalidDimensions: width/height ≤ 0 or data does not match them.
    """
    pixels = buffer.as_array().astype(np.int16)
    r, g, b, a = pixels[..., 0], pixels[..., 1], pixels[..., 2], pixels[..., 3]

    opaque = a >= ALPHA_THRESHOLD
    greenish = opaque & (g > r) & (g > b) & (g > GREEN_MIN)
    dryish = opaque & (r > g) & (r > b) & (r > DRY_MIN)

    total = int(opaque.sum())
    if total == 0:
        return CoverageMetrics(green_ratio=0.0, dry_ratio=0.0)

    return CoverageMetrics(
        green_ratio=int(greenish.sum()) / total,
        dry_ratio=int(dryish.sum()) / total,
    )


# ──────────────────────────────────────────────────────────────
# Labelling
# ──────────────────────────────────────────────────────────────

def health_condition(green_ratio: float, dry_ratio: float) -> HealthCondition:
    if green_ratio >= 0.6 and dry_ratio < 0.2:
        return HealthCondition.HEALTHY
    if green_ratio >= 0.35 and dry_ratio < 0.35:
        return HealthCondition.MODERATE
    return HealthCondition.STRESSED


def growth_stage(green_ratio: float) -> GrowthStage:
    if green_ratio > 0.65:
        return GrowthStage.VEGETATIVE
    if green_ratio > 0.5:
        return GrowthStage.FLOWERING
    if green_ratio > 0.35:
        return GrowthStage.MATURATION
    return GrowthStage.SEEDLING


def possible_diseases(green_ratio: float, dry_ratio: float) -> list[str]:
    diseases = []
    if dry_ratio > 0.35:
        diseases.append(DROUGHT_STRESS)
    if green_ratio < 0.3:
        diseases.append(NUTRIENT_DEFICIENCY)
    if 0.3 <= green_ratio < 0.5 and dry_ratio >= 0.2:
        diseases.append(LEAF_SCORCH)
    return diseases


def plant_name(green_ratio: float) -> str:
    # green_ratio == 1.0 lands one past the end of the table
    idx = math.floor(green_ratio * len(PLANT_NAMES))
    if 0 <= idx < len(PLANT_NAMES):
        return PLANT_NAMES[idx]
    return UNKNOWN_PLANT


def classify_metrics(metrics: CoverageMetrics) -> AnalysisResult:
    g, d = metrics.green_ratio, metrics.dry_ratio
    return AnalysisResult(
        green_ratio=g,
        dry_ratio=d,
        health_condition=health_condition(g, d),
        growth_stage=growth_stage(g),
        possible_diseases=possible_diseases(g, d),
        plant_name=plant_name(g),
    )


def analyze_pixels(buffer: PixelBuffer) -> AnalysisResult:
    """Scan ``buffer`` and label the resulting coverage ratios."""
    return classify_metrics(compute_coverage(buffer))


# ──────────────────────────────────────────────────────────────
# Decoding
# ──────────────────────────────────────────────────────────────

def decode_image(content: bytes, max_side: int = MAX_IMAGE_SIDE) -> PixelBuffer:
    """
    Decode an encoded image (PNG, JPEG, ...) into an RGBA PixelBuffer.

    Images whose longer side exceeds ``max_side`` are downscaled first.
    The ratios of a downscaled image approximate those of the full-size
    image; they are not bit-exact because resampling blends neighbouring
    pixels.

    Headers declaring more pixels than Pillow's decompression-bomb limit
    are rejected before any pixel data is read.
    """
    try:
        img = Image.open(io.BytesIO(content))
        original = img.size
        if max_side:
            # JPEG decodes at a reduced scale; no-op for other formats
            img.draft("RGB", (max_side, max_side))
        if img.mode == "P":
            # palette transparency must become alpha before resampling
            img = img.convert("RGBA")
        if max_side and max(img.size) > max_side:
            img.thumbnail((max_side, max_side))
        img = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    if img.size != original:
        logger.debug("Downscaled image %s -> %s", original, img.size)

    pixels = np.asarray(img, dtype=np.uint8)
    return PixelBuffer(data=pixels, width=img.width, height=img.height)


async def decode_image_async(
    content: bytes,
    max_side: int = MAX_IMAGE_SIDE,
    timeout: float = IMAGE_DECODE_TIMEOUT_S,
) -> PixelBuffer:
    """
    Decode in a worker thread so the event loop stays free.

    Cancelling the awaiting task abandons the decode; exceeding ``timeout``
    raises ImageDecodeTimeout.
    """
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(decode_image, content, max_side),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        raise ImageDecodeTimeout(f"Image decode exceeded {timeout:.1f}s") from e


async def analyze_image_bytes(content: bytes, timeout: float = IMAGE_DECODE_TIMEOUT_S) -> AnalysisResult:
    buffer = await decode_image_async(content, timeout=timeout)
    result = analyze_pixels(buffer)
    logger.info(
        "Image analysis: %dx%d green=%.3f dry=%.3f health=%s",
        buffer.width, buffer.height, result.green_ratio, result.dry_ratio,
        result.health_condition.value,
    )
    return result
