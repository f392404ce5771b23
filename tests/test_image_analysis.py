"""Tests for the colour-heuristic coverage classifier."""

import asyncio
import io
import time

import numpy as np
import pytest
from PIL import Image

from farm_monitor import image_analysis
from farm_monitor.exceptions import ImageDecodeError, ImageDecodeTimeout, InvalidDimensions
from farm_monitor.image_analysis import (
    CoverageMetrics, GrowthStage, HealthCondition, PixelBuffer, analyze_pixels,
    classify_metrics, compute_coverage, decode_image, decode_image_async, plant_name,
)

from conftest import forged_png


def solid(rgba, width=4, height=3) -> PixelBuffer:
    return PixelBuffer(data=bytes(rgba) * (width * height), width=width, height=height)


def test_fully_transparent_buffer_is_stressed_seedling() -> None:
    """Pixels below the alpha cutoff are ignored; zero opaque pixels → zero ratios."""
    result = analyze_pixels(solid((0, 255, 0, 19)))
    assert result.green_ratio == 0.0
    assert result.dry_ratio == 0.0
    assert result.health_condition is HealthCondition.STRESSED
    assert result.growth_stage is GrowthStage.SEEDLING


def test_alpha_at_cutoff_counts_as_opaque() -> None:
    result = analyze_pixels(solid((0, 255, 0, 20)))
    assert result.green_ratio == 1.0
    assert result.health_condition is HealthCondition.HEALTHY


def test_all_green_buffer() -> None:
    result = analyze_pixels(solid((0, 255, 0, 255)))
    assert result.green_ratio == 1.0
    assert result.dry_ratio == 0.0
    assert result.health_condition is HealthCondition.HEALTHY
    assert result.growth_stage is GrowthStage.VEGETATIVE
    assert result.possible_diseases == []
    assert result.plant_name == "Unknown (placeholder)"


def test_all_dry_buffer() -> None:
    result = analyze_pixels(solid((200, 50, 50, 255)))
    assert result.dry_ratio == 1.0
    assert result.green_ratio == 0.0
    assert "Drought Stress" in result.possible_diseases
    assert "Nutrient Deficiency" in result.possible_diseases
    assert result.health_condition is HealthCondition.STRESSED


def test_transparent_pixels_excluded_from_denominator() -> None:
    """Half transparent, half green → green ratio of the opaque half is 1."""
    pixels = np.zeros((2, 2, 4), dtype=np.uint8)
    pixels[0, :] = (0, 200, 0, 255)
    pixels[1, :] = (200, 0, 0, 0)
    metrics = compute_coverage(PixelBuffer(data=pixels, width=2, height=2))
    assert metrics == CoverageMetrics(green_ratio=1.0, dry_ratio=0.0)


def test_dim_pixels_are_neither_green_nor_dry() -> None:
    """G must exceed 60 and R must exceed 80 to count."""
    pixels = np.array([[(10, 60, 5, 255), (80, 10, 5, 255)]], dtype=np.uint8)
    metrics = compute_coverage(PixelBuffer(data=pixels, width=2, height=1))
    assert metrics.green_ratio == 0.0
    assert metrics.dry_ratio == 0.0


def test_mixed_buffer_ratios() -> None:
    pixels = np.array([[
        (0, 200, 0, 255),
        (0, 200, 0, 255),
        (200, 50, 50, 255),
        (100, 100, 100, 255),
    ]], dtype=np.uint8)
    metrics = compute_coverage(PixelBuffer(data=pixels, width=4, height=1))
    assert metrics.green_ratio == 0.5
    assert metrics.dry_ratio == 0.25


def test_classification_is_deterministic() -> None:
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(16, 16, 4), dtype=np.uint8)
    buffer = PixelBuffer(data=pixels.tobytes(), width=16, height=16)
    assert analyze_pixels(buffer) == analyze_pixels(buffer)


@pytest.mark.parametrize("width,height", [(0, 4), (4, 0), (-1, 3)])
def test_invalid_dimensions(width, height) -> None:
    with pytest.raises(InvalidDimensions):
        compute_coverage(PixelBuffer(data=b"", width=width, height=height))


def test_byte_length_mismatch_is_invalid() -> None:
    with pytest.raises(InvalidDimensions):
        compute_coverage(PixelBuffer(data=bytes(4 * 5), width=2, height=2))


@pytest.mark.parametrize("green,expected", [
    (0.0, "Maize (placeholder)"),
    (0.26, "Wheat (placeholder)"),
    (0.5, "Soybean (placeholder)"),
    (0.99, "Tomato (placeholder)"),
    (1.0, "Unknown (placeholder)"),
])
def test_plant_name_lookup(green, expected) -> None:
    assert plant_name(green) == expected


@pytest.mark.parametrize("green,dry,health,stage", [
    (0.6, 0.19, HealthCondition.HEALTHY, GrowthStage.FLOWERING),
    (0.6, 0.2, HealthCondition.MODERATE, GrowthStage.FLOWERING),
    (0.35, 0.34, HealthCondition.MODERATE, GrowthStage.SEEDLING),
    (0.36, 0.35, HealthCondition.STRESSED, GrowthStage.MATURATION),
    (0.66, 0.0, HealthCondition.HEALTHY, GrowthStage.VEGETATIVE),
])
def test_health_and_stage_thresholds(green, dry, health, stage) -> None:
    result = classify_metrics(CoverageMetrics(green_ratio=green, dry_ratio=dry))
    assert result.health_condition is health
    assert result.growth_stage is stage


def test_leaf_scorch_band() -> None:
    result = classify_metrics(CoverageMetrics(green_ratio=0.4, dry_ratio=0.2))
    assert result.possible_diseases == ["Leaf Scorch (placeholder)"]

    result = classify_metrics(CoverageMetrics(green_ratio=0.5, dry_ratio=0.3))
    assert result.possible_diseases == []


def test_to_dict_uses_label_strings() -> None:
    data = analyze_pixels(solid((0, 255, 0, 255))).to_dict()
    assert data["health_condition"] == "Healthy"
    assert data["growth_stage"] == "Vegetative"


def _png(size, color=(0, 200, 0, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def test_decode_downscales_longer_side() -> None:
    buffer = decode_image(_png((1024, 600)))
    assert max(buffer.width, buffer.height) == 512
    assert buffer.as_array().shape == (buffer.height, buffer.width, 4)
    assert analyze_pixels(buffer).green_ratio == 1.0


def test_decode_keeps_small_images() -> None:
    buffer = decode_image(_png((20, 10)))
    assert (buffer.width, buffer.height) == (20, 10)


def test_decode_rejects_garbage() -> None:
    with pytest.raises(ImageDecodeError):
        decode_image(b"definitely not an image")


def test_decode_rejects_decompression_bomb() -> None:
    """A tiny file whose header claims 20000x20000 pixels is refused up front."""
    with pytest.raises(ImageDecodeError):
        decode_image(forged_png(20000, 20000))


def test_decode_keeps_palette_transparency() -> None:
    img = Image.new("P", (600, 300), 1)
    img.putpalette([0, 0, 0, 0, 255, 0])
    buf = io.BytesIO()
    img.save(buf, format="PNG", transparency=1)

    buffer = decode_image(buf.getvalue())
    assert max(buffer.width, buffer.height) == 512
    # every pixel is the transparent palette entry
    assert analyze_pixels(buffer).green_ratio == 0.0


def test_decode_downscales_large_jpeg() -> None:
    buf = io.BytesIO()
    Image.new("RGB", (2048, 1024), (0, 200, 0)).save(buf, format="JPEG")

    buffer = decode_image(buf.getvalue())
    assert (buffer.width, buffer.height) == (512, 256)
    assert analyze_pixels(buffer).green_ratio > 0.9


def test_decode_async_times_out(monkeypatch) -> None:
    def slow_decode(content, max_side):
        time.sleep(0.3)
        return decode_image(content, max_side)

    monkeypatch.setattr(image_analysis, "decode_image", slow_decode)
    with pytest.raises(ImageDecodeTimeout):
        asyncio.run(decode_image_async(_png((4, 4)), timeout=0.05))


def test_decode_async_returns_buffer() -> None:
    buffer = asyncio.run(decode_image_async(_png((4, 4)), timeout=5))
    assert (buffer.width, buffer.height) == (4, 4)
