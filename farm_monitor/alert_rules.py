"""
alert_rules.py — Stress alert rule applied to image analysis results.

    trigger    : dryness > 0.4  or  ndvi < 0.3
    severity   : high if dryness > 0.6 or ndvi < 0.2, else medium
    confidence : clamp(1 - ndvi + dryness, 0.5, 0.95)
"""

from dataclasses import dataclass

from farm_monitor.schemas import AlertSeverity, AlertType

# ──────────────────────────────────────────────────────────────
# Thresholds — change as needed.
# ──────────────────────────────────────────────────────────────
DRYNESS_TRIGGER = 0.4
NDVI_TRIGGER = 0.3
DRYNESS_HIGH = 0.6
NDVI_HIGH = 0.2

CONFIDENCE_MIN = 0.5
CONFIDENCE_MAX = 0.95
AFFECTED_AREA = 0.5

STRESS_TITLE = "Potential Plant Stress Detected"
STRESS_DESCRIPTION = (
    "Automated analysis suggests stress indicators. "
    "Review field conditions and consider action."
)


@dataclass
class StressAlert:
    """Alert fields produced when the stress rule fires."""
    severity: AlertSeverity
    confidence: float
    affected_area: float = AFFECTED_AREA
    type: AlertType = AlertType.DISEASE_DETECTED
    title: str = STRESS_TITLE
    description: str = STRESS_DESCRIPTION


def evaluate_stress(ndvi: float, dryness: float) -> StressAlert | None:
    """Return the alert to raise for these indices, or None."""
    if not (dryness > DRYNESS_TRIGGER or ndvi < NDVI_TRIGGER):
        return None

    if dryness > DRYNESS_HIGH or ndvi < NDVI_HIGH:
        severity = AlertSeverity.HIGH
    else:
        severity = AlertSeverity.MEDIUM

    confidence = min(CONFIDENCE_MAX, max(CONFIDENCE_MIN, 1 - ndvi + dryness))
    return StressAlert(severity=severity, confidence=confidence)
