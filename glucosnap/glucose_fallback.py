"""
Fallback glucose extraction from free text.

Some glucose-meter photos come back from the workflow with only a
natural-language summary instead of structured fields. This module pulls the
first "<value> <unit>" reading out of that text and attaches a fixed
interpretation and recommendation for the band it falls into.
"""

import re
import logging
from enum import Enum
from typing import Optional

from .models import GlucoseReading

logger = logging.getLogger(__name__)

READING_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(mmol/l|mg/dl)(?![a-z])",
    re.IGNORECASE
)


class GlucoseBand(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    VERY_HIGH = "very_high"


# Per unit: (low below, normal up to, high up to); inclusive upper bounds
BAND_THRESHOLDS = {
    "mmol/l": (4.0, 7.0, 11.0),
    "mg/dl": (70.0, 126.0, 200.0),
}

# language -> band -> (interpretation, recommendation)
BAND_TEXTS = {
    "zh": {
        GlucoseBand.LOW: (
            "血糖偏低",
            "请立即补充含糖食物或饮料（如果汁、糖果），15分钟后复测血糖。",
        ),
        GlucoseBand.NORMAL: (
            "血糖正常",
            "血糖控制良好，请继续保持均衡饮食和规律运动。",
        ),
        GlucoseBand.HIGH: (
            "血糖偏高",
            "注意控制饮食，减少高糖和精制碳水的摄入，适当增加运动并按时复测。",
        ),
        GlucoseBand.VERY_HIGH: (
            "血糖过高",
            "血糖明显升高，请尽快咨询医生，并按医嘱调整用药。",
        ),
    },
    "en": {
        GlucoseBand.LOW: (
            "Low blood glucose",
            "Take fast-acting sugar (juice or candy) now and recheck in 15 minutes.",
        ),
        GlucoseBand.NORMAL: (
            "Normal blood glucose",
            "Your glucose is well controlled. Keep up a balanced diet and regular exercise.",
        ),
        GlucoseBand.HIGH: (
            "High blood glucose",
            "Limit sugary and refined-carbohydrate foods, add some activity and recheck later.",
        ),
        GlucoseBand.VERY_HIGH: (
            "Very high blood glucose",
            "Your glucose is markedly elevated. Contact your doctor soon and follow your treatment plan.",
        ),
    },
}


def classify_band(value: float, unit: str) -> GlucoseBand:
    """Place a reading into one of the four bands for its unit."""
    low_below, normal_max, high_max = BAND_THRESHOLDS[unit.lower()]
    if value < low_below:
        return GlucoseBand.LOW
    if value <= normal_max:
        return GlucoseBand.NORMAL
    if value <= high_max:
        return GlucoseBand.HIGH
    return GlucoseBand.VERY_HIGH


def band_texts(band: GlucoseBand, language: str) -> tuple[str, str]:
    table = BAND_TEXTS.get(language, BAND_TEXTS["zh"])
    return table[band]


def extract_reading(free_text: Optional[str], language: str = "zh") -> Optional[GlucoseReading]:
    """Mine a glucose reading out of free text.

    Returns None when the text holds no value with a supported unit.
    """
    if not free_text:
        return None

    match = READING_PATTERN.search(free_text)
    if not match:
        logger.info("No glucose reading found in free-text message")
        return None

    value_text = match.group(1)
    unit = match.group(2).lower()
    band = classify_band(float(value_text), unit)
    interpretation, recommendation = band_texts(band, language)

    logger.info(f"Fallback glucose reading: {value_text} {unit} ({band.value})")
    return GlucoseReading(
        value_text=value_text,
        unit=unit,
        interpretation=interpretation,
        recommendation=recommendation,
    )
