"""
Classification of raw workflow output into typed analysis results.

The workflow has answered in two shape families over time:

  legacy:  {"text": "{\"type\": \"food\", \"content\": [...]}"}
  current: {"type": "test", "test": {...} | "<json>", "other": {...} | "<json>"}

Both are normalized here into GlucoseReading, FoodAssessment or Rejected.
Anything that cannot be decoded or is missing a required field raises
SchemaViolation rather than falling back to a default.
"""
import logging
from typing import Any, Optional

from .errors import SchemaViolation
from .glucose_fallback import extract_reading
from .json_utils import flexible_field
from .models import (
    AnalysisResult,
    FoodAssessment,
    FoodItem,
    GlucoseReading,
    Rejected,
    TrafficLight,
)

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGES = {
    "zh": "无法识别的图片内容",
    "en": "Content not recognized",
}

TRAFFIC_LIGHT_LABELS = {
    "绿灯": TrafficLight.GREEN,
    "黄灯": TrafficLight.YELLOW,
    "红灯": TrafficLight.RED,
    "green": TrafficLight.GREEN,
    "yellow": TrafficLight.YELLOW,
    "red": TrafficLight.RED,
}

GLUCOSE_FIELDS = ("unit", "interpretation", "recommendation")


def default_rejection(language: str = "zh") -> Rejected:
    return Rejected(message=DEFAULT_REJECTION_MESSAGES.get(language, DEFAULT_REJECTION_MESSAGES["zh"]))


def locate_outputs(payload: Any) -> dict:
    """Find the outputs object in a workflow or completion response."""
    if not isinstance(payload, dict):
        raise SchemaViolation("Upstream response is not a JSON object")

    data = payload.get("data")
    if isinstance(data, dict):
        if data.get("status") == "failed":
            logger.error(f"Workflow run reported failure: {data.get('error')}")
        outputs = flexible_field(data, "outputs")
        if isinstance(outputs, dict):
            return outputs

    outputs = flexible_field(payload, "outputs")
    if isinstance(outputs, dict):
        return outputs

    # completion-style apps answer with the legacy text in "answer"
    answer = payload.get("answer")
    if isinstance(answer, str):
        return {"text": answer}

    raise SchemaViolation("Upstream response has no outputs")


def parse_traffic_light(label: Any) -> TrafficLight:
    if isinstance(label, str):
        light = TRAFFIC_LIGHT_LABELS.get(label.strip().lower())
        if light is not None:
            return light
    raise SchemaViolation(f"Unknown traffic-light label: {label!r}")


def _content_of(value: Any) -> Any:
    """The 'content' member of a decoded field, or the value itself."""
    if isinstance(value, dict) and "content" in value:
        return flexible_field(value, "content")
    return value


def _required_text(record: dict, key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise SchemaViolation(f"Required field '{key}' is missing or not a string")
    return value


def _message_of(value: Any) -> Optional[str]:
    """Pull a free-text message out of an 'other' style payload."""
    if isinstance(value, str):
        return value
    if not isinstance(value, dict):
        return None
    content = value.get("content")
    if isinstance(content, dict) and isinstance(content.get("message"), str):
        return content["message"]
    if isinstance(content, str):
        return content
    if isinstance(value.get("message"), str):
        return value["message"]
    return None


def _rejection(value: Any, language: str) -> Rejected:
    message = _message_of(value)
    if message and message.strip():
        return Rejected(message=message)
    return default_rejection(language)


def _food_assessment(decoded: Any) -> FoodAssessment:
    items = _content_of(decoded)
    if not isinstance(items, list):
        raise SchemaViolation("Food content is not a list of items")

    food_items = []
    for item in items:
        if not isinstance(item, dict):
            raise SchemaViolation("Food item is not an object")
        label = item.get("recommendation", item.get("traffic_light"))
        food_items.append(FoodItem(
            name=_required_text(item, "name"),
            traffic_light=parse_traffic_light(label),
            explanation=_required_text(item, "explanation"),
        ))
    return FoodAssessment(items=food_items)


def _has_structured_glucose(content: Any) -> bool:
    return isinstance(content, dict) and content.get("blood_glucose_level") is not None


def _glucose_reading(content: dict) -> GlucoseReading:
    level = content.get("blood_glucose_level")
    if isinstance(level, bool) or not isinstance(level, (str, int, float)):
        raise SchemaViolation("blood_glucose_level is missing or not a number")
    return GlucoseReading(
        value_text=level if isinstance(level, str) else str(level),
        **{key: _required_text(content, key) for key in GLUCOSE_FIELDS},
    )


def _classify_legacy(parsed: Any, language: str) -> AnalysisResult:
    if not isinstance(parsed, dict):
        raise SchemaViolation("Legacy text field does not hold a JSON object")

    result_type = parsed.get("type")
    logger.info(f"Classifying legacy response (type={result_type})")

    if result_type == "test":
        content = _content_of(parsed)
        if not isinstance(content, dict):
            raise SchemaViolation("Legacy glucose content is not an object")
        return _glucose_reading(content)
    if result_type == "food":
        return _food_assessment(parsed)
    if result_type == "noallow":
        return _rejection(parsed, language)

    logger.warning(f"Unrecognized legacy result type: {result_type!r}")
    return default_rejection(language)


def _classify_test(outputs: dict, language: str) -> AnalysisResult:
    test = flexible_field(outputs, "test")
    if test is not None:
        content = _content_of(test)
        if _has_structured_glucose(content):
            return _glucose_reading(content)

    other = flexible_field(outputs, "other")
    if other is None:
        logger.warning("Glucose result without structured fields or free text")
        return default_rejection(language)

    message = _message_of(other)
    logger.info("No structured glucose fields, trying free-text fallback")
    reading = extract_reading(message, language)
    if reading is not None:
        return reading
    return _rejection(other, language)


def classify(payload: Any, language: str = "zh") -> AnalysisResult:
    """Turn a raw upstream response into a GlucoseReading, FoodAssessment or Rejected."""
    outputs = locate_outputs(payload)

    legacy = flexible_field(outputs, "text")
    if legacy is not None:
        return _classify_legacy(legacy, language)

    declared = outputs.get("type")
    if not isinstance(declared, str) or not declared.strip():
        raise SchemaViolation("outputs.type is missing")
    declared = declared.strip().lower()
    logger.info(f"Classifying response (type={declared})")

    if declared == "food":
        food = flexible_field(outputs, "food")
        if food is None:
            # No fallback to "other" here, unlike "test"
            logger.warning("Food result without a food field")
            return default_rejection(language)
        return _food_assessment(food)

    if declared == "test":
        return _classify_test(outputs, language)

    if declared in ("other", "noallow"):
        return _rejection(flexible_field(outputs, "other"), language)

    logger.warning(f"Unrecognized result type: {declared!r}")
    return default_rejection(language)
