"""
Pydantic models for analysis results and the HTTP response envelopes.
"""
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


# --- Analysis results ---

class TrafficLight(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class GlucoseReading(BaseModel):
    kind: Literal["glucose_reading"] = "glucose_reading"
    value_text: str  # decimal as written, e.g. "6.2"
    unit: str
    interpretation: str
    recommendation: str


class FoodItem(BaseModel):
    name: str
    traffic_light: TrafficLight
    explanation: str


class FoodAssessment(BaseModel):
    kind: Literal["food_assessment"] = "food_assessment"
    items: list[FoodItem]


class Rejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    message: str


AnalysisResult = Annotated[
    Union[GlucoseReading, FoodAssessment, Rejected],
    Field(discriminator="kind"),
]


# --- Response envelopes ---

class AnalysisSuccessResponse(BaseModel):
    success: Literal[True] = True
    data: AnalysisResult
    disclaimer: Optional[str] = None


class AnalysisErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    code: str


# --- Diagnostics ---

class HealthResponse(BaseModel):
    status: str
    has_api_key: bool
    api_style: str
    timeout_seconds: float
    max_upload_bytes: int


class ConnectionDiagnostics(BaseModel):
    has_api_key: bool
    api_key_length: int
    api_key_prefix: str
    timestamp: str
